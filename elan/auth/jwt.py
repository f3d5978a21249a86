# =============================================================================
# JWT Authentication Implementation
# =============================================================================
#
# Session lifecycle is explicit:
#   - create_token_pair   after login or invitation acceptance
#   - decode_token        on every authenticated request
#   - refresh_tokens      to rotate an expiring access token
#   - logout              is the client discarding its tokens
#
# Users are team Profiles kept in metadata storage.
#
# =============================================================================

from datetime import datetime, timedelta, timezone
import secrets
import hashlib
import logging

from pydantic import BaseModel
import jwt

from elan.config import get_settings
from elan.core.models import Profile
from elan.core.utils import generate_id, utc_now

logger = logging.getLogger(__name__)


# =============================================================================
# Models
# =============================================================================

class TokenPayload(BaseModel):
    """JWT token payload."""
    sub: str  # user_id
    exp: datetime
    iat: datetime
    type: str  # "access" or "refresh"
    jti: str  # unique token ID
    role: str | None = None


class TokenPair(BaseModel):
    """Access and refresh token pair."""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until access token expires


# =============================================================================
# Password Hashing
# =============================================================================

def hash_password(password: str) -> str:
    """
    Hash a password using PBKDF2-SHA256.

    Returns: salt:hash format string
    """
    salt = secrets.token_hex(32)
    hash_bytes = hashlib.pbkdf2_hmac(
        'sha256',
        password.encode('utf-8'),
        salt.encode('utf-8'),
        iterations=100_000
    )
    return f"{salt}:{hash_bytes.hex()}"


def verify_password(password: str, password_hash: str | None) -> bool:
    """Verify a password against its hash."""
    try:
        salt, stored_hash = password_hash.split(':')
        hash_bytes = hashlib.pbkdf2_hmac(
            'sha256',
            password.encode('utf-8'),
            salt.encode('utf-8'),
            iterations=100_000
        )
        return secrets.compare_digest(hash_bytes.hex(), stored_hash)
    except (ValueError, AttributeError):
        return False


# =============================================================================
# Token Creation
# =============================================================================

def _encode(user_id: str, token_type: str, lifetime: timedelta, extra_claims: dict | None = None) -> str:
    settings = get_settings()
    now = utc_now()
    payload = {
        "sub": user_id,
        "exp": now + lifetime,
        "iat": now,
        "type": token_type,
        "jti": generate_id("tok" if token_type == "access" else "rtok"),
        **(extra_claims or {}),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: str, extra_claims: dict | None = None) -> str:
    settings = get_settings()
    return _encode(user_id, "access", timedelta(minutes=settings.jwt_access_token_expire_minutes), extra_claims)


def create_refresh_token(user_id: str) -> str:
    settings = get_settings()
    return _encode(user_id, "refresh", timedelta(days=settings.jwt_refresh_token_expire_days))


def create_token_pair(user_id: str, extra_claims: dict | None = None) -> TokenPair:
    """Create both access and refresh tokens."""
    return TokenPair(
        access_token=create_access_token(user_id, extra_claims),
        refresh_token=create_refresh_token(user_id),
        expires_in=get_settings().jwt_access_token_expire_minutes * 60,
    )


def tokens_for(profile: Profile) -> TokenPair:
    return create_token_pair(profile.id, {"email": profile.email, "role": profile.role.value})


# =============================================================================
# Token Validation
# =============================================================================

class TokenError(Exception):
    """Base exception for token errors."""
    pass


class TokenExpiredError(TokenError):
    """Token has expired."""
    pass


class TokenInvalidError(TokenError):
    """Token is invalid or malformed."""
    pass


def decode_token(token: str, expected_type: str = "access") -> TokenPayload:
    """
    Decode and validate a JWT token.

    Raises:
        TokenExpiredError: Token has expired
        TokenInvalidError: Token is invalid
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenInvalidError(f"Invalid token: {e}")

    if payload.get("type") != expected_type:
        raise TokenInvalidError(f"Expected {expected_type} token, got {payload.get('type')}")

    return TokenPayload(
        sub=payload["sub"],
        exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
        type=payload["type"],
        jti=payload.get("jti", ""),
        role=payload.get("role"),
    )


async def refresh_tokens(refresh_token: str, profiles) -> TokenPair:
    """
    Rotate a refresh token into a new pair.

    The role claim is re-read from the profile so role changes apply on
    the next refresh.
    """
    payload = decode_token(refresh_token, expected_type="refresh")
    profile = await profiles.get(payload.sub)
    if profile is None or not profile.is_active:
        raise TokenInvalidError("User no longer exists")
    return tokens_for(profile)


# =============================================================================
# Users
# =============================================================================

async def authenticate_user(profiles, email: str, password: str) -> Profile | None:
    """Authenticate a team member by email and password."""
    profile = await profiles.get_by_email(email)
    if profile is None or not profile.is_active:
        return None
    if not verify_password(password, profile.password_hash):
        logger.info(f"Failed login for {email}")
        return None
    return profile
