# =============================================================================
# Auth API Routes
# =============================================================================
#
# Endpoints:
#   POST /auth/login                      - Get tokens
#   POST /auth/refresh                    - Refresh tokens
#   POST /auth/logout                     - Client discards tokens
#   GET  /auth/me                         - Current user
#   POST /auth/invitations/{id}/accept    - Join the team from an invitation
#
# =============================================================================

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field

from elan.api.state import AppState, get_state
from elan.auth.context import AuthContext
from elan.auth.jwt import (
    TokenError,
    TokenExpiredError,
    TokenPair,
    authenticate_user,
    hash_password,
    refresh_tokens,
    tokens_for,
)
from elan.auth.policies import require
from elan.core.models import Profile
from elan.storage.base import ConflictError, StorageError

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# Request/Response Models
# =============================================================================

class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class AcceptInvitationRequest(BaseModel):
    full_name: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=8)


class UserResponse(BaseModel):
    id: str
    email: str
    full_name: str
    role: str

    @classmethod
    def from_profile(cls, profile: Profile) -> "UserResponse":
        return cls(id=profile.id, email=profile.email, full_name=profile.full_name, role=profile.role.value)


# =============================================================================
# Public Endpoints
# =============================================================================

@router.post("/login", response_model=TokenPair)
async def login(data: LoginRequest, state: AppState = Depends(get_state)):
    """Authenticate and get tokens."""
    profile = await authenticate_user(state.profiles, data.email, data.password)
    if not profile:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return tokens_for(profile)


@router.post("/refresh", response_model=TokenPair)
async def refresh(data: RefreshRequest, state: AppState = Depends(get_state)):
    """Use refresh token to get a new token pair."""
    try:
        return await refresh_tokens(data.refresh_token, state.profiles)
    except TokenExpiredError:
        raise HTTPException(status_code=401, detail="Refresh token expired")
    except TokenError as e:
        raise HTTPException(status_code=401, detail=str(e))


@router.post("/logout")
async def logout():
    """
    Log out.

    Tokens are stateless; the client discards them.
    """
    return {"status": "logged_out"}


@router.post("/invitations/{invitation_id}/accept", response_model=TokenPair)
async def accept_invitation(
    invitation_id: str,
    data: AcceptInvitationRequest,
    state: AppState = Depends(get_state),
):
    """Accept an invitation, creating the team member's profile."""
    try:
        invitation = await state.invitations.accept(invitation_id)
    except StorageError as e:
        if e.code == "invitation_expired":
            raise HTTPException(status_code=410, detail="Invitation has expired")
        raise

    try:
        profile = await state.profiles.create(Profile(
            email=invitation.email,
            full_name=data.full_name,
            role=invitation.role,
            password_hash=hash_password(data.password),
        ))
    except ConflictError:
        raise HTTPException(status_code=409, detail="An account with this email already exists")

    return tokens_for(profile)


# =============================================================================
# Authenticated Endpoints
# =============================================================================

@router.get("/me", response_model=UserResponse)
async def get_current_user(
    ctx: AuthContext = Depends(require()),
    state: AppState = Depends(get_state),
):
    profile = await state.profiles.require(ctx.user_id)
    return UserResponse.from_profile(profile)
