"""
Authorization system.

Design principles:
1. Single dependency for all auth needs: Depends(require(...))
2. Capability checks, derived from platform role + location access
3. Location aware: a `location_id` path parameter brings in the user's grant
"""

from elan.auth.context import AuthContext, get_auth_context
from elan.auth.policies import (
    Policy,
    require,
    require_any,
    require_auth,
    require_role,
)
from elan.auth.capabilities import Capability, get_capabilities
from elan.auth.jwt import (
    TokenPair,
    authenticate_user,
    create_token_pair,
    decode_token,
    hash_password,
    refresh_tokens,
    tokens_for,
    verify_password,
)
from elan.auth.routes import router as auth_router

__all__ = [
    # Main interface
    "require",
    "require_any",
    "require_auth",
    "require_role",
    "AuthContext",
    "get_auth_context",
    # Types
    "Policy",
    "Capability",
    "get_capabilities",
    # JWT
    "TokenPair",
    "authenticate_user",
    "create_token_pair",
    "decode_token",
    "hash_password",
    "refresh_tokens",
    "tokens_for",
    "verify_password",
    # Router
    "auth_router",
]
