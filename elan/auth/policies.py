"""
Policies - the interface for route authorization.

Just use: `ctx: AuthContext = Depends(require("publication.read"))`

- `require()` returns a FastAPI dependency that resolves to AuthContext
- It reads the user from the bearer JWT and the location from the path
- Anonymous requests get 401, missing capabilities 403
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from elan.auth.capabilities import Capability
from elan.auth.context import AuthContext, get_auth_context
from elan.auth.jwt import TokenError, decode_token
from elan.core.models import UserRole
from elan.integrations.sentry import set_tag, set_user


# Optional bearer (doesn't fail if no token)
optional_bearer = HTTPBearer(auto_error=False)


async def get_user_from_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_bearer),
) -> str | None:
    """User id from a valid access token, else None."""
    if not credentials:
        return None
    try:
        return decode_token(credentials.credentials, expected_type="access").sub
    except TokenError:
        return None


# =============================================================================
# Policy - the core authorization type
# =============================================================================


class Policy:
    """
    A policy that can be checked.

        require("publication.read")                      # single capability
        require_any("publication.edit", "team.manage")   # any of these
    """

    def __init__(
        self,
        capabilities: list[Capability | str] | None = None,
        require_all: bool = True,
        require_auth: bool = True,
        min_role: UserRole | None = None,
    ):
        self.capabilities = capabilities or []
        self.require_all_caps = require_all
        self.require_auth = require_auth
        self.min_role = min_role

    def check(self, ctx: AuthContext) -> tuple[int, str | None]:
        """
        Check if context satisfies this policy.

        Returns: (status, error_message); status 200 means allowed.
        """
        if self.require_auth and ctx.is_anonymous:
            return 401, "Authentication required"

        if self.min_role:
            order = [UserRole.VIEWER, UserRole.EDITOR, UserRole.ADMIN]
            if ctx.role is None or order.index(ctx.role) < order.index(self.min_role):
                return 403, f"Requires {self.min_role.value} role or higher"

        if self.capabilities:
            if self.require_all_caps:
                if not ctx.can_all(*self.capabilities):
                    missing = [str(Capability(c).value) for c in self.capabilities if not ctx.can(c)]
                    return 403, f"Missing permissions: {missing}"
            elif not ctx.can_any(*self.capabilities):
                return 403, f"Requires one of: {[str(c) for c in self.capabilities]}"

        return 200, None


# =============================================================================
# Main Interface
# =============================================================================


def require(
    *capabilities: Capability | str,
    require_auth: bool = True,
    min_role: UserRole | None = None,
) -> Callable:
    """
    Require capabilities to access a route.

    Usage:
        @app.get("/locations/{location_id}/publications")
        async def list_publications(
            location_id: str,
            ctx: AuthContext = Depends(require("publication.read")),
        ):
            ...

    A `location_id` path parameter brings the user's access grant on that
    location into the check.
    """
    return _create_dependency(Policy(
        capabilities=list(capabilities),
        require_all=True,
        require_auth=require_auth,
        min_role=min_role,
    ))


def require_any(*capabilities: Capability | str, **kwargs) -> Callable:
    """Require ANY of the listed capabilities."""
    return _create_dependency(Policy(capabilities=list(capabilities), require_all=False, **kwargs))


def require_auth() -> Callable:
    """Just require authentication, no specific capability."""
    return require(require_auth=True)


def require_role(role: UserRole) -> Callable:
    """Require a minimum platform role."""
    return require(min_role=role)


def _create_dependency(policy: Policy) -> Callable:

    async def dependency(
        request: Request,
        user_id: str | None = Depends(get_user_from_token),
    ) -> AuthContext:
        state = getattr(request.app.state, "elan", None)
        ctx = await get_auth_context(
            user_id=user_id,
            location_id=request.path_params.get("location_id"),
            storage=state.storage if state else None,
        )

        status, error = policy.check(ctx)
        if status != 200:
            headers = {"WWW-Authenticate": "Bearer"} if status == 401 else None
            raise HTTPException(status_code=status, detail=error, headers=headers)

        if ctx.is_authenticated:
            set_user(ctx.user_id, ctx.user_email)
        if ctx.location_id:
            set_tag("location_id", ctx.location_id)
        return ctx

    return dependency
