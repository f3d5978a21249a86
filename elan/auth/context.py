"""
Auth context - the "who can do what" for each request.

This is the lightweight object passed to route handlers.
It contains everything needed to make authorization decisions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from elan.auth.capabilities import Capability, get_capabilities
from elan.core.models import AccessLevel, LocationAccess, UserRole
from elan.storage.base import Collections


@dataclass
class AuthContext:
    """
    Authorization context for a request.

    Usage in routes:
        async def my_route(ctx: AuthContext = Depends(require("publication.read"))):
            if ctx.can("publication.edit"):
                ...
    """

    # Who
    user_id: str | None = None
    user_email: str | None = None
    role: UserRole | None = None

    # Which location (if the route names one)
    location_id: str | None = None
    access_level: AccessLevel | None = None

    # Computed capabilities (cached)
    _capabilities: set[Capability] = field(default_factory=set, repr=False)

    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self._capabilities = get_capabilities(self.role, self.access_level)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def capabilities(self) -> set[Capability]:
        return self._capabilities

    def can(self, capability: Capability | str) -> bool:
        if isinstance(capability, str):
            try:
                capability = Capability(capability)
            except ValueError:
                return False
        return capability in self._capabilities

    def can_any(self, *capabilities: Capability | str) -> bool:
        return any(self.can(c) for c in capabilities)

    def can_all(self, *capabilities: Capability | str) -> bool:
        return all(self.can(c) for c in capabilities)

    @classmethod
    def anonymous(cls) -> AuthContext:
        return cls()

    @classmethod
    def system(cls) -> AuthContext:
        """Full access for internal operations."""
        return cls(user_id="__system__", role=UserRole.ADMIN)


# =============================================================================
# Context Resolution
# =============================================================================


async def get_auth_context(
    user_id: str | None = None,
    location_id: str | None = None,
    storage=None,
) -> AuthContext:
    """
    Resolve the full auth context for a request.

    Looks up the user's profile for their platform role and, when the
    request targets a location, their active access grant on it.
    """
    if not user_id:
        return AuthContext.anonymous()

    role = None
    user_email = None
    access_level = None

    if storage:
        profile = await storage.metadata.get(Collections.PROFILES, user_id)
        if profile is None or not profile.get("is_active", True):
            return AuthContext.anonymous()
        role = UserRole(profile.get("role", "viewer"))
        user_email = profile.get("email")

        if location_id:
            grants = await storage.metadata.query(
                Collections.LOCATION_ACCESS,
                {"user_id": user_id, "location_id": location_id},
            )
            for grant in grants:
                access = LocationAccess.model_validate(
                    {k: v for k, v in grant.items() if not k.startswith("_")}
                )
                if access.is_active():
                    access_level = access.access_level
                    break

    return AuthContext(
        user_id=user_id,
        user_email=user_email,
        role=role,
        location_id=location_id,
        access_level=access_level,
    )
