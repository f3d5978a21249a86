"""
Capabilities, roles, and access levels.

This defines WHAT users can do, not HOW we check it.
The actual checking happens in policies.py.

A user's capabilities come from two places: their platform role
(admin, editor, viewer) and, inside a location, their access level on that
location (read, write, admin). Location access only ever adds.
"""

from enum import Enum

from elan.core.models import AccessLevel, UserRole


class Capability(str, Enum):
    """Fine-grained capabilities checked by policies."""

    # Events and locations
    EVENT_READ = "event.read"
    EVENT_MANAGE = "event.manage"
    LOCATION_READ = "location.read"
    LOCATION_MANAGE = "location.manage"

    # Publications
    PUBLICATION_READ = "publication.read"
    PUBLICATION_EDIT = "publication.edit"
    PUBLICATION_PUBLISH = "publication.publish"
    PUBLICATION_EXPORT = "publication.export"

    # Umoors
    UMOOR_MANAGE = "umoor.manage"

    # Media
    MEDIA_READ = "media.read"
    MEDIA_UPLOAD = "media.upload"
    MEDIA_MANAGE = "media.manage"

    # Team
    TEAM_READ = "team.read"
    TEAM_MANAGE = "team.manage"


# =============================================================================
# Capability Mappings
# =============================================================================


_READ = {
    Capability.EVENT_READ,
    Capability.LOCATION_READ,
    Capability.PUBLICATION_READ,
    Capability.PUBLICATION_EXPORT,
    Capability.MEDIA_READ,
}


ROLE_CAPABILITIES: dict[UserRole, set[Capability]] = {
    UserRole.ADMIN: set(Capability),
    UserRole.EDITOR: _READ | {
        Capability.PUBLICATION_EDIT,
        Capability.PUBLICATION_PUBLISH,
        Capability.MEDIA_UPLOAD,
        Capability.TEAM_READ,
    },
    UserRole.VIEWER: set(_READ),
}


# Granted inside one location on top of the platform role
ACCESS_CAPABILITIES: dict[AccessLevel, set[Capability]] = {
    AccessLevel.READ: {
        Capability.LOCATION_READ,
        Capability.PUBLICATION_READ,
        Capability.PUBLICATION_EXPORT,
        Capability.MEDIA_READ,
    },
    AccessLevel.WRITE: {
        Capability.LOCATION_READ,
        Capability.PUBLICATION_READ,
        Capability.PUBLICATION_EXPORT,
        Capability.PUBLICATION_EDIT,
        Capability.MEDIA_READ,
        Capability.MEDIA_UPLOAD,
    },
    AccessLevel.ADMIN: {
        Capability.LOCATION_READ,
        Capability.LOCATION_MANAGE,
        Capability.PUBLICATION_READ,
        Capability.PUBLICATION_EXPORT,
        Capability.PUBLICATION_EDIT,
        Capability.PUBLICATION_PUBLISH,
        Capability.MEDIA_READ,
        Capability.MEDIA_UPLOAD,
        Capability.MEDIA_MANAGE,
        Capability.TEAM_READ,
    },
}


def get_capabilities(
    role: UserRole | None = None,
    access_level: AccessLevel | None = None,
) -> set[Capability]:
    """All capabilities for a role, plus a location access level if any."""
    caps: set[Capability] = set()

    if role:
        caps.update(ROLE_CAPABILITIES.get(role, set()))
    if access_level:
        caps.update(ACCESS_CAPABILITIES.get(access_level, set()))

    return caps


def has_capability(
    capability: Capability | str,
    role: UserRole | None = None,
    access_level: AccessLevel | None = None,
) -> bool:
    if isinstance(capability, str):
        capability = Capability(capability)
    return capability in get_capabilities(role, access_level)
