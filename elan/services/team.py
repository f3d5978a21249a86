"""
Team management: profiles, invitations and per-location access.

Invitations carry a unique key on (email, event_id). Inviting the same
person twice surfaces as a ConflictError so callers can tell "already
invited" apart from a generic failure.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from elan.config import get_settings
from elan.core.models import (
    AccessLevel,
    Invitation,
    InvitationStatus,
    LocationAccess,
    Profile,
    UserRole,
)
from elan.core.utils import utc_now
from elan.integrations.email import EmailService
from elan.services.base import EntityService, storage_operation
from elan.storage.base import Collections, ConflictError, StorageError, StorageProvider

logger = logging.getLogger(__name__)


# =============================================================================
# Profiles
# =============================================================================


class ProfileService(EntityService[Profile]):
    collection = Collections.PROFILES
    model = Profile
    entity_name = "profile"

    async def get_by_email(self, email: str) -> Profile | None:
        profiles = await self.list({"email": email.lower()})
        return profiles[0] if profiles else None

    async def create(self, entity: Profile) -> Profile:
        return await super().create(entity.model_copy(update={"email": entity.email.lower()}))

    async def update_role(self, user_id: str, role: UserRole | str) -> Profile:
        return await self.update(user_id, {"role": UserRole(role)})

    async def delete_many(self, ids: list[str]) -> int:
        deleted = 0
        for id in ids:
            if await self.delete(id):
                deleted += 1
        return deleted


# =============================================================================
# Invitations
# =============================================================================


class InvitationService(EntityService[Invitation]):
    collection = Collections.INVITATIONS
    model = Invitation
    entity_name = "invitation"

    def __init__(self, storage: StorageProvider, email_service: EmailService | None = None):
        super().__init__(storage)
        self.email_service = email_service or EmailService()

    async def list_for_event(self, event_id: str) -> list[Invitation]:
        invitations = await self.list({"event_id": event_id})
        return sorted(invitations, key=lambda i: i.created_at, reverse=True)

    async def invite(
        self,
        email: str,
        role: UserRole | str = UserRole.VIEWER,
        event_id: str | None = None,
        invited_by: str | None = None,
        inviter_name: str | None = None,
        event_name: str | None = None,
    ) -> Invitation:
        """
        Create an invitation and email it.

        Raises ConflictError when this email is already invited to the event.
        """
        settings = get_settings()
        invitation = Invitation(
            email=email.lower(),
            event_id=event_id,
            role=UserRole(role),
            invited_by=invited_by,
            expires_at=utc_now() + timedelta(days=settings.invitation_expire_days),
        )

        try:
            invitation = await self.create(invitation)
        except ConflictError:
            logger.info(f"{invitation.email} is already invited to event {event_id}")
            raise

        await self.send_invitation_email(invitation, inviter_name=inviter_name, event_name=event_name)
        return invitation

    async def send_invitation_email(
        self,
        invitation: Invitation,
        inviter_name: str | None = None,
        event_name: str | None = None,
    ) -> None:
        sent = await self.email_service.send_invitation(
            email=invitation.email,
            invitation_id=invitation.id,
            inviter_name=inviter_name or "Team Member",
            event_name=event_name or "Event",
        )
        if not sent and self.email_service.is_configured:
            raise StorageError(f"Failed to send invitation email to {invitation.email}")

    async def accept(self, invitation_id: str) -> Invitation:
        invitation = await self.require(invitation_id)
        if invitation.status == InvitationStatus.EXPIRED or (
            invitation.expires_at and invitation.expires_at < utc_now()
        ):
            raise StorageError("Invitation has expired", code="invitation_expired")
        return await self.update(invitation_id, {"status": InvitationStatus.ACCEPTED})

    async def resend(self, invitation_id: str, inviter_name: str | None = None) -> Invitation:
        invitation = await self.require(invitation_id)
        await self.send_invitation_email(invitation, inviter_name=inviter_name)
        return invitation

    async def mark_expired(self) -> int:
        """Pending invitations past their expiry become expired."""
        now = utc_now()
        expired = 0
        for invitation in await self.list({"status": InvitationStatus.PENDING.value}, limit=100_000):
            if invitation.expires_at and invitation.expires_at < now:
                await self.update(invitation.id, {"status": InvitationStatus.EXPIRED})
                expired += 1
        if expired:
            logger.info(f"Marked {expired} invitations as expired")
        return expired


# =============================================================================
# Location access
# =============================================================================


class LocationAccessService(EntityService[LocationAccess]):
    collection = Collections.LOCATION_ACCESS
    model = LocationAccess
    entity_name = "location access"

    async def get_grant(self, user_id: str, location_id: str) -> LocationAccess | None:
        grants = await self.list({"user_id": user_id, "location_id": location_id})
        active = [g for g in grants if g.is_active()]
        return active[0] if active else None

    async def user_access(self, user_id: str) -> list[LocationAccess]:
        return [g for g in await self.list({"user_id": user_id}) if g.is_active()]

    async def location_access(self, location_id: str) -> list[LocationAccess]:
        grants = [g for g in await self.list({"location_id": location_id}) if g.is_active()]
        return sorted(grants, key=lambda g: (-g.access_level.rank, g.granted_at))

    async def get_access_level(self, user_id: str, location_id: str) -> AccessLevel | None:
        grant = await self.get_grant(user_id, location_id)
        return grant.access_level if grant else None

    async def has_access(
        self,
        user_id: str,
        location_id: str,
        required: AccessLevel | str = AccessLevel.READ,
    ) -> bool:
        level = await self.get_access_level(user_id, location_id)
        return level is not None and level.rank >= AccessLevel(required).rank

    async def grant(
        self,
        user_id: str,
        location_id: str,
        access_level: AccessLevel | str,
        granted_by: str | None = None,
        expires_at: Any = None,
    ) -> LocationAccess:
        """Grant access, replacing any existing grant for the pair."""
        existing = await self.list({"user_id": user_id, "location_id": location_id})
        if existing:
            return await self.update(existing[0].id, {
                "access_level": AccessLevel(access_level),
                "granted_by": granted_by,
                "granted_at": utc_now(),
                "expires_at": expires_at,
            })
        return await self.create(LocationAccess(
            user_id=user_id,
            location_id=location_id,
            access_level=AccessLevel(access_level),
            granted_by=granted_by,
            expires_at=expires_at,
        ))

    async def bulk_grant(
        self,
        user_ids: list[str],
        location_id: str,
        access_level: AccessLevel | str,
        granted_by: str | None = None,
    ) -> list[LocationAccess]:
        return [await self.grant(u, location_id, access_level, granted_by) for u in user_ids]

    async def revoke(self, user_id: str, location_id: str) -> bool:
        revoked = False
        for grant in await self.list({"user_id": user_id, "location_id": location_id}):
            revoked = await self.delete(grant.id) or revoked
        return revoked

    async def accessible_location_ids(
        self,
        user_id: str,
        minimum: AccessLevel | str = AccessLevel.READ,
    ) -> list[str]:
        rank = AccessLevel(minimum).rank
        return [g.location_id for g in await self.user_access(user_id) if g.access_level.rank >= rank]

    async def location_stats(self, location_id: str) -> dict[str, int]:
        async with storage_operation("fetch location access stats"):
            grants = await self.location_access(location_id)
        stats = {level.value: 0 for level in AccessLevel}
        for grant in grants:
            stats[grant.access_level.value] += 1
        stats["total"] = len(grants)
        return stats
