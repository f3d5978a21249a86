"""Tests for tokens, capabilities and auth context resolution."""

from datetime import timedelta

import jwt as pyjwt
import pytest

from elan.auth import (
    AuthContext,
    Capability,
    authenticate_user,
    create_token_pair,
    decode_token,
    get_auth_context,
    get_capabilities,
    hash_password,
    refresh_tokens,
    verify_password,
)
from elan.auth.jwt import TokenExpiredError, TokenInvalidError
from elan.auth.policies import Policy
from elan.config import get_settings
from elan.core.models import AccessLevel, LocationAccess, Profile, UserRole
from elan.core.utils import utc_now
from elan.services import LocationAccessService, ProfileService


# =============================================================================
# Passwords & Tokens
# =============================================================================


class TestPasswords:
    def test_round_trip(self):
        hashed = hash_password("s3cret-pass")
        assert verify_password("s3cret-pass", hashed)
        assert not verify_password("wrong", hashed)

    def test_missing_hash(self):
        assert not verify_password("anything", None)
        assert not verify_password("anything", "no-colon")


class TestTokens:
    def test_pair_decodes(self):
        pair = create_token_pair("user_1", {"role": "editor"})

        access = decode_token(pair.access_token)
        assert access.sub == "user_1"
        assert access.role == "editor"
        assert decode_token(pair.refresh_token, expected_type="refresh").type == "refresh"

    def test_wrong_type(self):
        pair = create_token_pair("user_1")
        with pytest.raises(TokenInvalidError):
            decode_token(pair.refresh_token)

    def test_expired(self):
        settings = get_settings()
        token = pyjwt.encode(
            {"sub": "user_1", "type": "access", "exp": utc_now() - timedelta(minutes=1), "iat": utc_now()},
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(TokenExpiredError):
            decode_token(token)

    def test_bad_signature(self):
        token = pyjwt.encode({"sub": "user_1", "type": "access"}, "another-secret", algorithm="HS256")
        with pytest.raises(TokenInvalidError):
            decode_token(token)

    @pytest.mark.asyncio
    async def test_refresh_picks_up_role_change(self, storage):
        profiles = ProfileService(storage)
        profile = await profiles.create(Profile(email="a@example.com", role=UserRole.VIEWER))
        pair = create_token_pair(profile.id, {"role": "viewer"})

        await profiles.update_role(profile.id, UserRole.ADMIN)
        refreshed = await refresh_tokens(pair.refresh_token, profiles)

        assert decode_token(refreshed.access_token).role == "admin"

    @pytest.mark.asyncio
    async def test_refresh_for_deleted_user(self, storage):
        profiles = ProfileService(storage)
        pair = create_token_pair("user_gone")
        with pytest.raises(TokenInvalidError):
            await refresh_tokens(pair.refresh_token, profiles)

    @pytest.mark.asyncio
    async def test_authenticate(self, storage):
        profiles = ProfileService(storage)
        await profiles.create(Profile(email="a@example.com", password_hash=hash_password("pw-123456")))

        assert await authenticate_user(profiles, "A@example.com", "pw-123456") is not None
        assert await authenticate_user(profiles, "a@example.com", "nope") is None
        assert await authenticate_user(profiles, "b@example.com", "pw-123456") is None


# =============================================================================
# Capabilities
# =============================================================================


class TestCapabilities:
    def test_roles(self):
        assert get_capabilities(UserRole.ADMIN) == set(Capability)
        assert Capability.PUBLICATION_EDIT in get_capabilities(UserRole.EDITOR)
        assert Capability.TEAM_MANAGE not in get_capabilities(UserRole.EDITOR)
        assert Capability.PUBLICATION_EDIT not in get_capabilities(UserRole.VIEWER)

    def test_location_access_adds(self):
        caps = get_capabilities(UserRole.VIEWER, AccessLevel.WRITE)
        assert Capability.PUBLICATION_EDIT in caps
        assert Capability.PUBLICATION_PUBLISH not in caps
        assert Capability.LOCATION_MANAGE in get_capabilities(UserRole.VIEWER, AccessLevel.ADMIN)


class TestPolicy:
    def test_anonymous_is_401(self):
        assert Policy([Capability.EVENT_READ]).check(AuthContext.anonymous())[0] == 401

    def test_missing_capability_is_403(self):
        ctx = AuthContext(user_id="u1", role=UserRole.VIEWER)
        status, error = Policy([Capability.EVENT_MANAGE]).check(ctx)
        assert status == 403
        assert "event.manage" in error

    def test_any(self):
        ctx = AuthContext(user_id="u1", role=UserRole.EDITOR)
        assert Policy([Capability.TEAM_MANAGE, Capability.PUBLICATION_EDIT], require_all=False).check(ctx)[0] == 200

    def test_min_role(self):
        ctx = AuthContext(user_id="u1", role=UserRole.EDITOR)
        assert Policy(min_role=UserRole.ADMIN).check(ctx)[0] == 403
        assert Policy(min_role=UserRole.VIEWER).check(ctx)[0] == 200

    def test_unknown_capability_string(self):
        assert not AuthContext.system().can("does.not.exist")


# =============================================================================
# Context resolution
# =============================================================================


class TestGetAuthContext:
    @pytest.mark.asyncio
    async def test_anonymous_without_user(self, storage):
        assert (await get_auth_context(None, None, storage)).is_anonymous

    @pytest.mark.asyncio
    async def test_role_and_location_access(self, storage):
        profile = await ProfileService(storage).create(Profile(email="a@example.com", role=UserRole.VIEWER))
        await LocationAccessService(storage).grant(profile.id, "loc-a", AccessLevel.WRITE)

        ctx = await get_auth_context(profile.id, "loc-a", storage)
        assert ctx.role == UserRole.VIEWER
        assert ctx.access_level == AccessLevel.WRITE
        assert ctx.can(Capability.PUBLICATION_EDIT)

        elsewhere = await get_auth_context(profile.id, "loc-b", storage)
        assert elsewhere.access_level is None
        assert not elsewhere.can(Capability.PUBLICATION_EDIT)

    @pytest.mark.asyncio
    async def test_expired_grant(self, storage):
        profile = await ProfileService(storage).create(Profile(email="a@example.com"))
        await LocationAccessService(storage).create(LocationAccess(
            user_id=profile.id,
            location_id="loc-a",
            access_level=AccessLevel.ADMIN,
            expires_at=utc_now() - timedelta(days=1),
        ))

        ctx = await get_auth_context(profile.id, "loc-a", storage)
        assert ctx.access_level is None

    @pytest.mark.asyncio
    async def test_unknown_user_is_anonymous(self, storage):
        assert (await get_auth_context("user_missing", None, storage)).is_anonymous
