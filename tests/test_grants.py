"""Tests for GrantManager — grant, revoke, list."""

from __future__ import annotations

import pytest
from sqlmodel import func, select

from stratus.access.exceptions import ForbiddenError, NotFoundError
from stratus.access.permissions import Role
from stratus.models.shares import Grant


@pytest.fixture
async def docs(drive, async_session, alice):
    info = await drive.tree.create_folder(async_session, alice, "Docs")
    return info.ref


class TestGrant:
    async def test_grant(self, drive, async_session, alice, docs):
        grant = await drive.grants.grant(async_session, alice, docs, "dave@example.com", "viewer")
        assert grant.ref == docs
        assert grant.email == "dave@example.com"
        assert grant.role is Role.VIEWER
        assert grant.granted_by == "alice"

    async def test_email_is_lowercased(self, drive, async_session, alice, docs):
        grant = await drive.grants.grant(async_session, alice, docs, " Dave@Example.COM ", "editor")
        assert grant.email == "dave@example.com"

    async def test_regrant_replaces_role(self, drive, async_session, alice, docs):
        await drive.grants.grant(async_session, alice, docs, "dave@example.com", "viewer")
        await drive.grants.grant(async_session, alice, docs, "DAVE@example.com", "editor")
        result = await async_session.execute(select(func.count()).select_from(Grant))
        assert result.scalar_one() == 1
        grants = await drive.grants.list(async_session, alice, docs)
        assert [g.role for g in grants] == [Role.EDITOR]

    async def test_empty_email(self, drive, async_session, alice, docs):
        with pytest.raises(ValueError, match="email is required"):
            await drive.grants.grant(async_session, alice, docs, "  ", "viewer")

    async def test_owner_role_rejected(self, drive, async_session, alice, docs):
        with pytest.raises(ValueError, match="Invalid role"):
            await drive.grants.grant(async_session, alice, docs, "dave@example.com", "owner")

    async def test_grantee_cannot_regrant(self, drive, async_session, alice, bob, docs):
        await drive.grants.grant(async_session, alice, docs, bob.email, "editor")
        with pytest.raises(ForbiddenError):
            await drive.grants.grant(async_session, bob, docs, "eve@example.com", "viewer")

    async def test_stranger_sees_nothing(self, drive, async_session, carol, docs):
        with pytest.raises(NotFoundError):
            await drive.grants.grant(async_session, carol, docs, "eve@example.com", "viewer")


class TestRevokeAndList:
    async def test_revoke(self, drive, async_session, alice, bob, docs):
        await drive.grants.grant(async_session, alice, docs, bob.email, "viewer")
        assert await drive.grants.revoke(async_session, alice, docs, "BOB@example.com") is True
        assert await drive.resolver.resolve(async_session, bob, docs) is None

    async def test_revoke_twice(self, drive, async_session, alice, docs):
        assert await drive.grants.revoke(async_session, alice, docs, "dave@example.com") is False

    async def test_list_ordered_by_email(self, drive, async_session, alice, docs):
        await drive.grants.grant(async_session, alice, docs, "zed@example.com", "viewer")
        await drive.grants.grant(async_session, alice, docs, "amy@example.com", "editor")
        grants = await drive.grants.list(async_session, alice, docs)
        assert [g.email for g in grants] == ["amy@example.com", "zed@example.com"]

    async def test_list_scoped_to_resource(self, drive, async_session, alice, docs):
        other = await drive.tree.create_folder(async_session, alice, "Other")
        await drive.grants.grant(async_session, alice, other.ref, "amy@example.com", "viewer")
        assert await drive.grants.list(async_session, alice, docs) == []
