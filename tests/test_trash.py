"""Tests for TrashLifecycle — soft delete, restore, purge, empty trash."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from stratus import Stratus, StratusConfig
from stratus.access.exceptions import ConflictError, ForbiddenError, NotFoundError
from stratus.access.trash import CascadeDepth
from stratus.access.types import ResourceInfo, ResourceRef


@dataclass
class Tree:
    """Docs/{a.txt, b.txt, Sub/{c.txt}}"""

    docs: ResourceInfo
    a: ResourceInfo
    b: ResourceInfo
    sub: ResourceInfo
    c: ResourceInfo


@pytest.fixture
async def tree(drive, async_session, alice) -> Tree:
    t = drive.tree
    docs = await t.create_folder(async_session, alice, "Docs")
    sub = await t.create_folder(async_session, alice, "Sub", docs.ref.id)
    return Tree(
        docs=docs,
        a=await t.add_file(async_session, alice, "a.txt", "alice/a", folder_id=docs.ref.id),
        b=await t.add_file(async_session, alice, "b.txt", "alice/b", folder_id=docs.ref.id),
        sub=sub,
        c=await t.add_file(async_session, alice, "c.txt", "alice/c", folder_id=sub.ref.id),
    )


@pytest.fixture
def subtree_drive(async_engine, blobs, clock) -> Stratus:
    return Stratus(
        engine=async_engine,
        blob_store=blobs,
        config=StratusConfig(cascade_depth=CascadeDepth.FULL_SUBTREE),
        clock=clock,
    )


async def _state(drive, session, ref: ResourceRef):
    """deleted_at of *ref*, or the string 'gone' if the row no longer exists."""
    row = await drive.store.get_row(session, ref)
    if row is None:
        return "gone"
    return drive.store.to_info(row).deleted_at


# ---------------------------------------------------------------------------
# Soft delete
# ---------------------------------------------------------------------------


class TestSoftDelete:
    async def test_file(self, drive, async_session, clock, alice, tree):
        result = await drive.trash.soft_delete(async_session, alice, tree.a.ref)
        assert result.changed is True
        assert result.deleted_at == clock.now
        assert result.affected == [tree.a.ref]
        assert await _state(drive, async_session, tree.a.ref) == clock.now
        assert await _state(drive, async_session, tree.b.ref) is None

    async def test_folder_cascades_to_direct_files(self, drive, async_session, clock, alice, tree):
        result = await drive.trash.soft_delete(async_session, alice, tree.docs.ref)
        assert set(result.affected) == {tree.docs.ref, tree.a.ref, tree.b.ref}
        for ref in (tree.docs.ref, tree.a.ref, tree.b.ref):
            assert await _state(drive, async_session, ref) == clock.now
        # immediate-children depth leaves nested content alone
        assert await _state(drive, async_session, tree.sub.ref) is None
        assert await _state(drive, async_session, tree.c.ref) is None

    async def test_second_call_is_noop(self, drive, async_session, clock, alice, tree):
        first = await drive.trash.soft_delete(async_session, alice, tree.docs.ref)
        clock.advance(minutes=5)
        second = await drive.trash.soft_delete(async_session, alice, tree.docs.ref)
        assert second.changed is False
        assert second.deleted_at == first.deleted_at
        assert await _state(drive, async_session, tree.a.ref) == first.deleted_at

    async def test_full_subtree(self, subtree_drive, async_session, clock, alice, tree):
        result = await subtree_drive.trash.soft_delete(async_session, alice, tree.docs.ref)
        assert set(result.affected) == {
            tree.docs.ref,
            tree.a.ref,
            tree.b.ref,
            tree.sub.ref,
            tree.c.ref,
        }
        assert await _state(subtree_drive, async_session, tree.c.ref) == clock.now

    async def test_editor_may_trash(self, drive, async_session, alice, bob, tree):
        await drive.grants.grant(async_session, alice, tree.a.ref, bob.email, "editor")
        result = await drive.trash.soft_delete(async_session, bob, tree.a.ref)
        assert result.changed is True

    async def test_viewer_may_not_trash(self, drive, async_session, alice, bob, tree):
        await drive.grants.grant(async_session, alice, tree.a.ref, bob.email, "viewer")
        with pytest.raises(ForbiddenError):
            await drive.trash.soft_delete(async_session, bob, tree.a.ref)

    async def test_via_editor_link(self, drive, async_session, alice, tree):
        link = await drive.links.create_or_rotate(async_session, alice, tree.a.ref, "editor")
        result = await drive.trash.soft_delete(async_session, None, tree.a.ref, link.token)
        assert result.changed is True


# ---------------------------------------------------------------------------
# Restore
# ---------------------------------------------------------------------------


class TestRestore:
    async def test_restores_cascade(self, drive, async_session, alice, tree):
        await drive.trash.soft_delete(async_session, alice, tree.docs.ref)
        result = await drive.trash.restore(async_session, alice, tree.docs.ref)
        assert result.changed is True
        assert set(result.affected) == {tree.docs.ref, tree.a.ref, tree.b.ref}
        for ref in (tree.docs.ref, tree.a.ref, tree.b.ref):
            assert await _state(drive, async_session, ref) is None

    async def test_previously_trashed_file_stays_trashed(
        self, drive, async_session, clock, alice, tree
    ):
        await drive.trash.soft_delete(async_session, alice, tree.a.ref)
        own_stamp = clock.now
        clock.advance(minutes=1)
        await drive.trash.soft_delete(async_session, alice, tree.docs.ref)

        result = await drive.trash.restore(async_session, alice, tree.docs.ref)
        assert tree.a.ref not in result.affected
        assert await _state(drive, async_session, tree.a.ref) == own_stamp
        assert await _state(drive, async_session, tree.b.ref) is None

    async def test_full_subtree_roundtrip(self, subtree_drive, async_session, clock, alice, tree):
        await subtree_drive.trash.soft_delete(async_session, alice, tree.c.ref)
        clock.advance(minutes=1)
        await subtree_drive.trash.soft_delete(async_session, alice, tree.docs.ref)
        await subtree_drive.trash.restore(async_session, alice, tree.docs.ref)
        assert await _state(subtree_drive, async_session, tree.sub.ref) is None
        assert await _state(subtree_drive, async_session, tree.c.ref) is not None

    async def test_active_is_noop(self, drive, async_session, alice, tree):
        result = await drive.trash.restore(async_session, alice, tree.a.ref)
        assert result.changed is False

    async def test_blocked_by_trashed_folder(self, drive, async_session, alice, tree):
        await drive.trash.soft_delete(async_session, alice, tree.docs.ref)
        with pytest.raises(ConflictError, match="restore it first"):
            await drive.trash.restore(async_session, alice, tree.a.ref)

    async def test_blocked_by_trashed_grandparent(self, drive, async_session, alice, tree):
        await drive.trash.soft_delete(async_session, alice, tree.c.ref)
        await drive.trash.soft_delete(async_session, alice, tree.docs.ref)
        with pytest.raises(ConflictError):
            await drive.trash.restore(async_session, alice, tree.c.ref)


# ---------------------------------------------------------------------------
# Purge
# ---------------------------------------------------------------------------


class TestPurge:
    async def test_active_resource_rejected(self, drive, async_session, alice, tree):
        with pytest.raises(ConflictError, match="in trash"):
            await drive.trash.purge(async_session, alice, tree.a.ref)

    async def test_editor_may_not_purge(self, drive, async_session, alice, bob, tree):
        await drive.grants.grant(async_session, alice, tree.a.ref, bob.email, "editor")
        await drive.trash.soft_delete(async_session, bob, tree.a.ref)
        with pytest.raises(ForbiddenError):
            await drive.trash.purge(async_session, bob, tree.a.ref)

    async def test_file(self, drive, async_session, blobs, alice, tree):
        await drive.trash.soft_delete(async_session, alice, tree.a.ref)
        result = await drive.trash.purge(async_session, alice, tree.a.ref)
        assert result.success is True
        assert result.purged == [tree.a.ref]
        assert blobs.removed == ["alice/a"]
        assert await _state(drive, async_session, tree.a.ref) == "gone"
        with pytest.raises(NotFoundError):
            await drive.trash.purge(async_session, alice, tree.a.ref)

    async def test_file_blob_failure_is_best_effort(self, drive, async_session, blobs, alice, tree):
        blobs.fail_on.add("alice/a")
        await drive.trash.soft_delete(async_session, alice, tree.a.ref)
        result = await drive.trash.purge(async_session, alice, tree.a.ref)
        assert result.success is True
        assert result.purged == [tree.a.ref]
        assert [f.ref for f in result.blob_errors] == [tree.a.ref]
        assert await _state(drive, async_session, tree.a.ref) == "gone"

    async def test_folder_with_subfolders_needs_full_subtree(
        self, drive, async_session, alice, tree
    ):
        await drive.trash.soft_delete(async_session, alice, tree.docs.ref)
        with pytest.raises(ConflictError, match="sub-folders"):
            await drive.trash.purge(async_session, alice, tree.docs.ref)

    async def test_flat_folder(self, drive, async_session, blobs, alice, tree):
        await drive.trash.soft_delete(async_session, alice, tree.sub.ref)
        result = await drive.trash.purge(async_session, alice, tree.sub.ref)
        assert result.success is True
        assert set(result.purged) == {tree.sub.ref, tree.c.ref}
        assert blobs.removed == ["alice/c"]

    async def test_partial_failure_keeps_folder(self, drive, async_session, blobs, alice):
        t = drive.tree
        flat = await t.create_folder(async_session, alice, "Flat")
        a = await t.add_file(async_session, alice, "a", "alice/fa", folder_id=flat.ref.id)
        b = await t.add_file(async_session, alice, "b", "alice/fb", folder_id=flat.ref.id)
        blobs.fail_on.add("alice/fb")
        await drive.trash.soft_delete(async_session, alice, flat.ref)

        result = await drive.trash.purge(async_session, alice, flat.ref)
        assert result.success is False
        assert result.purged == [a.ref]
        assert [f.ref for f in result.failed] == [b.ref]
        assert blobs.removed == ["alice/fa"]
        assert await _state(drive, async_session, a.ref) == "gone"
        assert await _state(drive, async_session, b.ref) is not None
        assert await _state(drive, async_session, flat.ref) is not None

        # retry after the storage recovers finishes the job
        blobs.fail_on.clear()
        retry = await drive.trash.purge(async_session, alice, flat.ref)
        assert retry.success is True
        assert set(retry.purged) == {b.ref, flat.ref}

    async def test_full_subtree(self, subtree_drive, async_session, blobs, alice, tree):
        await subtree_drive.trash.soft_delete(async_session, alice, tree.docs.ref)
        result = await subtree_drive.trash.purge(async_session, alice, tree.docs.ref)
        assert result.success is True
        assert set(result.purged) == {
            tree.docs.ref,
            tree.a.ref,
            tree.b.ref,
            tree.sub.ref,
            tree.c.ref,
        }
        assert sorted(blobs.removed) == ["alice/a", "alice/b", "alice/c"]

    async def test_full_subtree_nested_failure_keeps_ancestors(
        self, subtree_drive, async_session, blobs, alice, tree
    ):
        blobs.fail_on.add("alice/c")
        await subtree_drive.trash.soft_delete(async_session, alice, tree.docs.ref)
        result = await subtree_drive.trash.purge(async_session, alice, tree.docs.ref)
        assert result.success is False
        assert [f.ref for f in result.failed] == [tree.c.ref]
        assert set(result.purged) == {tree.a.ref, tree.b.ref}
        assert await _state(subtree_drive, async_session, tree.sub.ref) is not None
        assert await _state(subtree_drive, async_session, tree.docs.ref) is not None


# ---------------------------------------------------------------------------
# Listing / emptying
# ---------------------------------------------------------------------------


class TestTrashListing:
    async def test_list_trash(self, drive, async_session, alice, carol, tree):
        await drive.trash.soft_delete(async_session, alice, tree.docs.ref)
        trashed = await drive.trash.list_trash(async_session, alice)
        assert {i.ref for i in trashed} == {tree.docs.ref, tree.a.ref, tree.b.ref}
        assert all(i.trashed for i in trashed)
        assert await drive.trash.list_trash(async_session, carol) == []

    async def test_empty_trash(self, drive, async_session, blobs, alice, tree):
        await drive.trash.soft_delete(async_session, alice, tree.c.ref)
        await drive.trash.soft_delete(async_session, alice, tree.sub.ref)
        await drive.trash.soft_delete(async_session, alice, tree.a.ref)

        result = await drive.trash.empty_trash(async_session, alice)
        assert result.success is True
        assert set(result.purged) == {tree.a.ref, tree.sub.ref, tree.c.ref}
        assert sorted(blobs.removed) == ["alice/a", "alice/c"]
        assert await drive.trash.list_trash(async_session, alice) == []
        assert await _state(drive, async_session, tree.b.ref) is None

    async def test_empty_trash_nested_folders(self, drive, async_session, alice, tree):
        await drive.trash.soft_delete(async_session, alice, tree.sub.ref)
        await drive.trash.soft_delete(async_session, alice, tree.docs.ref)

        result = await drive.trash.empty_trash(async_session, alice)
        assert result.success is True
        assert await drive.trash.list_trash(async_session, alice) == []
