"""Tests for project creation and membership management."""
import asyncio

import pytest

from hashenv.exceptions import Forbidden, NotFound, ValidationError
from hashenv.models import Permission
from hashenv.projects import validate_name
from hashenv.storage import MemoryStore
from hashenv.utils import new_id


class TestNames:
    """validate_name()."""

    def test_trims(self):
        """Test surrounding whitespace is stripped."""
        assert validate_name("  Billing API ") == "Billing API"

    @pytest.mark.parametrize("name", ["", "   ", "a" * 101, "bad/name", "dollar$", None])
    def test_rejects(self, name):
        """Test empty, overlong and invalid names."""
        with pytest.raises(ValidationError):
            validate_name(name)

    def test_label_in_message(self):
        """Test the label is used in the error."""
        with pytest.raises(ValidationError, match="Secret name"):
            validate_name("", "Secret name")


class TestProjects:
    """Creating and listing projects."""

    @pytest.mark.asyncio
    async def test_create(self, service, owner):
        """Test a new project has no members and a hex id."""
        project = await service.create_project(owner.id, "Payments")
        assert project.owner_id == owner.id
        assert project.members == []
        assert len(project.id) == 32

    @pytest.mark.asyncio
    async def test_list_includes_collaborations(self, service, project, owner, reader, stranger):
        """Test owners and members see the project, strangers do not."""
        assert [p.id for p in await service.list_projects(owner.id)] == [project.id]
        assert [p.id for p in await service.list_projects(reader.id)] == [project.id]
        assert await service.list_projects(stranger.id) == []

    @pytest.mark.asyncio
    async def test_get_requires_access(self, service, project, reader, stranger):
        """Test get_project needs read access."""
        assert (await service.get_project(reader.id, project.id)).name == "Billing API"
        with pytest.raises(Forbidden):
            await service.get_project(stranger.id, project.id)


class TestMembers:
    """add_member() and remove_member()."""

    @pytest.mark.asyncio
    async def test_add_upserts(self, service, project, owner, reader):
        """Test re-adding a member changes the permission in place."""
        updated = await service.add_member(owner.id, project.id, reader.id, "write")
        assert updated.member(reader.id).permission is Permission.WRITE
        assert len(updated.members) == 2
        stored = await service.get_project(owner.id, project.id)
        assert stored.member(reader.id).permission is Permission.WRITE

    @pytest.mark.asyncio
    async def test_only_owner_adds(self, service, project, writer, stranger):
        """Test write collaborators cannot manage membership."""
        with pytest.raises(Forbidden):
            await service.add_member(writer.id, project.id, stranger.id, "read")

    @pytest.mark.asyncio
    async def test_add_unknown_user(self, service, project, owner):
        """Test granting access to a missing user is NotFound."""
        with pytest.raises(NotFound):
            await service.add_member(owner.id, project.id, new_id(), "read")

    @pytest.mark.asyncio
    async def test_add_owner_rejected(self, service, project, owner):
        """Test the owner cannot be added as a collaborator."""
        with pytest.raises(ValidationError):
            await service.add_member(owner.id, project.id, owner.id, "read")

    @pytest.mark.asyncio
    async def test_bad_permission(self, service, project, owner, stranger):
        """Test unknown permission strings are rejected."""
        with pytest.raises(ValidationError):
            await service.add_member(owner.id, project.id, stranger.id, "admin")

    @pytest.mark.asyncio
    async def test_remove(self, service, project, owner, reader):
        """Test a removed member loses access."""
        updated = await service.remove_member(owner.id, project.id, reader.id)
        assert updated.member(reader.id) is None
        with pytest.raises(Forbidden):
            await service.get_project(reader.id, project.id)

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self, service, project, owner, reader):
        """Test removing twice leaves the same member list."""
        first = await service.remove_member(owner.id, project.id, reader.id)
        second = await service.remove_member(owner.id, project.id, reader.id)
        assert first.members == second.members

    @pytest.mark.asyncio
    async def test_remove_requires_owner(self, service, project, writer, reader):
        """Test collaborators cannot revoke each other."""
        with pytest.raises(Forbidden):
            await service.remove_member(writer.id, project.id, reader.id)


class YieldingStore(MemoryStore):
    """Hands control back to the event loop before every read."""

    async def get_user(self, user_id):
        await asyncio.sleep(0)
        return await super().get_user(user_id)

    async def get_project(self, project_id):
        await asyncio.sleep(0)
        return await super().get_project(project_id)

    async def find_owned_projects(self, owner_id):
        await asyncio.sleep(0)
        return await super().find_owned_projects(owner_id)


class TestConcurrentMembership:
    """Interleaved grants and revocations."""

    @pytest.fixture
    def store(self):
        return YieldingStore()

    @pytest.mark.asyncio
    async def test_parallel_grants_both_kept(self, service, owner, reader, writer):
        """Test two grants running together both land."""
        project = await service.create_project(owner.id, "Shared")
        await asyncio.gather(
            service.add_member(owner.id, project.id, reader.id, "read"),
            service.add_member(owner.id, project.id, writer.id, "write"),
        )
        stored = await service.get_project(owner.id, project.id)
        assert {m.user_id for m in stored.members} == {reader.id, writer.id}

    @pytest.mark.asyncio
    async def test_grant_during_revoke(
        self, service, project, owner, reader, writer, stranger
    ):
        """Test a grant racing the panic revoke cannot restore revoked members."""
        await service.update_panic_settings(
            owner.id,
            panic_button={"revoke_collaborators": True, "ask_confirmation": False},
        )
        await asyncio.gather(
            service.add_member(owner.id, project.id, stranger.id, "read"),
            service.panic(owner.id),
        )
        stored = await service.get_project(owner.id, project.id)
        remaining = {m.user_id for m in stored.members}
        assert reader.id not in remaining
        assert writer.id not in remaining
        assert remaining <= {stranger.id}
