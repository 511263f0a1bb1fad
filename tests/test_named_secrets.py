"""Tests for named secrets."""
import pytest

from hashenv.exceptions import Conflict, Forbidden, NotFound, ValidationError
from hashenv.models import LogAction
from hashenv.utils import new_id


class TestCreate:
    """Creating secrets."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, service, project, owner, reader):
        """Test a created secret decrypts for readers."""
        meta = await service.create_secret(owner.id, project.id, " stripe key ", "sk_live_123")
        assert meta.name == "stripe key"
        secret = await service.get_secret(reader.id, project.id, meta.id)
        assert secret.content == "sk_live_123"
        assert "sk_live_123" not in repr(secret)

    @pytest.mark.asyncio
    async def test_duplicate_name(self, service, project, owner, writer):
        """Test names are unique per project."""
        await service.create_secret(owner.id, project.id, "db_password", "a")
        with pytest.raises(Conflict, match="already exists"):
            await service.create_secret(writer.id, project.id, "db_password", "b")

    @pytest.mark.asyncio
    async def test_same_name_other_project(self, service, project, owner):
        """Test the same name may be reused in another project."""
        other = await service.create_project(owner.id, "Other")
        await service.create_secret(owner.id, project.id, "token", "a")
        await service.create_secret(owner.id, other.id, "token", "b")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "a" * 101, "bad.name", "semi;colon"])
    async def test_bad_names(self, service, project, owner, name):
        """Test invalid secret names."""
        with pytest.raises(ValidationError):
            await service.create_secret(owner.id, project.id, name, "x")

    @pytest.mark.asyncio
    async def test_reader_cannot_create(self, service, project, reader):
        """Test read collaborators cannot write secrets."""
        with pytest.raises(Forbidden):
            await service.create_secret(reader.id, project.id, "token", "x")

    @pytest.mark.asyncio
    async def test_writer_can_create(self, service, project, writer):
        """Test write collaborators may create secrets."""
        meta = await service.create_secret(writer.id, project.id, "token", "x")
        assert meta.created_by == writer.id


class TestListAndUpdate:
    """Listing, renaming and overwriting."""

    @pytest.mark.asyncio
    async def test_list_sorted_without_content(self, service, project, owner, reader):
        """Test secrets are listed by name and carry no blob."""
        for name in ("zeta", "alpha", "mid"):
            await service.create_secret(owner.id, project.id, name, "x")
        listed = await service.list_secrets(reader.id, project.id)
        assert [s.name for s in listed] == ["alpha", "mid", "zeta"]
        assert "blob" not in listed[0].model_dump()

    @pytest.mark.asyncio
    async def test_update_content(self, service, store, project, owner):
        """Test content updates re-encrypt and bump updated_at."""
        meta = await service.create_secret(owner.id, project.id, "token", "old")
        before = await store.get_secret(project.id, meta.id)
        updated = await service.update_secret(owner.id, project.id, meta.id, content="new")
        after = await store.get_secret(project.id, meta.id)
        assert after.blob.nonce != before.blob.nonce
        assert updated.updated_at >= before.updated_at
        assert (await service.get_secret(owner.id, project.id, meta.id)).content == "new"

    @pytest.mark.asyncio
    async def test_rename(self, service, project, owner):
        """Test a rename keeps the content."""
        meta = await service.create_secret(owner.id, project.id, "token", "v")
        renamed = await service.update_secret(owner.id, project.id, meta.id, name="api token")
        assert renamed.name == "api token"
        assert (await service.get_secret(owner.id, project.id, meta.id)).content == "v"

    @pytest.mark.asyncio
    async def test_rename_to_own_name(self, service, project, owner):
        """Test renaming a secret to its current name is allowed."""
        meta = await service.create_secret(owner.id, project.id, "token", "v")
        renamed = await service.update_secret(owner.id, project.id, meta.id, name="token")
        assert renamed.name == "token"

    @pytest.mark.asyncio
    async def test_rename_collision(self, service, project, owner):
        """Test renaming onto another secret's name."""
        await service.create_secret(owner.id, project.id, "a", "1")
        meta = await service.create_secret(owner.id, project.id, "b", "2")
        with pytest.raises(Conflict):
            await service.update_secret(owner.id, project.id, meta.id, name="a")

    @pytest.mark.asyncio
    async def test_update_nothing(self, service, project, owner):
        """Test an update with neither name nor content."""
        meta = await service.create_secret(owner.id, project.id, "token", "v")
        with pytest.raises(ValidationError):
            await service.update_secret(owner.id, project.id, meta.id)


class TestDelete:
    """Deleting secrets."""

    @pytest.mark.asyncio
    async def test_delete(self, service, project, writer):
        """Test deleted secrets are gone."""
        meta = await service.create_secret(writer.id, project.id, "token", "v")
        await service.delete_secret(writer.id, project.id, meta.id)
        with pytest.raises(NotFound):
            await service.get_secret(writer.id, project.id, meta.id)

    @pytest.mark.asyncio
    async def test_delete_missing(self, service, project, owner):
        """Test deleting an unknown id."""
        with pytest.raises(NotFound):
            await service.delete_secret(owner.id, project.id, new_id())

    @pytest.mark.asyncio
    async def test_other_project_id(self, service, project, owner):
        """Test a secret cannot be reached through another project."""
        other = await service.create_project(owner.id, "Other")
        meta = await service.create_secret(owner.id, project.id, "token", "v")
        with pytest.raises(NotFound):
            await service.get_secret(owner.id, other.id, meta.id)


class TestAudit:
    """Secret operations are audited by name."""

    @pytest.mark.asyncio
    async def test_actions_recorded(self, service, project, owner):
        """Test create, get, update and delete map to audit actions."""
        meta = await service.create_secret(owner.id, project.id, "token", "v")
        await service.get_secret(owner.id, project.id, meta.id)
        await service.update_secret(owner.id, project.id, meta.id, content="w")
        await service.delete_secret(owner.id, project.id, meta.id)

        entries = await service.audit_logs(owner.id, project.id)
        assert [e.action for e in reversed(entries)] == [
            LogAction.UPLOAD, LogAction.DOWNLOAD, LogAction.EDIT, LogAction.DELETE,
        ]
        for entry in entries:
            assert entry.environment is None
            assert entry.metadata.as_dict() == {"fileName": "token"}
