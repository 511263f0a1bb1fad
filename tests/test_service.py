"""End-to-end tests through the HashEnv facade."""
import pytest

from hashenv import HashEnv, MemoryStore, generate_master_key
from hashenv.exceptions import ConfigurationError, Forbidden, IntegrityError
from hashenv.vault.config import MASTER_KEY_ENV


class TestConstruction:
    """Building the facade."""

    def test_from_env(self):
        """Test the facade loads its key from the environment mapping."""
        service = HashEnv.from_env(MemoryStore(), {MASTER_KEY_ENV: generate_master_key()})
        assert service.config.max_content_size == 50 * 1024

    def test_from_env_missing_key(self):
        """Test a missing key stops construction."""
        with pytest.raises(ConfigurationError):
            HashEnv.from_env(MemoryStore(), {})


class TestReadCollaborator:
    """A read-only collaborator's view of a project."""

    @pytest.mark.asyncio
    async def test_read_but_not_write(self, service, project, owner, reader):
        """Test uploads are forbidden while downloads succeed."""
        await service.upload_env(owner.id, project.id, "prod", "TOKEN=abc")
        with pytest.raises(Forbidden):
            await service.upload_env(reader.id, project.id, "prod", "TOKEN=evil")
        assert await service.download_env(reader.id, project.id, "prod") == "TOKEN=abc"
        versions = await service.list_env_versions(reader.id, project.id)
        assert [v.version for v in versions] == [1]

    @pytest.mark.asyncio
    async def test_no_history_changes(self, service, project, owner, reader):
        """Test readers cannot edit or delete versions."""
        meta = await service.upload_env(owner.id, project.id, "dev", "A=1")
        with pytest.raises(Forbidden):
            await service.edit_env(reader.id, project.id, meta.id, "A=2")
        with pytest.raises(Forbidden):
            await service.delete_env(reader.id, project.id, meta.id)

    @pytest.mark.asyncio
    async def test_no_secret_writes(self, service, project, owner, reader):
        """Test readers can get but not change secrets."""
        meta = await service.create_secret(owner.id, project.id, "token", "v")
        assert (await service.get_secret(reader.id, project.id, meta.id)).content == "v"
        with pytest.raises(Forbidden):
            await service.update_secret(reader.id, project.id, meta.id, content="w")
        with pytest.raises(Forbidden):
            await service.delete_secret(reader.id, project.id, meta.id)


class TestWriteCollaborator:
    """A write collaborator uploads but does not own."""

    @pytest.mark.asyncio
    async def test_upload_and_download(self, service, project, writer, reader):
        """Test writer uploads are visible to readers."""
        await service.upload_env(writer.id, project.id, "staging", "S=1")
        assert await service.download_env(reader.id, project.id, "staging") == "S=1"

    @pytest.mark.asyncio
    async def test_cannot_delete_versions(self, service, project, writer):
        """Test deleting history is owner-only."""
        meta = await service.upload_env(writer.id, project.id, "dev", "A=1")
        with pytest.raises(Forbidden):
            await service.delete_env(writer.id, project.id, meta.id)


class TestStrangers:
    """Users with no relation to the project."""

    @pytest.mark.asyncio
    async def test_everything_denied(self, service, project, owner, stranger):
        """Test a stranger can neither read nor write."""
        await service.upload_env(owner.id, project.id, "dev", "A=1")
        with pytest.raises(Forbidden):
            await service.download_env(stranger.id, project.id, "dev")
        with pytest.raises(Forbidden):
            await service.list_secrets(stranger.id, project.id)
        with pytest.raises(Forbidden):
            await service.upload_env(stranger.id, project.id, "dev", "A=2")


class TestKeyIsolation:
    """Records sealed under one key do not open under another."""

    @pytest.mark.asyncio
    async def test_other_key_fails_integrity(self, store, project, owner):
        """Test a service with a different key raises IntegrityError."""
        first = HashEnv.from_env(store, {MASTER_KEY_ENV: generate_master_key()})
        await first.upload_env(owner.id, project.id, "dev", "A=1")
        second = HashEnv.from_env(store, {MASTER_KEY_ENV: generate_master_key()})
        with pytest.raises(IntegrityError):
            await second.download_env(owner.id, project.id, "dev")
