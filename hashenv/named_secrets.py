"""
Named Secrets — single encrypted values addressed by name.

Unlike environment files there is no history: an update overwrites the
record in place. Names are unique per project.
"""
import logging
from typing import Optional

from .audit import AuditLog
from .exceptions import Conflict, DuplicateKey, NotFound, ValidationError
from .models import (
    AuditMetadata,
    LogAction,
    NamedSecret,
    SecretContent,
    SecretMetadata,
)
from .envfiles import check_content_size
from .projects import validate_name
from .storage import AbstractStore
from .utils import utcnow, validate_id
from .vault.config import HashEnvConfig
from .vault.crypto import EnvelopeCipher

logger = logging.getLogger("hashenv.secrets")

NAME_TAKEN = "A secret with this name already exists in this project"


class NamedSecrets:
    def __init__(
        self,
        store: AbstractStore,
        cipher: EnvelopeCipher,
        audit: AuditLog,
        config: HashEnvConfig,
    ):
        self._store = store
        self._cipher = cipher
        self._audit = audit
        self._config = config

    async def _load(self, project_id: str, secret_id: str) -> NamedSecret:
        validate_id(secret_id, "secret ID")
        secret = await self._store.get_secret(project_id, secret_id)
        if secret is None:
            raise NotFound("Secret not found")
        return secret

    async def _audit_secret(
        self, project_id: str, actor_id: str, action: LogAction, name: str
    ) -> None:
        await self._audit.record(
            project_id, actor_id, action, None, AuditMetadata(file_name=name)
        )

    async def create(
        self, project_id: str, name: str, content: str, actor_id: str
    ) -> SecretMetadata:
        """Encrypt and store a new secret.

        Raises:
            ValidationError: Bad name or oversized content.
            Conflict: Name already used in this project.
        """
        name = validate_name(name, "Secret name")
        check_content_size(content, self._config.max_content_size)
        if await self._store.find_secret_by_name(project_id, name) is not None:
            raise Conflict(NAME_TAKEN)

        secret = NamedSecret(
            project_id=project_id,
            name=name,
            blob=self._cipher.encrypt(content),
            created_by=actor_id,
        )
        try:
            await self._store.insert_secret(secret)
        except DuplicateKey:
            raise Conflict(NAME_TAKEN) from None

        logger.info("Secret created: project=%s secret=%s", project_id, secret.id)
        await self._audit_secret(project_id, actor_id, LogAction.UPLOAD, name)
        return secret.metadata()

    async def list(self, project_id: str) -> list[SecretMetadata]:
        return [s.metadata() for s in await self._store.find_secrets(project_id)]

    async def get(
        self, project_id: str, secret_id: str, actor_id: str
    ) -> SecretContent:
        secret = await self._load(project_id, secret_id)
        content = self._cipher.decrypt_text(secret.blob)
        await self._audit_secret(project_id, actor_id, LogAction.DOWNLOAD, secret.name)
        return SecretContent(
            id=secret.id,
            name=secret.name,
            content=content,
            created_at=secret.created_at,
            updated_at=secret.updated_at,
        )

    async def update(
        self,
        project_id: str,
        secret_id: str,
        actor_id: str,
        name: Optional[str] = None,
        content: Optional[str] = None,
    ) -> SecretMetadata:
        """Rename and/or re-encrypt a secret.

        Raises:
            ValidationError: Nothing to update, bad name or oversized content.
            NotFound: Secret does not exist.
            Conflict: New name collides with another secret.
        """
        if name is None and content is None:
            raise ValidationError("Nothing to update: provide a name or content")
        if name is not None:
            name = validate_name(name, "Secret name")
        if content is not None:
            check_content_size(content, self._config.max_content_size)

        secret = await self._load(project_id, secret_id)
        changes = {"updated_at": utcnow()}
        if name is not None and name != secret.name:
            other = await self._store.find_secret_by_name(project_id, name)
            if other is not None and other.id != secret.id:
                raise Conflict(NAME_TAKEN)
            changes["name"] = name
        if content is not None:
            changes["blob"] = self._cipher.encrypt(content)

        updated = secret.model_copy(update=changes)
        try:
            found = await self._store.update_secret(updated)
        except DuplicateKey:
            raise Conflict(NAME_TAKEN) from None
        if not found:
            raise NotFound("Secret not found")

        logger.info("Secret updated: project=%s secret=%s", project_id, secret.id)
        await self._audit_secret(project_id, actor_id, LogAction.EDIT, updated.name)
        return updated.metadata()

    async def delete(self, project_id: str, secret_id: str, actor_id: str) -> None:
        secret = await self._load(project_id, secret_id)
        await self._audit_secret(project_id, actor_id, LogAction.DELETE, secret.name)
        if not await self._store.delete_secret(project_id, secret.id):
            raise NotFound("Secret not found")
        logger.info("Secret deleted: project=%s secret=%s", project_id, secret.id)
