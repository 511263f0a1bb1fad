"""
Environment Files — versioned, encrypted .env snapshots per project.

Each upload appends version ``max + 1`` for its (project, environment).
Two concurrent uploads may pick the same number; the store's unique index
rejects the loser, which re-reads and retries with exponential backoff.

Nothing here checks permissions: callers go through ``HashEnv``.
"""
import asyncio
import logging
from typing import Optional, Union

from .audit import AuditLog
from .exceptions import Conflict, DuplicateKey, NotFound, ValidationError
from .models import (
    AuditMetadata,
    EnvFileMetadata,
    EnvFileVersion,
    Environment,
    LogAction,
    as_environment,
)
from .storage import AbstractStore
from .utils import validate_id
from .vault.config import HashEnvConfig
from .vault.crypto import EnvelopeCipher

logger = logging.getLogger("hashenv.envfiles")

DOWNLOAD_FILENAME = ".env"


def check_content_size(content: str, limit: int) -> str:
    """Reject non-string or oversized content.

    Raises:
        ValidationError: If ``content`` is not a str or its UTF-8
            encoding exceeds ``limit`` bytes.
    """
    if not isinstance(content, str):
        raise ValidationError("Content must be a string")
    if len(content.encode("utf-8")) > limit:
        raise ValidationError(f"Content size must be less than {limit // 1024}KB")
    return content


class EnvironmentFiles:
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

    async def _next_version(self, project_id: str, environment: Environment) -> int:
        latest = await self._store.get_latest_env_file(project_id, environment)
        return latest.version + 1 if latest else 1

    async def _load(self, project_id: str, env_file_id: str) -> EnvFileVersion:
        validate_id(env_file_id, "environment file ID")
        env_file = await self._store.get_env_file(project_id, env_file_id)
        if env_file is None:
            raise NotFound("Environment file not found")
        return env_file

    async def upload(
        self,
        project_id: str,
        environment: Union[Environment, str],
        content: str,
        actor_id: str,
    ) -> EnvFileMetadata:
        """Store ``content`` as the next version of ``environment``.

        Raises:
            ValidationError: Bad environment or oversized content.
            Conflict: Version race not resolved within the retry budget.
        """
        environment = as_environment(environment)
        check_content_size(content, self._config.max_content_size)
        blob = self._cipher.encrypt(content)

        retries = self._config.version_retries
        for attempt in range(retries):
            version = await self._next_version(project_id, environment)
            env_file = EnvFileVersion(
                project_id=project_id,
                environment=environment,
                version=version,
                blob=blob,
                uploaded_by=actor_id,
            )
            try:
                await self._store.insert_env_file(env_file)
                break
            except DuplicateKey:
                logger.warning(
                    "Version race: project=%s env=%s version=%s (attempt %s/%s)",
                    project_id, environment.value, version, attempt + 1, retries,
                )
                if attempt < retries - 1:
                    await asyncio.sleep(
                        self._config.version_retry_delay * 2 ** attempt
                    )
        else:
            raise Conflict(
                "Could not allocate a new version, please retry the upload"
            )

        logger.info(
            "Env file uploaded: project=%s env=%s version=%s",
            project_id, environment.value, env_file.version,
        )
        await self._audit.record(
            project_id,
            actor_id,
            LogAction.UPLOAD,
            environment,
            AuditMetadata(new_version=env_file.version),
            env_file_id=env_file.id,
            version=env_file.version,
        )
        return env_file.metadata()

    async def download(
        self,
        project_id: str,
        environment: Union[Environment, str],
        actor_id: str,
        version: Optional[int] = None,
    ) -> str:
        """Decrypt a version (latest when ``version`` is None).

        Raises:
            NotFound: No such version.
            IntegrityError: Stored record failed authentication.
        """
        environment = as_environment(environment)
        if version is None:
            env_file = await self._store.get_latest_env_file(project_id, environment)
        else:
            if isinstance(version, bool) or not isinstance(version, int) or version < 1:
                raise ValidationError("Version must be a positive integer")
            env_file = await self._store.get_env_file_version(
                project_id, environment, version
            )
        if env_file is None:
            raise NotFound("Environment file not found")

        content = self._cipher.decrypt_text(env_file.blob)
        await self._audit.record(
            project_id,
            actor_id,
            LogAction.DOWNLOAD,
            environment,
            AuditMetadata(file_name=DOWNLOAD_FILENAME),
            env_file_id=env_file.id,
            version=env_file.version,
        )
        return content

    async def content(
        self, project_id: str, env_file_id: str, actor_id: str
    ) -> str:
        """Decrypt one version by id, for the editor.

        Recorded as an ``access`` entry naming the version that was read.
        """
        env_file = await self._load(project_id, env_file_id)
        content = self._cipher.decrypt_text(env_file.blob)
        await self._audit.record(
            project_id,
            actor_id,
            LogAction.ACCESS,
            env_file.environment,
            AuditMetadata(file_name=DOWNLOAD_FILENAME),
            env_file_id=env_file.id,
            version=env_file.version,
        )
        return content

    async def edit_in_place(
        self, project_id: str, env_file_id: str, content: str, actor_id: str
    ) -> EnvFileMetadata:
        """Replace a version's content without creating a new version."""
        check_content_size(content, self._config.max_content_size)
        env_file = await self._load(project_id, env_file_id)
        blob = self._cipher.encrypt(content)
        if not await self._store.update_env_file_blob(env_file.id, blob):
            raise NotFound("Environment file not found")

        logger.info(
            "Env file edited: project=%s env=%s version=%s",
            project_id, env_file.environment.value, env_file.version,
        )
        await self._audit.record(
            project_id,
            actor_id,
            LogAction.EDIT,
            env_file.environment,
            AuditMetadata(old_version=env_file.version, new_version=env_file.version),
            env_file_id=env_file.id,
            version=env_file.version,
        )
        return env_file.metadata()

    async def delete(self, project_id: str, env_file_id: str, actor_id: str) -> None:
        """Audit, then remove the version.

        The row is removed even when the audit write fails.
        """
        env_file = await self._load(project_id, env_file_id)
        await self._audit.record(
            project_id,
            actor_id,
            LogAction.DELETE,
            env_file.environment,
            AuditMetadata(old_version=env_file.version),
            env_file_id=env_file.id,
            version=env_file.version,
        )
        await self._store.delete_env_file(env_file.id)
        logger.info(
            "Env file deleted: project=%s env=%s version=%s",
            project_id, env_file.environment.value, env_file.version,
        )

    async def list_versions(
        self,
        project_id: str,
        environment: Optional[Union[Environment, str]] = None,
    ) -> list[EnvFileMetadata]:
        if environment is not None:
            environment = as_environment(environment)
        rows = await self._store.find_env_files(project_id, environment)
        return [row.metadata() for row in rows]

    async def latest_versions(self, project_id: str) -> list[EnvFileVersion]:
        """Newest version of each environment, in environment order."""
        latest: dict[Environment, EnvFileVersion] = {}
        for row in await self._store.find_env_files(project_id):
            latest.setdefault(row.environment, row)
        return list(latest.values())
