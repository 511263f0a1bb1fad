"""
Panic Cascade — user-triggered emergency actions over owned projects.

Sub-actions always run in the same order so a backup is taken before
anything is destroyed:
    1. download_envs          decrypt the latest version of every environment
    2. flush_envs             delete every env-file version
    3. revoke_collaborators   clear every member list

Each sub-action is isolated: its failure is recorded on the result and
the cascade carries on. Projects where the user is only a collaborator
are never touched.
"""
import logging
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .audit import AuditLog
from .envfiles import EnvironmentFiles
from .exceptions import ValidationError
from .models import (
    AuditMetadata,
    LogAction,
    PanicButton,
    PanicExportItem,
    PanicResult,
    Project,
    UserPanicConfig,
)
from .storage import AbstractStore
from .utils import sanitize_for_log, utcnow
from .vault.config import HashEnvConfig
from .vault.crypto import EnvelopeCipher

logger = logging.getLogger("hashenv.panic")

UNSET: Any = object()


def _describe(err: Exception) -> str:
    return sanitize_for_log(str(err) or type(err).__name__)


class PanicSettings:
    """Per-user flush duration and panic-button flags."""

    def __init__(self, store: AbstractStore, config: HashEnvConfig):
        self._store = store
        self._config = config

    async def get(self, user_id: str) -> UserPanicConfig:
        """Return the user's settings, persisting defaults on first access."""
        settings = await self._store.get_panic_config(user_id)
        if settings is None:
            settings = UserPanicConfig(user_id=user_id)
            await self._store.save_panic_config(settings)
            logger.debug("Default panic settings created: user=%s", user_id)
        return settings

    def _check_flush_duration(self, value: Any) -> Optional[int]:
        if value is None or value == "":
            return None
        if isinstance(value, bool) or (
            isinstance(value, float) and not value.is_integer()
        ):
            raise ValidationError("Flush duration must be an integer")
        try:
            hours = int(value.strip() if isinstance(value, str) else value)
        except (TypeError, ValueError):
            raise ValidationError("Flush duration must be an integer") from None
        low, high = self._config.flush_duration_min, self._config.flush_duration_max
        if not low <= hours <= high:
            raise ValidationError(
                f"Flush duration must be between {low} and {high} hours"
            )
        return hours

    async def update(
        self,
        user_id: str,
        flush_duration: Any = UNSET,
        panic_button: Optional[Union[PanicButton, dict]] = None,
    ) -> UserPanicConfig:
        """Apply a partial update.

        Args:
            flush_duration: Hours (within the configured bounds), or None
                to disable. Omit to leave unchanged.
            panic_button: Flags to merge over the current ones; unknown
                keys are rejected.

        Raises:
            ValidationError: Out-of-range duration or malformed flags.
        """
        settings = await self.get(user_id)
        changes: dict[str, Any] = {}
        if flush_duration is not UNSET:
            changes["flush_duration"] = self._check_flush_duration(flush_duration)
        if panic_button is not None:
            if isinstance(panic_button, PanicButton):
                flags = panic_button.model_dump(exclude_unset=True)
            else:
                flags = dict(panic_button)
            unknown = set(flags) - set(PanicButton.model_fields)
            if unknown:
                raise ValidationError(
                    f"Unknown panic button option: {', '.join(sorted(unknown))}"
                )
            merged = settings.panic_button.model_dump()
            merged.update(flags)
            try:
                changes["panic_button"] = PanicButton.model_validate(merged, strict=True)
            except PydanticValidationError:
                raise ValidationError("Panic button options must be booleans") from None

        if changes:
            changes["updated_at"] = utcnow()
            settings = settings.model_copy(update=changes)
            await self._store.save_panic_config(settings)
            logger.info("Panic settings updated: user=%s", user_id)
        return settings


class PanicCascade:
    def __init__(
        self,
        store: AbstractStore,
        cipher: EnvelopeCipher,
        env_files: EnvironmentFiles,
        audit: AuditLog,
        settings: PanicSettings,
        config: HashEnvConfig,
    ):
        self._store = store
        self._cipher = cipher
        self._env_files = env_files
        self._audit = audit
        self._settings = settings
        self._config = config

    async def trigger(self, user_id: str, confirmed: bool = False) -> PanicResult:
        """Run the configured panic actions for ``user_id``.

        Raises:
            ValidationError: No action configured, or confirmation required
                but not given.
        """
        settings = await self._settings.get(user_id)
        button = settings.panic_button
        if not button.has_actions:
            raise ValidationError("No panic actions configured")
        if button.ask_confirmation and not confirmed:
            raise ValidationError("Panic action requires confirmation")

        projects = await self._store.find_owned_projects(user_id)
        logger.warning(
            "Panic triggered: user=%s projects=%s download=%s flush=%s revoke=%s",
            user_id, len(projects), button.download_envs,
            button.flush_envs, button.revoke_collaborators,
        )
        result = PanicResult()

        if button.download_envs:
            try:
                await self._download(projects, result)
                result.download_envs = True
            except Exception as err:
                result.download_error = _describe(err)
                logger.error(
                    "Panic download failed: user=%s: %s", user_id, type(err).__name__
                )

        if button.flush_envs:
            try:
                result.flushed_count = await self._flush(user_id, projects)
                result.flush_envs = True
            except Exception as err:
                result.flush_error = _describe(err)
                logger.error(
                    "Panic flush failed: user=%s: %s", user_id, type(err).__name__
                )

        if button.revoke_collaborators:
            try:
                result.revoked_count = await self._revoke(projects)
                result.revoke_collaborators = True
            except Exception as err:
                result.revoke_error = _describe(err)
                logger.error(
                    "Panic revoke failed: user=%s: %s", user_id, type(err).__name__
                )

        logger.info(
            "Panic finished: user=%s exported=%s flushed=%s revoked=%s errors=%s",
            user_id, len(result.exports), result.flushed_count,
            result.revoked_count, len(result.errors),
        )
        return result

    async def _download(self, projects: list[Project], result: PanicResult) -> None:
        now = utcnow()
        parts = [f"# HashEnv Backup - {now.isoformat()}\n\n"]
        for project in projects:
            for env_file in await self._env_files.latest_versions(project.id):
                item = PanicExportItem(
                    project_id=project.id,
                    project_name=project.name,
                    environment=env_file.environment,
                    version=env_file.version,
                )
                try:
                    content = self._cipher.decrypt_text(env_file.blob)
                except Exception as err:
                    logger.error(
                        "Panic export skipped: project=%s env=%s version=%s: %s",
                        project.id, env_file.environment.value,
                        env_file.version, type(err).__name__,
                    )
                    result.exports.append(item.model_copy(update={"ok": False}))
                    continue
                parts.append(
                    f"# Project: {project.name} - Environment: "
                    f"{env_file.environment.value} - Version: {env_file.version}\n"
                    f"{content}\n\n"
                )
                result.exports.append(item)
        result.download_content = "".join(parts)
        result.download_filename = f"hashenv-backup-{int(now.timestamp() * 1000)}.txt"

    async def _flush(self, user_id: str, projects: list[Project]) -> int:
        if self._config.audit_panic_flush:
            for project in projects:
                for env_file in await self._store.find_env_files(project.id):
                    await self._audit.record(
                        project.id,
                        user_id,
                        LogAction.DELETE,
                        env_file.environment,
                        AuditMetadata(old_version=env_file.version),
                        env_file_id=env_file.id,
                        version=env_file.version,
                    )
        return await self._store.delete_env_files([p.id for p in projects])

    async def _revoke(self, projects: list[Project]) -> int:
        revoked = 0
        for project in projects:
            if not project.members:
                continue
            await self._store.set_project_members(project.id, [])
            revoked += len(project.members)
        return revoked
