"""
HashEnv — single entry point that checks access, then delegates.

The engines (``EnvironmentFiles``, ``NamedSecrets``, ``AuditLog``,
``PanicCascade``) trust their callers. Every public method here runs the
permission check first, so a request layer only needs this class.

Usage:
    hashenv = HashEnv.from_env(PostgresStore(pool))
    project = await hashenv.create_project(user_id, "billing")
    meta = await hashenv.upload_env(user_id, project.id, "prod", text)
"""
from typing import Any, Optional, Union

from .audit import AuditLog
from .envfiles import EnvironmentFiles
from .models import (
    AuditLogEntry,
    EnvFileMetadata,
    Environment,
    PanicButton,
    PanicResult,
    Permission,
    Project,
    SecretContent,
    SecretMetadata,
    UserPanicConfig,
)
from .named_secrets import NamedSecrets
from .panic import PanicCascade, PanicSettings, UNSET
from .permissions import PermissionEvaluator
from .projects import Projects
from .storage import AbstractStore
from .vault.config import HashEnvConfig
from .vault.crypto import EnvelopeCipher


class HashEnv:
    """Permission-gated facade over the HashEnv core."""

    def __init__(self, config: HashEnvConfig, store: AbstractStore):
        self.config = config
        self.store = store
        self.cipher = EnvelopeCipher.from_config(config)
        self.permissions = PermissionEvaluator(store)
        self.projects = Projects(store, self.permissions)
        self.audit = AuditLog(store, config)
        self.env_files = EnvironmentFiles(store, self.cipher, self.audit, config)
        self.secrets = NamedSecrets(store, self.cipher, self.audit, config)
        self.panic_settings = PanicSettings(store, config)
        self.panic_cascade = PanicCascade(
            store, self.cipher, self.env_files, self.audit,
            self.panic_settings, config,
        )

    @classmethod
    def from_env(
        cls, store: AbstractStore, environ: Optional[dict] = None
    ) -> "HashEnv":
        """Build from MASTER_ENCRYPTION_KEY and HASHENV_* variables."""
        return cls(HashEnvConfig.from_env(environ), store)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def create_project(self, user_id: str, name: str) -> Project:
        return await self.projects.create(user_id, name)

    async def list_projects(self, user_id: str) -> list[Project]:
        return await self.projects.list_for_user(user_id)

    async def get_project(self, user_id: str, project_id: str) -> Project:
        return await self.projects.get(user_id, project_id)

    async def add_member(
        self,
        user_id: str,
        project_id: str,
        member_id: str,
        permission: Union[Permission, str],
    ) -> Project:
        return await self.projects.add_member(user_id, project_id, member_id, permission)

    async def remove_member(
        self, user_id: str, project_id: str, member_id: str
    ) -> Project:
        return await self.projects.remove_member(user_id, project_id, member_id)

    # ------------------------------------------------------------------
    # Environment files
    # ------------------------------------------------------------------

    async def upload_env(
        self,
        user_id: str,
        project_id: str,
        environment: Union[Environment, str],
        content: str,
    ) -> EnvFileMetadata:
        await self.permissions.authorize(user_id, project_id, Permission.WRITE)
        return await self.env_files.upload(project_id, environment, content, user_id)

    async def download_env(
        self,
        user_id: str,
        project_id: str,
        environment: Union[Environment, str],
        version: Optional[int] = None,
    ) -> str:
        await self.permissions.authorize(user_id, project_id, Permission.READ)
        return await self.env_files.download(project_id, environment, user_id, version)

    async def env_content(
        self, user_id: str, project_id: str, env_file_id: str
    ) -> str:
        await self.permissions.authorize(user_id, project_id, Permission.READ)
        return await self.env_files.content(project_id, env_file_id, user_id)

    async def list_env_versions(
        self,
        user_id: str,
        project_id: str,
        environment: Optional[Union[Environment, str]] = None,
    ) -> list[EnvFileMetadata]:
        await self.permissions.authorize(user_id, project_id, Permission.READ)
        return await self.env_files.list_versions(project_id, environment)

    async def edit_env(
        self, user_id: str, project_id: str, env_file_id: str, content: str
    ) -> EnvFileMetadata:
        """Owner only: rewriting history is not a collaborator action."""
        await self.permissions.require_owner(user_id, project_id)
        return await self.env_files.edit_in_place(
            project_id, env_file_id, content, user_id
        )

    async def delete_env(
        self, user_id: str, project_id: str, env_file_id: str
    ) -> None:
        await self.permissions.require_owner(user_id, project_id)
        await self.env_files.delete(project_id, env_file_id, user_id)

    # ------------------------------------------------------------------
    # Named secrets
    # ------------------------------------------------------------------

    async def create_secret(
        self, user_id: str, project_id: str, name: str, content: str
    ) -> SecretMetadata:
        await self.permissions.authorize(user_id, project_id, Permission.WRITE)
        return await self.secrets.create(project_id, name, content, user_id)

    async def list_secrets(
        self, user_id: str, project_id: str
    ) -> list[SecretMetadata]:
        await self.permissions.authorize(user_id, project_id, Permission.READ)
        return await self.secrets.list(project_id)

    async def get_secret(
        self, user_id: str, project_id: str, secret_id: str
    ) -> SecretContent:
        await self.permissions.authorize(user_id, project_id, Permission.READ)
        return await self.secrets.get(project_id, secret_id, user_id)

    async def update_secret(
        self,
        user_id: str,
        project_id: str,
        secret_id: str,
        name: Optional[str] = None,
        content: Optional[str] = None,
    ) -> SecretMetadata:
        await self.permissions.authorize(user_id, project_id, Permission.WRITE)
        return await self.secrets.update(
            project_id, secret_id, user_id, name=name, content=content
        )

    async def delete_secret(
        self, user_id: str, project_id: str, secret_id: str
    ) -> None:
        await self.permissions.authorize(user_id, project_id, Permission.WRITE)
        await self.secrets.delete(project_id, secret_id, user_id)

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    async def audit_logs(
        self,
        user_id: str,
        project_id: str,
        environment: Optional[Union[Environment, str]] = None,
        limit: Optional[int] = None,
    ) -> list[AuditLogEntry]:
        await self.permissions.require_owner(user_id, project_id)
        return await self.audit.entries(project_id, environment, limit)

    async def export_audit_logs(
        self,
        user_id: str,
        project_id: str,
        environment: Optional[Union[Environment, str]] = None,
    ) -> str:
        await self.permissions.require_owner(user_id, project_id)
        return await self.audit.export(project_id, user_id, environment)

    # ------------------------------------------------------------------
    # Panic
    # ------------------------------------------------------------------

    async def get_panic_settings(self, user_id: str) -> UserPanicConfig:
        return await self.panic_settings.get(user_id)

    async def update_panic_settings(
        self,
        user_id: str,
        flush_duration: Any = UNSET,
        panic_button: Optional[Union[PanicButton, dict]] = None,
    ) -> UserPanicConfig:
        return await self.panic_settings.update(
            user_id, flush_duration=flush_duration, panic_button=panic_button
        )

    async def panic(self, user_id: str, confirmed: bool = False) -> PanicResult:
        return await self.panic_cascade.trigger(user_id, confirmed=confirmed)
