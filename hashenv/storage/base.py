"""
Store interface — what the core needs from the document store.

Backends must enforce two unique indexes and report violations as
``DuplicateKey``:
    env files: (project_id, environment, version)
    secrets:   (project_id, name)
"""
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from ..models import (
    AuditLogEntry,
    EncryptedBlob,
    Environment,
    EnvFileVersion,
    NamedSecret,
    Project,
    ProjectMember,
    User,
    UserPanicConfig,
)


class AbstractStore(ABC):
    """Async persistence for HashEnv records."""

    # ------------------------------------------------------------------
    # Users (identity collaborator)
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    async def insert_user(self, user: User) -> None:
        ...

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_project(self, project: Project) -> None:
        ...

    @abstractmethod
    async def get_project(self, project_id: str) -> Optional[Project]:
        ...

    @abstractmethod
    async def find_projects_for_user(self, user_id: str) -> list[Project]:
        """Projects the user owns or is a member of, newest first."""

    @abstractmethod
    async def find_owned_projects(self, owner_id: str) -> list[Project]:
        ...

    @abstractmethod
    async def set_project_members(
        self, project_id: str, members: Sequence[ProjectMember]
    ) -> None:
        """Atomically replace the member list of a project."""

    @abstractmethod
    async def upsert_project_member(
        self, project_id: str, member: ProjectMember
    ) -> None:
        """Add a member, or change the permission of an existing one.

        Touches only that member's entry; new members go to the end.
        """

    @abstractmethod
    async def remove_project_member(self, project_id: str, user_id: str) -> bool:
        """Remove one member. Returns False if the user was not a member."""

    # ------------------------------------------------------------------
    # Environment files
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_env_file(self, env_file: EnvFileVersion) -> None:
        """Raises DuplicateKey if the version already exists."""

    @abstractmethod
    async def get_env_file(
        self, project_id: str, env_file_id: str
    ) -> Optional[EnvFileVersion]:
        ...

    @abstractmethod
    async def get_env_file_version(
        self, project_id: str, environment: Environment, version: int
    ) -> Optional[EnvFileVersion]:
        ...

    @abstractmethod
    async def get_latest_env_file(
        self, project_id: str, environment: Environment
    ) -> Optional[EnvFileVersion]:
        ...

    @abstractmethod
    async def find_env_files(
        self, project_id: str, environment: Optional[Environment] = None
    ) -> list[EnvFileVersion]:
        """Sorted by environment ascending, version descending."""

    @abstractmethod
    async def update_env_file_blob(
        self, env_file_id: str, blob: EncryptedBlob
    ) -> bool:
        ...

    @abstractmethod
    async def delete_env_file(self, env_file_id: str) -> bool:
        ...

    @abstractmethod
    async def delete_env_files(self, project_ids: Sequence[str]) -> int:
        """Delete every version of every environment; returns count."""

    # ------------------------------------------------------------------
    # Named secrets
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_secret(self, secret: NamedSecret) -> None:
        """Raises DuplicateKey if the name is taken in the project."""

    @abstractmethod
    async def get_secret(
        self, project_id: str, secret_id: str
    ) -> Optional[NamedSecret]:
        ...

    @abstractmethod
    async def find_secret_by_name(
        self, project_id: str, name: str
    ) -> Optional[NamedSecret]:
        ...

    @abstractmethod
    async def find_secrets(self, project_id: str) -> list[NamedSecret]:
        """Sorted by name."""

    @abstractmethod
    async def update_secret(self, secret: NamedSecret) -> bool:
        """Raises DuplicateKey if a rename collides."""

    @abstractmethod
    async def delete_secret(self, project_id: str, secret_id: str) -> bool:
        ...

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_audit_entry(self, entry: AuditLogEntry) -> None:
        ...

    @abstractmethod
    async def find_audit_entries(
        self,
        project_id: str,
        environment: Optional[Environment] = None,
        limit: int = 1000,
    ) -> list[AuditLogEntry]:
        """Newest first."""

    # ------------------------------------------------------------------
    # Panic configuration
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_panic_config(self, user_id: str) -> Optional[UserPanicConfig]:
        ...

    @abstractmethod
    async def save_panic_config(self, config: UserPanicConfig) -> None:
        """Insert or replace the user's configuration."""
