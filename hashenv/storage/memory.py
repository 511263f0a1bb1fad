"""
In-memory store — process-local backend for tests and local development.

Records are deep-copied on the way in and out so callers never share
state with the store. Lost on restart.
"""
from typing import Optional, Sequence

from ..exceptions import DuplicateKey
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
from .base import AbstractStore


_ENV_ORDER = {env: i for i, env in enumerate(sorted(e.value for e in Environment))}


def _copy(record):
    return record.model_copy(deep=True) if record is not None else None


class MemoryStore(AbstractStore):
    """Dict-backed store enforcing the same unique indexes as Postgres."""

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._projects: dict[str, Project] = {}
        self._env_files: dict[str, EnvFileVersion] = {}
        self._secrets: dict[str, NamedSecret] = {}
        self._audit: list[AuditLogEntry] = []
        self._panic: dict[str, UserPanicConfig] = {}

    def clear(self) -> None:
        """For testing: simulate process restart."""
        self._users.clear()
        self._projects.clear()
        self._env_files.clear()
        self._secrets.clear()
        self._audit.clear()
        self._panic.clear()

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_user(self, user_id: str) -> Optional[User]:
        return _copy(self._users.get(user_id))

    async def insert_user(self, user: User) -> None:
        if user.id in self._users:
            raise DuplicateKey("User already exists", index="users_pkey")
        self._users[user.id] = _copy(user)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def insert_project(self, project: Project) -> None:
        if project.id in self._projects:
            raise DuplicateKey("Project already exists", index="projects_pkey")
        self._projects[project.id] = _copy(project)

    async def get_project(self, project_id: str) -> Optional[Project]:
        return _copy(self._projects.get(project_id))

    async def find_projects_for_user(self, user_id: str) -> list[Project]:
        found = [
            p for p in self._projects.values()
            if p.owner_id == user_id or p.member(user_id) is not None
        ]
        found.sort(key=lambda p: p.created_at, reverse=True)
        return [_copy(p) for p in found]

    async def find_owned_projects(self, owner_id: str) -> list[Project]:
        found = [p for p in self._projects.values() if p.owner_id == owner_id]
        found.sort(key=lambda p: p.created_at)
        return [_copy(p) for p in found]

    async def set_project_members(
        self, project_id: str, members: Sequence[ProjectMember]
    ) -> None:
        project = self._projects.get(project_id)
        if project is None:
            return
        self._projects[project_id] = project.model_copy(
            update={"members": [_copy(m) for m in members]}
        )

    async def upsert_project_member(
        self, project_id: str, member: ProjectMember
    ) -> None:
        project = self._projects.get(project_id)
        if project is None:
            return
        members = [m for m in project.members if m.user_id != member.user_id]
        if len(members) == len(project.members):
            members.append(_copy(member))
        else:
            members = [
                _copy(member) if m.user_id == member.user_id else m
                for m in project.members
            ]
        self._projects[project_id] = project.model_copy(update={"members": members})

    async def remove_project_member(self, project_id: str, user_id: str) -> bool:
        project = self._projects.get(project_id)
        if project is None or project.member(user_id) is None:
            return False
        self._projects[project_id] = project.model_copy(
            update={"members": [m for m in project.members if m.user_id != user_id]}
        )
        return True

    # ------------------------------------------------------------------
    # Environment files
    # ------------------------------------------------------------------

    async def insert_env_file(self, env_file: EnvFileVersion) -> None:
        for existing in self._env_files.values():
            if (
                existing.project_id == env_file.project_id
                and existing.environment == env_file.environment
                and existing.version == env_file.version
            ):
                raise DuplicateKey(
                    "Version already exists", index="env_files_version_key"
                )
        self._env_files[env_file.id] = _copy(env_file)

    async def get_env_file(
        self, project_id: str, env_file_id: str
    ) -> Optional[EnvFileVersion]:
        env_file = self._env_files.get(env_file_id)
        if env_file is None or env_file.project_id != project_id:
            return None
        return _copy(env_file)

    async def get_env_file_version(
        self, project_id: str, environment: Environment, version: int
    ) -> Optional[EnvFileVersion]:
        for env_file in self._env_files.values():
            if (
                env_file.project_id == project_id
                and env_file.environment == environment
                and env_file.version == version
            ):
                return _copy(env_file)
        return None

    async def get_latest_env_file(
        self, project_id: str, environment: Environment
    ) -> Optional[EnvFileVersion]:
        candidates = [
            f for f in self._env_files.values()
            if f.project_id == project_id and f.environment == environment
        ]
        if not candidates:
            return None
        return _copy(max(candidates, key=lambda f: f.version))

    async def find_env_files(
        self, project_id: str, environment: Optional[Environment] = None
    ) -> list[EnvFileVersion]:
        found = [
            f for f in self._env_files.values()
            if f.project_id == project_id
            and (environment is None or f.environment == environment)
        ]
        found.sort(key=lambda f: (_ENV_ORDER[f.environment.value], -f.version))
        return [_copy(f) for f in found]

    async def update_env_file_blob(
        self, env_file_id: str, blob: EncryptedBlob
    ) -> bool:
        env_file = self._env_files.get(env_file_id)
        if env_file is None:
            return False
        self._env_files[env_file_id] = env_file.model_copy(update={"blob": blob})
        return True

    async def delete_env_file(self, env_file_id: str) -> bool:
        return self._env_files.pop(env_file_id, None) is not None

    async def delete_env_files(self, project_ids: Sequence[str]) -> int:
        targets = set(project_ids)
        doomed = [k for k, f in self._env_files.items() if f.project_id in targets]
        for key in doomed:
            del self._env_files[key]
        return len(doomed)

    # ------------------------------------------------------------------
    # Named secrets
    # ------------------------------------------------------------------

    def _name_taken(self, project_id: str, name: str, exclude_id: Optional[str] = None) -> bool:
        return any(
            s.project_id == project_id and s.name == name and s.id != exclude_id
            for s in self._secrets.values()
        )

    async def insert_secret(self, secret: NamedSecret) -> None:
        if self._name_taken(secret.project_id, secret.name):
            raise DuplicateKey("Secret name already exists", index="secrets_name_key")
        self._secrets[secret.id] = _copy(secret)

    async def get_secret(
        self, project_id: str, secret_id: str
    ) -> Optional[NamedSecret]:
        secret = self._secrets.get(secret_id)
        if secret is None or secret.project_id != project_id:
            return None
        return _copy(secret)

    async def find_secret_by_name(
        self, project_id: str, name: str
    ) -> Optional[NamedSecret]:
        for secret in self._secrets.values():
            if secret.project_id == project_id and secret.name == name:
                return _copy(secret)
        return None

    async def find_secrets(self, project_id: str) -> list[NamedSecret]:
        found = [s for s in self._secrets.values() if s.project_id == project_id]
        found.sort(key=lambda s: s.name)
        return [_copy(s) for s in found]

    async def update_secret(self, secret: NamedSecret) -> bool:
        if secret.id not in self._secrets:
            return False
        if self._name_taken(secret.project_id, secret.name, exclude_id=secret.id):
            raise DuplicateKey("Secret name already exists", index="secrets_name_key")
        self._secrets[secret.id] = _copy(secret)
        return True

    async def delete_secret(self, project_id: str, secret_id: str) -> bool:
        secret = self._secrets.get(secret_id)
        if secret is None or secret.project_id != project_id:
            return False
        del self._secrets[secret_id]
        return True

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    async def insert_audit_entry(self, entry: AuditLogEntry) -> None:
        self._audit.append(_copy(entry))

    async def find_audit_entries(
        self,
        project_id: str,
        environment: Optional[Environment] = None,
        limit: int = 1000,
    ) -> list[AuditLogEntry]:
        found = [
            e for e in self._audit
            if e.project_id == project_id
            and (environment is None or e.environment == environment)
        ]
        # stable sort keeps insertion order for equal timestamps, so reverse
        # the list first to put later appends ahead
        found.reverse()
        found.sort(key=lambda e: e.created_at, reverse=True)
        return [_copy(e) for e in found[:limit]]

    # ------------------------------------------------------------------
    # Panic configuration
    # ------------------------------------------------------------------

    async def get_panic_config(self, user_id: str) -> Optional[UserPanicConfig]:
        return _copy(self._panic.get(user_id))

    async def save_panic_config(self, config: UserPanicConfig) -> None:
        self._panic[config.user_id] = _copy(config)
