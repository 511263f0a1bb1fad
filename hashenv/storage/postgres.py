"""
PostgreSQL store — asyncpg-backed persistence for HashEnv records.

Tables live in the ``hashenv`` schema (see ``SCHEMA``). Unique indexes back
the version and secret-name constraints; violations surface as
``DuplicateKey`` so the engines can map them to ``Conflict`` or retry.

Security Note:
    Never log ciphertext values. Only log ids, versions and counts.
"""
import logging
from typing import Any, Optional, Sequence

import asyncpg
import orjson

from ..exceptions import DuplicateKey
from ..models import (
    AuditLogEntry,
    AuditMetadata,
    EncryptedBlob,
    Environment,
    EnvFileVersion,
    NamedSecret,
    PanicButton,
    Project,
    ProjectMember,
    User,
    UserPanicConfig,
)
from .base import AbstractStore

logger = logging.getLogger("hashenv.storage")

SCHEMA = """
CREATE SCHEMA IF NOT EXISTS hashenv;

CREATE TABLE IF NOT EXISTS hashenv.users (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS hashenv.projects (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    owner_id TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS projects_owner_idx ON hashenv.projects (owner_id);

CREATE TABLE IF NOT EXISTS hashenv.project_members (
    project_id TEXT NOT NULL REFERENCES hashenv.projects (id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    permission TEXT NOT NULL CHECK (permission IN ('read', 'write')),
    position INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (project_id, user_id)
);
CREATE INDEX IF NOT EXISTS project_members_user_idx ON hashenv.project_members (user_id);

CREATE TABLE IF NOT EXISTS hashenv.env_files (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES hashenv.projects (id) ON DELETE CASCADE,
    environment TEXT NOT NULL CHECK (environment IN ('dev', 'staging', 'prod')),
    version INTEGER NOT NULL CHECK (version >= 1),
    ciphertext BYTEA NOT NULL,
    nonce BYTEA NOT NULL,
    auth_tag BYTEA NOT NULL,
    uploaded_by TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT env_files_version_key UNIQUE (project_id, environment, version)
);

CREATE TABLE IF NOT EXISTS hashenv.secrets (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES hashenv.projects (id) ON DELETE CASCADE,
    name VARCHAR(100) NOT NULL,
    ciphertext BYTEA NOT NULL,
    nonce BYTEA NOT NULL,
    auth_tag BYTEA NOT NULL,
    created_by TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT secrets_name_key UNIQUE (project_id, name)
);

CREATE TABLE IF NOT EXISTS hashenv.audit_log (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL,
    env_file_id TEXT,
    environment TEXT,
    version INTEGER,
    action TEXT NOT NULL,
    performed_by TEXT NOT NULL,
    performed_by_name TEXT NOT NULL,
    performed_by_email TEXT NOT NULL,
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS audit_log_project_idx
    ON hashenv.audit_log (project_id, environment, created_at DESC);

CREATE TABLE IF NOT EXISTS hashenv.panic_configs (
    user_id TEXT PRIMARY KEY,
    flush_duration INTEGER,
    flush_envs BOOLEAN NOT NULL DEFAULT FALSE,
    revoke_collaborators BOOLEAN NOT NULL DEFAULT FALSE,
    download_envs BOOLEAN NOT NULL DEFAULT FALSE,
    ask_confirmation BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_SELECT_USER = "SELECT id, name, email FROM hashenv.users WHERE id = $1"

_INSERT_USER = "INSERT INTO hashenv.users (id, name, email) VALUES ($1, $2, $3)"

_INSERT_PROJECT = """
INSERT INTO hashenv.projects (id, name, owner_id, created_at)
VALUES ($1, $2, $3, $4)
"""

_SELECT_PROJECT = """
SELECT id, name, owner_id, created_at FROM hashenv.projects WHERE id = $1
"""

_SELECT_PROJECTS_FOR_USER = """
SELECT p.id, p.name, p.owner_id, p.created_at
FROM hashenv.projects p
WHERE p.owner_id = $1
   OR EXISTS (
       SELECT 1 FROM hashenv.project_members m
       WHERE m.project_id = p.id AND m.user_id = $1
   )
ORDER BY p.created_at DESC
"""

_SELECT_OWNED_PROJECTS = """
SELECT id, name, owner_id, created_at
FROM hashenv.projects
WHERE owner_id = $1
ORDER BY created_at
"""

_SELECT_MEMBERS = """
SELECT project_id, user_id, permission
FROM hashenv.project_members
WHERE project_id = ANY($1::text[])
ORDER BY position
"""

_DELETE_MEMBERS = "DELETE FROM hashenv.project_members WHERE project_id = $1"

_INSERT_MEMBER = """
INSERT INTO hashenv.project_members (project_id, user_id, permission, position)
VALUES ($1, $2, $3, $4)
"""

_UPSERT_MEMBER = """
INSERT INTO hashenv.project_members (project_id, user_id, permission, position)
SELECT $1::text, $2::text, $3::text, COALESCE(MAX(position) + 1, 0)
FROM hashenv.project_members
WHERE project_id = $1
ON CONFLICT (project_id, user_id) DO UPDATE SET permission = EXCLUDED.permission
"""

_DELETE_MEMBER = """
DELETE FROM hashenv.project_members WHERE project_id = $1 AND user_id = $2
"""

_ENV_FILE_COLUMNS = """
id, project_id, environment, version, ciphertext, nonce, auth_tag,
uploaded_by, created_at
"""

_INSERT_ENV_FILE = """
INSERT INTO hashenv.env_files (
    id, project_id, environment, version, ciphertext, nonce, auth_tag,
    uploaded_by, created_at
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
"""

_SELECT_ENV_FILE = f"""
SELECT {_ENV_FILE_COLUMNS} FROM hashenv.env_files
WHERE id = $1 AND project_id = $2
"""

_SELECT_ENV_FILE_VERSION = f"""
SELECT {_ENV_FILE_COLUMNS} FROM hashenv.env_files
WHERE project_id = $1 AND environment = $2 AND version = $3
"""

_SELECT_LATEST_ENV_FILE = f"""
SELECT {_ENV_FILE_COLUMNS} FROM hashenv.env_files
WHERE project_id = $1 AND environment = $2
ORDER BY version DESC
LIMIT 1
"""

_SELECT_ENV_FILES = f"""
SELECT {_ENV_FILE_COLUMNS} FROM hashenv.env_files
WHERE project_id = $1 AND ($2::text IS NULL OR environment = $2)
ORDER BY environment ASC, version DESC
"""

_UPDATE_ENV_FILE_BLOB = """
UPDATE hashenv.env_files
SET ciphertext = $1, nonce = $2, auth_tag = $3
WHERE id = $4
"""

_DELETE_ENV_FILE = "DELETE FROM hashenv.env_files WHERE id = $1"

_DELETE_ENV_FILES = """
DELETE FROM hashenv.env_files WHERE project_id = ANY($1::text[])
"""

_SECRET_COLUMNS = """
id, project_id, name, ciphertext, nonce, auth_tag, created_by,
created_at, updated_at
"""

_INSERT_SECRET = """
INSERT INTO hashenv.secrets (
    id, project_id, name, ciphertext, nonce, auth_tag, created_by,
    created_at, updated_at
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
"""

_SELECT_SECRET = f"""
SELECT {_SECRET_COLUMNS} FROM hashenv.secrets
WHERE id = $1 AND project_id = $2
"""

_SELECT_SECRET_BY_NAME = f"""
SELECT {_SECRET_COLUMNS} FROM hashenv.secrets
WHERE project_id = $1 AND name = $2
"""

_SELECT_SECRETS = f"""
SELECT {_SECRET_COLUMNS} FROM hashenv.secrets
WHERE project_id = $1
ORDER BY name
"""

_UPDATE_SECRET = """
UPDATE hashenv.secrets
SET name = $1, ciphertext = $2, nonce = $3, auth_tag = $4, updated_at = $5
WHERE id = $6
"""

_DELETE_SECRET = "DELETE FROM hashenv.secrets WHERE id = $1 AND project_id = $2"

_INSERT_AUDIT = """
INSERT INTO hashenv.audit_log (
    id, project_id, env_file_id, environment, version, action,
    performed_by, performed_by_name, performed_by_email, metadata, created_at
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10::jsonb, $11)
"""

_SELECT_AUDIT = """
SELECT id, project_id, env_file_id, environment, version, action,
       performed_by, performed_by_name, performed_by_email, metadata, created_at
FROM hashenv.audit_log
WHERE project_id = $1 AND ($2::text IS NULL OR environment = $2)
ORDER BY created_at DESC
LIMIT $3
"""

_SELECT_PANIC_CONFIG = """
SELECT user_id, flush_duration, flush_envs, revoke_collaborators,
       download_envs, ask_confirmation, created_at, updated_at
FROM hashenv.panic_configs
WHERE user_id = $1
"""

_UPSERT_PANIC_CONFIG = """
INSERT INTO hashenv.panic_configs (
    user_id, flush_duration, flush_envs, revoke_collaborators,
    download_envs, ask_confirmation, created_at, updated_at
)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
ON CONFLICT (user_id)
DO UPDATE SET flush_duration = EXCLUDED.flush_duration,
             flush_envs = EXCLUDED.flush_envs,
             revoke_collaborators = EXCLUDED.revoke_collaborators,
             download_envs = EXCLUDED.download_envs,
             ask_confirmation = EXCLUDED.ask_confirmation,
             updated_at = EXCLUDED.updated_at
"""


def _count_from_status(status: str) -> int:
    """Parse the row count from an asyncpg status string ('DELETE 3')."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


def _blob(row: Any) -> EncryptedBlob:
    return EncryptedBlob(
        ciphertext=bytes(row["ciphertext"]),
        nonce=bytes(row["nonce"]),
        auth_tag=bytes(row["auth_tag"]),
    )


def _env_file(row: Any) -> EnvFileVersion:
    return EnvFileVersion(
        id=row["id"],
        project_id=row["project_id"],
        environment=row["environment"],
        version=row["version"],
        blob=_blob(row),
        uploaded_by=row["uploaded_by"],
        created_at=row["created_at"],
    )


def _secret(row: Any) -> NamedSecret:
    return NamedSecret(
        id=row["id"],
        project_id=row["project_id"],
        name=row["name"],
        blob=_blob(row),
        created_by=row["created_by"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _audit_entry(row: Any) -> AuditLogEntry:
    metadata = row["metadata"]
    if isinstance(metadata, (str, bytes)):
        metadata = orjson.loads(metadata)
    return AuditLogEntry(
        id=row["id"],
        project_id=row["project_id"],
        env_file_id=row["env_file_id"],
        environment=row["environment"],
        version=row["version"],
        action=row["action"],
        performed_by=row["performed_by"],
        performed_by_name=row["performed_by_name"],
        performed_by_email=row["performed_by_email"],
        metadata=AuditMetadata.model_validate(metadata or {}),
        created_at=row["created_at"],
    )


class PostgresStore(AbstractStore):
    """Store backed by an asyncpg-compatible connection pool."""

    def __init__(self, db_pool: Any):
        self._db = db_pool

    async def create_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        async with self._db.acquire() as conn:
            await conn.execute(SCHEMA)
        logger.info("HashEnv schema ensured")

    async def _execute(self, sql: str, *args, index: Optional[str] = None) -> str:
        async with self._db.acquire() as conn:
            try:
                return await conn.execute(sql, *args)
            except asyncpg.UniqueViolationError as err:
                constraint = getattr(err, "constraint_name", None) or index
                logger.debug("Unique violation on %s", constraint)
                raise DuplicateKey(index=constraint) from None

    async def _fetchrow(self, sql: str, *args) -> Any:
        async with self._db.acquire() as conn:
            return await conn.fetchrow(sql, *args)

    async def _fetch(self, sql: str, *args) -> list:
        async with self._db.acquire() as conn:
            return await conn.fetch(sql, *args)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def get_user(self, user_id: str) -> Optional[User]:
        row = await self._fetchrow(_SELECT_USER, user_id)
        if row is None:
            return None
        return User(id=row["id"], name=row["name"], email=row["email"])

    async def insert_user(self, user: User) -> None:
        await self._execute(
            _INSERT_USER, user.id, user.name, user.email, index="users_pkey",
        )

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def _with_members(self, rows: Sequence[Any]) -> list[Project]:
        if not rows:
            return []
        ids = [row["id"] for row in rows]
        members: dict[str, list[ProjectMember]] = {pid: [] for pid in ids}
        for m in await self._fetch(_SELECT_MEMBERS, ids):
            members[m["project_id"]].append(
                ProjectMember(user_id=m["user_id"], permission=m["permission"])
            )
        return [
            Project(
                id=row["id"],
                name=row["name"],
                owner_id=row["owner_id"],
                members=members[row["id"]],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def insert_project(self, project: Project) -> None:
        async with self._db.acquire() as conn:
            async with conn.transaction():
                try:
                    await conn.execute(
                        _INSERT_PROJECT,
                        project.id, project.name, project.owner_id,
                        project.created_at,
                    )
                except asyncpg.UniqueViolationError:
                    raise DuplicateKey(index="projects_pkey") from None
                for position, member in enumerate(project.members):
                    await conn.execute(
                        _INSERT_MEMBER,
                        project.id, member.user_id, member.permission.value,
                        position,
                    )

    async def get_project(self, project_id: str) -> Optional[Project]:
        row = await self._fetchrow(_SELECT_PROJECT, project_id)
        if row is None:
            return None
        return (await self._with_members([row]))[0]

    async def find_projects_for_user(self, user_id: str) -> list[Project]:
        return await self._with_members(
            await self._fetch(_SELECT_PROJECTS_FOR_USER, user_id)
        )

    async def find_owned_projects(self, owner_id: str) -> list[Project]:
        return await self._with_members(
            await self._fetch(_SELECT_OWNED_PROJECTS, owner_id)
        )

    async def set_project_members(
        self, project_id: str, members: Sequence[ProjectMember]
    ) -> None:
        async with self._db.acquire() as conn:
            async with conn.transaction():
                await conn.execute(_DELETE_MEMBERS, project_id)
                try:
                    for position, member in enumerate(members):
                        await conn.execute(
                            _INSERT_MEMBER,
                            project_id, member.user_id, member.permission.value,
                            position,
                        )
                except asyncpg.UniqueViolationError:
                    raise DuplicateKey(index="project_members_pkey") from None

    async def upsert_project_member(
        self, project_id: str, member: ProjectMember
    ) -> None:
        await self._execute(
            _UPSERT_MEMBER,
            project_id, member.user_id, member.permission.value,
            index="project_members_pkey",
        )

    async def remove_project_member(self, project_id: str, user_id: str) -> bool:
        status = await self._execute(_DELETE_MEMBER, project_id, user_id)
        return _count_from_status(status) > 0

    # ------------------------------------------------------------------
    # Environment files
    # ------------------------------------------------------------------

    async def insert_env_file(self, env_file: EnvFileVersion) -> None:
        await self._execute(
            _INSERT_ENV_FILE,
            env_file.id, env_file.project_id, env_file.environment.value,
            env_file.version, env_file.blob.ciphertext, env_file.blob.nonce,
            env_file.blob.auth_tag, env_file.uploaded_by, env_file.created_at,
            index="env_files_version_key",
        )

    async def get_env_file(
        self, project_id: str, env_file_id: str
    ) -> Optional[EnvFileVersion]:
        row = await self._fetchrow(_SELECT_ENV_FILE, env_file_id, project_id)
        return _env_file(row) if row is not None else None

    async def get_env_file_version(
        self, project_id: str, environment: Environment, version: int
    ) -> Optional[EnvFileVersion]:
        row = await self._fetchrow(
            _SELECT_ENV_FILE_VERSION, project_id, Environment(environment).value, version,
        )
        return _env_file(row) if row is not None else None

    async def get_latest_env_file(
        self, project_id: str, environment: Environment
    ) -> Optional[EnvFileVersion]:
        row = await self._fetchrow(
            _SELECT_LATEST_ENV_FILE, project_id, Environment(environment).value,
        )
        return _env_file(row) if row is not None else None

    async def find_env_files(
        self, project_id: str, environment: Optional[Environment] = None
    ) -> list[EnvFileVersion]:
        env = Environment(environment).value if environment is not None else None
        rows = await self._fetch(_SELECT_ENV_FILES, project_id, env)
        return [_env_file(row) for row in rows]

    async def update_env_file_blob(
        self, env_file_id: str, blob: EncryptedBlob
    ) -> bool:
        status = await self._execute(
            _UPDATE_ENV_FILE_BLOB,
            blob.ciphertext, blob.nonce, blob.auth_tag, env_file_id,
        )
        return _count_from_status(status) > 0

    async def delete_env_file(self, env_file_id: str) -> bool:
        status = await self._execute(_DELETE_ENV_FILE, env_file_id)
        return _count_from_status(status) > 0

    async def delete_env_files(self, project_ids: Sequence[str]) -> int:
        if not project_ids:
            return 0
        status = await self._execute(_DELETE_ENV_FILES, list(project_ids))
        return _count_from_status(status)

    # ------------------------------------------------------------------
    # Named secrets
    # ------------------------------------------------------------------

    async def insert_secret(self, secret: NamedSecret) -> None:
        await self._execute(
            _INSERT_SECRET,
            secret.id, secret.project_id, secret.name, secret.blob.ciphertext,
            secret.blob.nonce, secret.blob.auth_tag, secret.created_by,
            secret.created_at, secret.updated_at,
            index="secrets_name_key",
        )

    async def get_secret(
        self, project_id: str, secret_id: str
    ) -> Optional[NamedSecret]:
        row = await self._fetchrow(_SELECT_SECRET, secret_id, project_id)
        return _secret(row) if row is not None else None

    async def find_secret_by_name(
        self, project_id: str, name: str
    ) -> Optional[NamedSecret]:
        row = await self._fetchrow(_SELECT_SECRET_BY_NAME, project_id, name)
        return _secret(row) if row is not None else None

    async def find_secrets(self, project_id: str) -> list[NamedSecret]:
        return [_secret(row) for row in await self._fetch(_SELECT_SECRETS, project_id)]

    async def update_secret(self, secret: NamedSecret) -> bool:
        status = await self._execute(
            _UPDATE_SECRET,
            secret.name, secret.blob.ciphertext, secret.blob.nonce,
            secret.blob.auth_tag, secret.updated_at, secret.id,
            index="secrets_name_key",
        )
        return _count_from_status(status) > 0

    async def delete_secret(self, project_id: str, secret_id: str) -> bool:
        status = await self._execute(_DELETE_SECRET, secret_id, project_id)
        return _count_from_status(status) > 0

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    async def insert_audit_entry(self, entry: AuditLogEntry) -> None:
        await self._execute(
            _INSERT_AUDIT,
            entry.id, entry.project_id, entry.env_file_id,
            entry.environment.value if entry.environment else None,
            entry.version, entry.action.value, entry.performed_by,
            entry.performed_by_name, entry.performed_by_email,
            orjson.dumps(entry.metadata.as_dict()).decode("utf-8"),
            entry.created_at,
        )

    async def find_audit_entries(
        self,
        project_id: str,
        environment: Optional[Environment] = None,
        limit: int = 1000,
    ) -> list[AuditLogEntry]:
        env = Environment(environment).value if environment is not None else None
        rows = await self._fetch(_SELECT_AUDIT, project_id, env, limit)
        return [_audit_entry(row) for row in rows]

    # ------------------------------------------------------------------
    # Panic configuration
    # ------------------------------------------------------------------

    async def get_panic_config(self, user_id: str) -> Optional[UserPanicConfig]:
        row = await self._fetchrow(_SELECT_PANIC_CONFIG, user_id)
        if row is None:
            return None
        return UserPanicConfig(
            user_id=row["user_id"],
            flush_duration=row["flush_duration"],
            panic_button=PanicButton(
                flush_envs=row["flush_envs"],
                revoke_collaborators=row["revoke_collaborators"],
                download_envs=row["download_envs"],
                ask_confirmation=row["ask_confirmation"],
            ),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def save_panic_config(self, config: UserPanicConfig) -> None:
        button = config.panic_button
        await self._execute(
            _UPSERT_PANIC_CONFIG,
            config.user_id, config.flush_duration, button.flush_envs,
            button.revoke_collaborators, button.download_envs,
            button.ask_confirmation, config.created_at, config.updated_at,
        )
