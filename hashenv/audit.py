"""
Audit Log — append-only record of every action on a project.

``record()`` is best-effort: a failure to write an entry is logged and
swallowed so an audit outage never takes down the operation it observes.
The actor's name and email are copied into each entry at write time.

Security Note:
    Entries hold ids, versions and file names only. Never plaintext.
"""
import logging
from datetime import datetime
from typing import Optional, Sequence, Union

import orjson

from .models import (
    AuditLogEntry,
    AuditMetadata,
    Environment,
    LogAction,
    as_environment,
)
from .storage import AbstractStore
from .utils import utcnow
from .vault.config import HashEnvConfig

logger = logging.getLogger("hashenv.audit")

SEPARATOR = "=" * 80


class AuditLog:
    def __init__(self, store: AbstractStore, config: HashEnvConfig):
        self._store = store
        self._config = config

    async def record(
        self,
        project_id: str,
        actor_id: str,
        action: Union[LogAction, str],
        environment: Optional[Union[Environment, str]] = None,
        metadata: Optional[AuditMetadata] = None,
        env_file_id: Optional[str] = None,
        version: Optional[int] = None,
    ) -> Optional[AuditLogEntry]:
        """Append an entry; never raises.

        Returns:
            The stored entry, or None if it could not be written.
        """
        try:
            user = await self._store.get_user(actor_id)
            if user is None:
                logger.error(
                    "Audit actor not found: user=%s project=%s action=%s",
                    actor_id, project_id, action,
                )
                return None
            entry = AuditLogEntry(
                project_id=project_id,
                env_file_id=env_file_id,
                environment=environment,
                version=version,
                action=action,
                performed_by=actor_id,
                performed_by_name=user.name,
                performed_by_email=user.email,
                metadata=metadata or AuditMetadata(),
            )
            await self._store.insert_audit_entry(entry)
        except Exception as err:
            logger.error(
                "Failed to record audit entry project=%s action=%s: %s",
                project_id, action, type(err).__name__,
            )
            return None
        logger.debug(
            "Audit: project=%s action=%s user=%s",
            project_id, entry.action.value, actor_id,
        )
        return entry

    async def entries(
        self,
        project_id: str,
        environment: Optional[Union[Environment, str]] = None,
        limit: Optional[int] = None,
    ) -> list[AuditLogEntry]:
        """Newest-first entries, capped at ``audit_query_limit``."""
        cap = self._config.audit_query_limit
        limit = cap if limit is None else max(0, min(limit, cap))
        env = as_environment(environment) if environment is not None else None
        return await self._store.find_audit_entries(project_id, env, limit)

    @staticmethod
    def render(
        project_id: str,
        entries: Sequence[AuditLogEntry],
        environment: Optional[Union[Environment, str]] = None,
        generated: Optional[datetime] = None,
    ) -> str:
        """Render entries in the plain-text export format."""
        generated = generated or utcnow()
        lines = ["HashEnv Activity Logs", f"Project ID: {project_id}"]
        if environment is not None:
            lines.append(f"Environment: {as_environment(environment).value}")
        lines.append(f"Generated: {generated.isoformat()}")
        lines.append(SEPARATOR)
        lines.append("")
        if not entries:
            lines.append("No logs found.")
            return "\n".join(lines) + "\n"
        for entry in entries:
            env = entry.environment.value if entry.environment else "-"
            lines.append(f"[{entry.created_at.isoformat()}] {entry.action.value.upper()}")
            lines.append(f"  Environment: {env}")
            if entry.version:
                lines.append(f"  Version: {entry.version}")
            lines.append(
                f"  Performed by: {entry.performed_by_name} ({entry.performed_by_email})"
            )
            details = entry.metadata.as_dict()
            if details:
                lines.append(f"  Details: {orjson.dumps(details).decode('utf-8')}")
            lines.append("")
        return "\n".join(lines) + "\n"

    async def export(
        self,
        project_id: str,
        actor_id: str,
        environment: Optional[Union[Environment, str]] = None,
    ) -> str:
        """Render the export and record that the log was accessed."""
        entries = await self.entries(project_id, environment)
        text = self.render(project_id, entries, environment)
        await self.record(
            project_id,
            actor_id,
            LogAction.ACCESS,
            environment,
            AuditMetadata(file_name="logs.txt"),
        )
        return text
