"""
Permission Evaluator — resolves (user, project) to an access level.

Owners implicitly hold write access. Collaborators hold exactly the level
recorded in the project's member list. Membership management is stricter:
only the owner passes ``require_owner``.
"""
import logging
from typing import Optional, Union

from .exceptions import Forbidden, NotFound, ValidationError
from .models import Permission, Project
from .storage import AbstractStore
from .utils import validate_id

logger = logging.getLogger("hashenv.permissions")

NO_ACCESS = "Access denied: You do not have access to this project"
OWNER_ONLY = "Access denied: Only project owners can perform this action"


def as_permission(value: Union[Permission, str]) -> Permission:
    try:
        return Permission(value)
    except ValueError:
        raise ValidationError('Permission must be "read" or "write"') from None


class PermissionEvaluator:
    """Answers "may user U {read|write} project P?"."""

    def __init__(self, store: AbstractStore):
        self._store = store

    @staticmethod
    def allows(granted: Optional[Permission], required: Permission) -> bool:
        """Pure permission matrix: write subsumes read."""
        if granted is None:
            return False
        if granted == Permission.WRITE:
            return True
        return required == Permission.READ

    async def _load(self, project_id: str) -> Project:
        validate_id(project_id, "project ID")
        project = await self._store.get_project(project_id)
        if project is None:
            raise NotFound("Project not found")
        return project

    async def get_permission(
        self, user_id: str, project_id: str
    ) -> Optional[Permission]:
        """Return the user's effective level, or None without access."""
        project = await self._load(project_id)
        if project.is_owner(user_id):
            return Permission.WRITE
        member = project.member(user_id)
        return member.permission if member else None

    async def authorize(
        self,
        user_id: str,
        project_id: str,
        required: Union[Permission, str] = Permission.READ,
    ) -> Project:
        """Check access and return the loaded project.

        Raises:
            ValidationError: Malformed project id or permission.
            NotFound: Project does not exist.
            Forbidden: Not owner, not a collaborator, or insufficient level.
        """
        required = as_permission(required)
        project = await self._load(project_id)
        if project.is_owner(user_id):
            return project
        member = project.member(user_id)
        if member is None:
            logger.warning(
                "Access denied: user=%s project=%s (not a collaborator)",
                user_id, project_id,
            )
            raise Forbidden(NO_ACCESS)
        if not self.allows(member.permission, required):
            logger.warning(
                "Access denied: user=%s project=%s has %s, needs %s",
                user_id, project_id, member.permission.value, required.value,
            )
            raise Forbidden(f"Access denied: {required.value} permission required")
        return project

    async def require_owner(self, user_id: str, project_id: str) -> Project:
        """Only the project owner passes.

        Raises:
            NotFound: Project does not exist.
            Forbidden: User is not the owner.
        """
        project = await self._load(project_id)
        if not project.is_owner(user_id):
            logger.warning(
                "Owner check failed: user=%s project=%s", user_id, project_id,
            )
            raise Forbidden(OWNER_ONLY)
        return project
