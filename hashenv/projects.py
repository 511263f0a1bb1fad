"""
Projects — creation, listing and collaborator management.

Only the project owner may grant or revoke membership, even though
write-level collaborators may change content.
"""
import logging
import re
from typing import Union

from .exceptions import NotFound, ValidationError
from .models import Permission, Project, ProjectMember
from .permissions import PermissionEvaluator, as_permission
from .storage import AbstractStore

logger = logging.getLogger("hashenv.projects")

NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\s\-_]+$")
MAX_NAME_LENGTH = 100


def validate_name(name: str, label: str = "Project name") -> str:
    """Trim and validate a project or secret name.

    Raises:
        ValidationError: If empty, longer than 100 chars or using
            characters other than letters, digits, spaces, '-' and '_'.
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(f"{label} is required")
    name = name.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"{label} must be between 1 and {MAX_NAME_LENGTH} characters"
        )
    if not NAME_PATTERN.match(name):
        raise ValidationError(
            f"{label} can only contain letters, numbers, spaces, "
            "hyphens, and underscores"
        )
    return name


class Projects:
    def __init__(self, store: AbstractStore, permissions: PermissionEvaluator):
        self._store = store
        self._permissions = permissions

    async def create(self, owner_id: str, name: str) -> Project:
        project = Project(name=validate_name(name), owner_id=owner_id)
        await self._store.insert_project(project)
        logger.info("Project created: project=%s owner=%s", project.id, owner_id)
        return project

    async def get(self, user_id: str, project_id: str) -> Project:
        return await self._permissions.authorize(user_id, project_id, Permission.READ)

    async def list_for_user(self, user_id: str) -> list[Project]:
        """Projects the user owns or collaborates on, newest first."""
        return await self._store.find_projects_for_user(user_id)

    async def add_member(
        self,
        actor_id: str,
        project_id: str,
        user_id: str,
        permission: Union[Permission, str],
    ) -> Project:
        """Grant (or change) a collaborator's permission.

        Re-adding an existing member updates the permission in place.

        Raises:
            Forbidden: Actor is not the owner.
            NotFound: Project or target user does not exist.
            ValidationError: Bad permission, or target is the owner.
        """
        permission = as_permission(permission)
        project = await self._permissions.require_owner(actor_id, project_id)
        if await self._store.get_user(user_id) is None:
            raise NotFound("User not found")
        if project.is_owner(user_id):
            raise ValidationError("Project owner cannot be added as a collaborator")

        await self._store.upsert_project_member(
            project.id, ProjectMember(user_id=user_id, permission=permission)
        )
        logger.info(
            "Member granted: project=%s user=%s permission=%s",
            project.id, user_id, permission.value,
        )
        return await self._reload(project.id)

    async def remove_member(
        self, actor_id: str, project_id: str, user_id: str
    ) -> Project:
        """Revoke a collaborator; a no-op if the user is not a member."""
        project = await self._permissions.require_owner(actor_id, project_id)
        if not await self._store.remove_project_member(project.id, user_id):
            return project
        logger.info("Member revoked: project=%s user=%s", project.id, user_id)
        return await self._reload(project.id)

    async def _reload(self, project_id: str) -> Project:
        project = await self._store.get_project(project_id)
        if project is None:
            raise NotFound("Project not found")
        return project
