"""
HashEnv records — pydantic models for everything the core persists.

Records that hold an ``EncryptedBlob`` expose a ``metadata()`` view without
cryptographic fields; only that view may cross the core boundary.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ValidationError
from .utils import new_id, utcnow


class Permission(str, Enum):
    READ = "read"
    WRITE = "write"


class Environment(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


def as_environment(value: Union[Environment, str]) -> Environment:
    try:
        return Environment(value)
    except ValueError:
        allowed = ", ".join(e.value for e in Environment)
        raise ValidationError(f"Environment must be one of: {allowed}") from None


class LogAction(str, Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"
    EDIT = "edit"
    DELETE = "delete"
    ACCESS = "access"


class EncryptedBlob(BaseModel):
    """AES-GCM output: ciphertext, nonce and authentication tag."""

    model_config = ConfigDict(frozen=True)

    ciphertext: bytes = Field(repr=False)
    nonce: bytes = Field(repr=False)
    auth_tag: bytes = Field(repr=False)


class User(BaseModel):
    """Display data supplied by the identity collaborator."""

    id: str
    name: str
    email: str


class ProjectMember(BaseModel):
    user_id: str
    permission: Permission


class Project(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    owner_id: str
    members: list[ProjectMember] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    def member(self, user_id: str) -> Optional[ProjectMember]:
        for m in self.members:
            if m.user_id == user_id:
                return m
        return None

    def is_owner(self, user_id: str) -> bool:
        return self.owner_id == user_id


class EnvFileMetadata(BaseModel):
    id: str
    project_id: str
    environment: Environment
    version: int
    uploaded_by: str
    created_at: datetime


class EnvFileVersion(BaseModel):
    """One historical snapshot of a project's environment file."""

    id: str = Field(default_factory=new_id)
    project_id: str
    environment: Environment
    version: int = Field(ge=1)
    blob: EncryptedBlob
    uploaded_by: str
    created_at: datetime = Field(default_factory=utcnow)

    def metadata(self) -> EnvFileMetadata:
        return EnvFileMetadata(**self.model_dump(exclude={"blob"}))


class SecretMetadata(BaseModel):
    id: str
    project_id: str
    name: str
    created_by: str
    created_at: datetime
    updated_at: datetime


class SecretContent(BaseModel):
    id: str
    name: str
    content: str = Field(repr=False)
    created_at: datetime
    updated_at: datetime


class NamedSecret(BaseModel):
    """A single named secret; overwritten in place, no history."""

    id: str = Field(default_factory=new_id)
    project_id: str
    name: str
    blob: EncryptedBlob
    created_by: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def metadata(self) -> SecretMetadata:
        return SecretMetadata(**self.model_dump(exclude={"blob"}))


class AuditMetadata(BaseModel):
    """Action details; serialised with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    old_version: Optional[int] = Field(default=None, alias="oldVersion")
    new_version: Optional[int] = Field(default=None, alias="newVersion")
    file_name: Optional[str] = Field(default=None, alias="fileName")

    def as_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class AuditLogEntry(BaseModel):
    id: str = Field(default_factory=new_id)
    project_id: str
    env_file_id: Optional[str] = None
    environment: Optional[Environment] = None
    version: Optional[int] = None
    action: LogAction
    performed_by: str
    performed_by_name: str
    performed_by_email: str
    metadata: AuditMetadata = Field(default_factory=AuditMetadata)
    created_at: datetime = Field(default_factory=utcnow)


class PanicButton(BaseModel):
    flush_envs: bool = False
    revoke_collaborators: bool = False
    download_envs: bool = False
    ask_confirmation: bool = True

    @property
    def has_actions(self) -> bool:
        return self.flush_envs or self.revoke_collaborators or self.download_envs


class UserPanicConfig(BaseModel):
    user_id: str
    flush_duration: Optional[int] = None  # hours; None disables
    panic_button: PanicButton = Field(default_factory=PanicButton)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PanicExportItem(BaseModel):
    project_id: str
    project_name: str
    environment: Environment
    version: int
    ok: bool = True


class PanicResult(BaseModel):
    """Outcome of a panic cascade, one flag per sub-action."""

    download_envs: bool = False
    flush_envs: bool = False
    revoke_collaborators: bool = False
    download_content: Optional[str] = Field(default=None, repr=False)
    download_filename: Optional[str] = None
    exports: list[PanicExportItem] = Field(default_factory=list)
    flushed_count: int = 0
    revoked_count: int = 0
    download_error: Optional[str] = None
    flush_error: Optional[str] = None
    revoke_error: Optional[str] = None

    @property
    def errors(self) -> list[str]:
        return [
            e for e in (self.download_error, self.flush_error, self.revoke_error)
            if e
        ]
