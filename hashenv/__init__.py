"""HashEnv — encrypted, versioned environment files and project secrets.

Security Note (Threat Model):
    One static master key encrypts every record. Anyone holding the key
    and a database dump can recover all plaintext; key rotation and
    per-project keys are out of scope.
"""

from .version import __version__
from .exceptions import (
    HashEnvError,
    ConfigurationError,
    ValidationError,
    IntegrityError,
    NotFound,
    Forbidden,
    Conflict,
    DuplicateKey,
)
from .models import Environment, LogAction, Permission
from .service import HashEnv
from .storage import AbstractStore, MemoryStore, PostgresStore
from .vault import EnvelopeCipher, HashEnvConfig, generate_master_key

__all__ = [
    "__version__",
    "HashEnv",
    "HashEnvConfig",
    "EnvelopeCipher",
    "generate_master_key",
    "AbstractStore",
    "MemoryStore",
    "PostgresStore",
    "Environment",
    "LogAction",
    "Permission",
    "HashEnvError",
    "ConfigurationError",
    "ValidationError",
    "IntegrityError",
    "NotFound",
    "Forbidden",
    "Conflict",
    "DuplicateKey",
]
