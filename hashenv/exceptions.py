"""
HashEnv Exceptions — error taxonomy shared by every component.

Security Note:
    Messages must never carry plaintext, ciphertext or key material.
    IntegrityError always uses the same fixed message.
"""
from typing import Optional


class HashEnvError(Exception):
    """Base class for all HashEnv errors."""

    message: str = "HashEnv error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class ConfigurationError(HashEnvError):
    """Missing or malformed configuration (e.g. master key)."""

    message = "Invalid HashEnv configuration"


class ValidationError(HashEnvError, ValueError):
    """Caller supplied malformed input."""

    message = "Invalid input"


class IntegrityError(HashEnvError):
    """Authentication tag mismatch on decrypt."""

    message = "Decryption failed: data may be corrupted or tampered with"

    def __init__(self, message: Optional[str] = None):
        # fixed message: callers cannot inject detail into it
        super().__init__(None)


class NotFound(HashEnvError, LookupError):
    """Project, record, version or user does not exist."""

    message = "Not found"


class Forbidden(HashEnvError):
    """Permission denied."""

    message = "Access denied"


class Conflict(HashEnvError):
    """Uniqueness violation or version race."""

    message = "Conflict"


class DuplicateKey(Conflict):
    """Raised by stores when a unique index rejects a write."""

    message = "Duplicate key"

    def __init__(self, message: Optional[str] = None, index: Optional[str] = None):
        self.index = index
        super().__init__(message)
