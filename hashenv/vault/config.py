"""
HashEnv Configuration — master key loading and validated settings.

Reads the master key from the environment:
    MASTER_ENCRYPTION_KEY = <base64-encoded 32-byte key>

Optional overrides:
    HASHENV_MAX_CONTENT_SIZE, HASHENV_AUDIT_QUERY_LIMIT,
    HASHENV_FLUSH_DURATION_MIN, HASHENV_FLUSH_DURATION_MAX,
    HASHENV_VERSION_RETRIES, HASHENV_AUDIT_PANIC_FLUSH

Security Note:
    Never log key material. The key is held as SecretBytes and never
    appears in repr() or model dumps.
"""
import os
import base64
import binascii
import secrets
import logging
from typing import Optional, Union

from pydantic import (
    BaseModel,
    Field,
    SecretBytes,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)

from ..exceptions import ConfigurationError

logger = logging.getLogger("hashenv.vault")

MASTER_KEY_ENV = "MASTER_ENCRYPTION_KEY"
KEY_LENGTH = 32

_ENV_OVERRIDES = {
    "HASHENV_MAX_CONTENT_SIZE": "max_content_size",
    "HASHENV_AUDIT_QUERY_LIMIT": "audit_query_limit",
    "HASHENV_FLUSH_DURATION_MIN": "flush_duration_min",
    "HASHENV_FLUSH_DURATION_MAX": "flush_duration_max",
    "HASHENV_VERSION_RETRIES": "version_retries",
    "HASHENV_AUDIT_PANIC_FLUSH": "audit_panic_flush",
}


def decode_master_key(value: str) -> bytes:
    """Decode a base64 master key and check its length.

    Raises:
        ConfigurationError: If the value is not base64 or not 32 bytes.
    """
    try:
        key = base64.b64decode(value.strip(), validate=True)
    except (binascii.Error, ValueError):
        raise ConfigurationError(
            f"Invalid {MASTER_KEY_ENV}: must be a valid base64-encoded string"
        ) from None
    if len(key) != KEY_LENGTH:
        raise ConfigurationError(
            f"{MASTER_KEY_ENV} must decode to exactly {KEY_LENGTH} bytes, "
            f"got {len(key)}"
        )
    return key


def load_master_key(environ: Optional[dict] = None) -> bytes:
    """Load the master key from the MASTER_ENCRYPTION_KEY variable.

    Args:
        environ: Mapping to read from; defaults to ``os.environ``.

    Returns:
        Raw 32-byte key.

    Raises:
        ConfigurationError: If the variable is unset or malformed.
    """
    environ = os.environ if environ is None else environ
    value = environ.get(MASTER_KEY_ENV)
    if not value:
        raise ConfigurationError(
            f"{MASTER_KEY_ENV} environment variable is not set. "
            f"Set {MASTER_KEY_ENV}=<base64-encoded-32-byte-key>"
        )
    key = decode_master_key(value)
    logger.debug("Loaded master key from %s", MASTER_KEY_ENV)
    return key


def generate_master_key() -> str:
    """Generate a random 32-byte master key and return as base64 string.

    This is a utility for operators to generate new keys.
    """
    return base64.b64encode(secrets.token_bytes(KEY_LENGTH)).decode("ascii")


class HashEnvConfig(BaseModel):
    """Validated HashEnv configuration."""

    master_key: SecretBytes
    max_content_size: int = Field(default=50 * 1024, ge=1)
    audit_query_limit: int = Field(default=1000, ge=1)
    flush_duration_min: int = Field(default=1, ge=1)
    flush_duration_max: int = Field(default=1000, ge=1)
    version_retries: int = Field(default=5, ge=1, le=20)
    version_retry_delay: float = Field(default=0.05, ge=0)
    audit_panic_flush: bool = False

    model_config = {"frozen": True}

    @field_validator("master_key")
    @classmethod
    def validate_master_key(cls, v: SecretBytes) -> SecretBytes:
        """Master key must be exactly 32 bytes."""
        if len(v.get_secret_value()) != KEY_LENGTH:
            raise ValueError(f"master_key must be exactly {KEY_LENGTH} bytes")
        return v

    @model_validator(mode="after")
    def validate_flush_bounds(self) -> "HashEnvConfig":
        """Ensure the flush duration range is not inverted."""
        if self.flush_duration_min > self.flush_duration_max:
            raise ValueError(
                f"flush_duration_min ({self.flush_duration_min}) exceeds "
                f"flush_duration_max ({self.flush_duration_max})"
            )
        return self

    @classmethod
    def from_key(cls, key: Union[bytes, str], **overrides) -> "HashEnvConfig":
        """Build a config from a raw or base64 key.

        Raises:
            ConfigurationError: On any invalid value.
        """
        if isinstance(key, str):
            key = decode_master_key(key)
        try:
            return cls(master_key=key, **overrides)
        except PydanticValidationError as err:
            # error_count only; the rendered error would echo the input
            raise ConfigurationError(
                f"Invalid HashEnv configuration ({err.error_count()} error(s))"
            ) from None

    @classmethod
    def from_env(cls, environ: Optional[dict] = None) -> "HashEnvConfig":
        """Create HashEnvConfig by loading values from environment.

        Returns:
            Populated HashEnvConfig instance.
        """
        environ = os.environ if environ is None else environ
        key = load_master_key(environ)
        overrides = {
            field: environ[name]
            for name, field in _ENV_OVERRIDES.items()
            if environ.get(name) not in (None, "")
        }
        return cls.from_key(key, **overrides)
