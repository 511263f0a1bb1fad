"""Small helpers: identifiers, clocks and log sanitising."""
import re
import uuid
from datetime import datetime, timezone
from typing import Any

from .exceptions import ValidationError

_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")

SENSITIVE_KEYS = frozenset({
    'password', 'passwd', 'token', 'secret', 'secret_key', 'api_key',
    'apikey', 'authorization', 'credential', 'credentials', 'private_key',
    'master_key', 'encryption_key', 'content', 'plaintext', 'ciphertext',
    'nonce', 'auth_tag',
})

# KEY=value pairs inside free text (env-file lines leaking into messages)
_ASSIGNMENT_PATTERN = re.compile(r"\b([A-Za-z_][A-Za-z0-9_]*)\s*=\s*\S+")


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_id(value: Any, label: str = "ID") -> str:
    """Ensure ``value`` is a HashEnv record identifier.

    Raises:
        ValidationError: If the value is not a 32-char hex string.
    """
    if not isinstance(value, str) or not _ID_PATTERN.match(value):
        raise ValidationError(f"Invalid {label} format")
    return value


def sanitize_for_log(data: Any, max_length: int = 200) -> Any:
    """Redact sensitive keys and assignments before logging.

    Args:
        data: dict, list, tuple, str or primitive.
        max_length: strings longer than this are truncated.

    Returns:
        A sanitized copy of ``data``.
    """
    if isinstance(data, dict):
        return {
            k: '***REDACTED***' if str(k).lower() in SENSITIVE_KEYS
            else sanitize_for_log(v, max_length)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [sanitize_for_log(item, max_length) for item in data]
    if isinstance(data, tuple):
        return tuple(sanitize_for_log(item, max_length) for item in data)
    if isinstance(data, (bytes, bytearray)):
        return '[bytes]'
    if isinstance(data, str):
        result = _ASSIGNMENT_PATTERN.sub(r"\1=***REDACTED***", data)
        if len(result) > max_length:
            result = result[:max_length] + '...(truncated)'
        return result
    return data
