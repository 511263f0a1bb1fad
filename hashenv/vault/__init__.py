"""Vault — master key configuration and the envelope cipher.

Security Note (Threat Model):
    Plaintext exists in process memory only while a request decrypts it.
    A memory dump of the application process could expose the master key.
    Keeping the key in an HSM or KMS is left to the deployment.
"""

from .config import (
    HashEnvConfig,
    decode_master_key,
    generate_master_key,
    load_master_key,
)
from .crypto import EnvelopeCipher

__all__ = [
    "EnvelopeCipher",
    "HashEnvConfig",
    "decode_master_key",
    "generate_master_key",
    "load_master_key",
]
