"""
Vault Crypto Core — AES-256-GCM envelope over the static master key.

Every encrypt draws a fresh random nonce; the 16-byte GCM tag is split
from the ciphertext so records store ``ciphertext``, ``nonce`` and
``auth_tag`` separately.

Security Note:
    Never log plaintext or ciphertext values.
    Nonces are random 96-bit; collision probability negligible under normal usage.
"""
import os
import logging
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import ConfigurationError, IntegrityError, ValidationError
from ..models import EncryptedBlob
from .config import HashEnvConfig, KEY_LENGTH

logger = logging.getLogger("hashenv.vault")

NONCE_SIZE = 12  # 96-bit nonce
MIN_NONCE_SIZE = 12
MAX_NONCE_SIZE = 16  # legacy records carry 128-bit IVs
TAG_SIZE = 16


class EnvelopeCipher:
    """Stateless AEAD cipher bound to one master key.

    Safe to share between tasks: encrypt/decrypt hold no mutable state.
    """

    algorithm = "aes-256-gcm"

    def __init__(self, master_key: bytes):
        if not isinstance(master_key, (bytes, bytearray)) or len(master_key) != KEY_LENGTH:
            raise ConfigurationError(
                f"Master key must be exactly {KEY_LENGTH} bytes"
            )
        self._aead = AESGCM(bytes(master_key))

    @classmethod
    def from_config(cls, config: HashEnvConfig) -> "EnvelopeCipher":
        return cls(config.master_key.get_secret_value())

    def __repr__(self) -> str:
        return f"<EnvelopeCipher {self.algorithm}>"

    def encrypt(self, plaintext: Union[bytes, str]) -> EncryptedBlob:
        """Encrypt plaintext under a freshly generated nonce.

        Args:
            plaintext: Data to encrypt; str is encoded as UTF-8.

        Returns:
            EncryptedBlob with ciphertext, nonce and auth_tag.
        """
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, bytes(plaintext), None)
        return EncryptedBlob(
            ciphertext=sealed[:-TAG_SIZE],
            nonce=nonce,
            auth_tag=sealed[-TAG_SIZE:],
        )

    def decrypt(self, blob: EncryptedBlob) -> bytes:
        """Verify the tag and return the plaintext.

        Raises:
            ValidationError: If nonce or tag have an invalid length.
            IntegrityError: If tag verification fails.
        """
        if not MIN_NONCE_SIZE <= len(blob.nonce) <= MAX_NONCE_SIZE:
            raise ValidationError(
                f"Invalid nonce length: expected {MIN_NONCE_SIZE}-{MAX_NONCE_SIZE} "
                f"bytes, got {len(blob.nonce)}"
            )
        if len(blob.auth_tag) != TAG_SIZE:
            raise ValidationError(
                f"Invalid auth tag length: expected {TAG_SIZE} bytes, "
                f"got {len(blob.auth_tag)}"
            )
        try:
            return self._aead.decrypt(blob.nonce, blob.ciphertext + blob.auth_tag, None)
        except InvalidTag:
            logger.warning("Authentication tag verification failed")
            raise IntegrityError() from None

    def decrypt_text(self, blob: EncryptedBlob) -> str:
        """Decrypt and decode as UTF-8."""
        data = self.decrypt(blob)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Decrypted payload is not valid UTF-8")
            raise IntegrityError() from None
