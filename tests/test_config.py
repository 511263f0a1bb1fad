"""Tests for master key loading and HashEnvConfig."""
import base64
import os

import pytest

from hashenv.exceptions import ConfigurationError
from hashenv.vault.config import (
    MASTER_KEY_ENV,
    HashEnvConfig,
    decode_master_key,
    generate_master_key,
    load_master_key,
)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class TestMasterKey:
    """MASTER_ENCRYPTION_KEY parsing."""

    def test_load_valid_key(self):
        """Test a base64 32-byte key is decoded."""
        raw = os.urandom(32)
        assert load_master_key({MASTER_KEY_ENV: _b64(raw)}) == raw

    def test_missing_key(self):
        """Test an unset variable is a configuration error."""
        with pytest.raises(ConfigurationError, match=MASTER_KEY_ENV):
            load_master_key({})

    def test_empty_key(self):
        """Test an empty variable counts as unset."""
        with pytest.raises(ConfigurationError):
            load_master_key({MASTER_KEY_ENV: ""})

    def test_invalid_base64(self):
        """Test non-base64 input is rejected."""
        with pytest.raises(ConfigurationError, match="base64"):
            decode_master_key("not base64 at all!!")

    @pytest.mark.parametrize("size", [16, 31, 33, 64])
    def test_wrong_length(self, size):
        """Test keys that do not decode to 32 bytes."""
        with pytest.raises(ConfigurationError, match="32 bytes"):
            decode_master_key(_b64(os.urandom(size)))

    def test_error_does_not_echo_key(self):
        """Test the error message never contains the supplied value."""
        value = _b64(os.urandom(16))
        with pytest.raises(ConfigurationError) as exc:
            decode_master_key(value)
        assert value not in str(exc.value)

    def test_generate_master_key(self):
        """Test generated keys decode to 32 random bytes."""
        first, second = generate_master_key(), generate_master_key()
        assert len(decode_master_key(first)) == 32
        assert first != second


class TestHashEnvConfig:
    """Validated settings."""

    def test_defaults(self):
        """Test documented default values."""
        config = HashEnvConfig.from_key(os.urandom(32))
        assert config.max_content_size == 50 * 1024
        assert config.audit_query_limit == 1000
        assert config.flush_duration_min == 1
        assert config.flush_duration_max == 1000
        assert config.version_retries == 5
        assert config.audit_panic_flush is False

    def test_from_base64_key(self):
        """Test from_key accepts a base64 string."""
        raw = os.urandom(32)
        config = HashEnvConfig.from_key(_b64(raw))
        assert config.master_key.get_secret_value() == raw

    def test_key_hidden_in_repr(self):
        """Test the key never appears in repr() or dumps."""
        raw = os.urandom(32)
        config = HashEnvConfig.from_key(raw)
        assert repr(raw) not in repr(config)
        assert config.model_dump()["master_key"].get_secret_value() == raw
        assert raw.hex() not in config.model_dump_json()

    def test_frozen(self):
        """Test config values cannot be reassigned."""
        config = HashEnvConfig.from_key(os.urandom(32))
        with pytest.raises(Exception):
            config.max_content_size = 1

    def test_wrong_key_length(self):
        """Test a short raw key is rejected."""
        with pytest.raises(ConfigurationError):
            HashEnvConfig.from_key(os.urandom(16))

    def test_inverted_flush_bounds(self):
        """Test min above max is rejected."""
        with pytest.raises(ConfigurationError):
            HashEnvConfig.from_key(
                os.urandom(32), flush_duration_min=10, flush_duration_max=5
            )

    def test_retry_bounds(self):
        """Test version_retries must be 1..20."""
        with pytest.raises(ConfigurationError):
            HashEnvConfig.from_key(os.urandom(32), version_retries=0)

    def test_from_env_overrides(self):
        """Test HASHENV_* variables override defaults."""
        environ = {
            MASTER_KEY_ENV: generate_master_key(),
            "HASHENV_MAX_CONTENT_SIZE": "1024",
            "HASHENV_AUDIT_PANIC_FLUSH": "true",
            "HASHENV_VERSION_RETRIES": "",
        }
        config = HashEnvConfig.from_env(environ)
        assert config.max_content_size == 1024
        assert config.audit_panic_flush is True
        assert config.version_retries == 5

    def test_from_env_bad_override(self):
        """Test a non-numeric override is a configuration error."""
        environ = {
            MASTER_KEY_ENV: generate_master_key(),
            "HASHENV_AUDIT_QUERY_LIMIT": "lots",
        }
        with pytest.raises(ConfigurationError):
            HashEnvConfig.from_env(environ)
