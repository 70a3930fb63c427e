"""Test configuration management."""

import pytest
from unittest.mock import patch

from tether.client import config as config_module
from tether.client.config import ClientConfig, get_config, load_dotenv_for_client


class TestConfiguration:
    """Test configuration loading and management."""

    def test_default_config_values(self):
        """Test default configuration values."""
        config = ClientConfig()
        assert config.request_timeout == 5000
        assert config.grace_margin == 100
        assert config.connect_timeout is None
        assert config.effective_connect_timeout == 5000
        assert config.pool_size == 10

    def test_config_from_environment(self):
        """Test configuration loading from environment variables."""
        env_vars = {
            "TETHER_REQUEST_TIMEOUT": "250",
            "TETHER_GRACE_MARGIN": "0",
            "TETHER_CONNECT_TIMEOUT": "75",
            "TETHER_POOL_SIZE": " 4 ",
        }

        with patch.dict("os.environ", env_vars):
            config = ClientConfig.from_environment()

        assert config.request_timeout == 250
        assert config.grace_margin == 0
        assert config.effective_connect_timeout == 75
        assert config.pool_size == 4

    @pytest.mark.parametrize(
        "key,value",
        [
            ("TETHER_REQUEST_TIMEOUT", "0"),
            ("TETHER_REQUEST_TIMEOUT", "soon"),
            ("TETHER_GRACE_MARGIN", "-1"),
            ("TETHER_POOL_SIZE", "0"),
        ],
    )
    def test_invalid_environment_rejected(self, key, value):
        """Test that bad values fail loudly instead of falling back."""
        with patch.dict("os.environ", {key: value}):
            with pytest.raises(ValueError):
                ClientConfig.from_environment()

    def test_config_immutability(self):
        """Test that config is immutable."""
        config = ClientConfig()

        with pytest.raises(Exception):  # Pydantic will raise validation error
            config.request_timeout = 1

    def test_get_config_caches_until_reload(self):
        """Test the global instance is reused until reloaded."""
        with patch.dict("os.environ", {"TETHER_REQUEST_TIMEOUT": "1234"}):
            first = get_config(reload=True)
            assert get_config() is first
            assert first.request_timeout == 1234

        reloaded = get_config(reload=True)
        assert reloaded is not first

    def test_load_dotenv_resets_cached_config(self, tmp_path, monkeypatch):
        """Test .env values are picked up by the next get_config()."""
        monkeypatch.delenv("TETHER_POOL_SIZE", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("TETHER_POOL_SIZE=3\n")
        get_config(reload=True)

        try:
            load_dotenv_for_client(env_file)
            assert get_config().pool_size == 3
        finally:
            monkeypatch.delenv("TETHER_POOL_SIZE", raising=False)
            config_module._config = None

    def test_missing_dotenv_is_ignored(self, tmp_path):
        """Test a missing .env file is not an error."""
        load_dotenv_for_client(tmp_path / "absent.env")
