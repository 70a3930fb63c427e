"""Process-wide configuration for the tether HTTP client."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt


class ClientConfig(BaseModel):
    """Defaults shared by every request and pool in the process.

    All durations are in milliseconds.
    """

    model_config = ConfigDict(frozen=True)

    request_timeout: PositiveInt = Field(default=5000)
    # added on top of request_timeout before the whole operation is abandoned
    grace_margin: NonNegativeInt = Field(default=100)
    connect_timeout: Optional[PositiveInt] = Field(default=None)
    pool_size: PositiveInt = Field(default=10)

    @property
    def effective_connect_timeout(self) -> int:
        return self.connect_timeout or self.request_timeout

    @classmethod
    def from_environment(cls) -> "ClientConfig":
        """Create configuration from ``TETHER_*`` environment variables."""
        config_data = {}
        for field, key in (
            ("request_timeout", "TETHER_REQUEST_TIMEOUT"),
            ("grace_margin", "TETHER_GRACE_MARGIN"),
            ("connect_timeout", "TETHER_CONNECT_TIMEOUT"),
            ("pool_size", "TETHER_POOL_SIZE"),
        ):
            if value := os.getenv(key):
                config_data[field] = value.strip()

        # pydantic coerces the strings and rejects bad values
        return cls(**config_data)


# Global configuration instance
_config: Optional[ClientConfig] = None


def get_config(*, reload: bool = False) -> ClientConfig:
    """Get the global configuration instance."""
    global _config

    if _config is None or reload:
        _config = ClientConfig.from_environment()

    return _config


def load_dotenv_for_client(path: Optional[Path] = None, *, override: bool = False) -> None:
    """Load environment variables from a .env file.

    Defaults to ``.env`` in the current directory. The cached global
    configuration is dropped so the next ``get_config()`` sees the values.
    """
    global _config

    if path is None:
        path = Path.cwd() / ".env"

    if path.exists():
        load_dotenv(path, override=override)
        _config = None
