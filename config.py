"""Configuration settings for the share server."""
import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, SecretStr

# Upload limits
MAX_UPLOAD_SIZE = 1024 * 1024 * 1024  # 1GB

# Server defaults
DEFAULT_PORT = 4000
KEEP_ALIVE_TIMEOUT = 60  # seconds

# Directory paths
UPLOAD_DIR = "./uploads"


class ConfigError(ValueError):
    """Raised when the environment does not describe a runnable server."""


class Settings(BaseModel):
    """Process-wide settings, built once at startup and never mutated."""

    model_config = ConfigDict(frozen=True)

    base_url: str
    auth_username: str
    auth_password: SecretStr
    port: int = DEFAULT_PORT
    storage_dir: Path = Path(UPLOAD_DIR)
    max_upload_size: int = MAX_UPLOAD_SIZE

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from, defaults to ``os.environ``

        Raises:
            ConfigError: if credentials are missing or a number is malformed
        """
        env = os.environ if environ is None else environ

        port = _int_from_env(env, "PORT", DEFAULT_PORT)
        max_upload_size = _int_from_env(env, "MAX_UPLOAD_SIZE", MAX_UPLOAD_SIZE)

        public_host = env.get("RAILWAY_STATIC_URL", "")
        if public_host:
            base_url = f"https://{public_host}"
        else:
            base_url = f"http://localhost:{port}"

        username = env.get("AUTH_USERNAME", "")
        password = env.get("AUTH_PASSWORD", "")
        if not username:
            raise ConfigError("basic auth username must be provided")
        if not password:
            raise ConfigError("basic auth password must be provided")

        return cls(
            base_url=base_url,
            auth_username=username,
            auth_password=password,
            port=port,
            storage_dir=Path(env.get("UPLOAD_DIR") or UPLOAD_DIR),
            max_upload_size=max_upload_size,
        )


def _int_from_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "")
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value
