"""Chat service configuration.

Loads settings from two YAML files:
  * chat.settings.yaml: non-secret configuration
  * chat.secrets.yaml: secrets (never committed)

A relative ``store.db_path`` is resolved against the directory holding the
settings file, so the service can be started from any working directory.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("chat.settings.yaml")
SECRETS_FILE  = Path("chat.secrets.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class JWTSecrets(BaseModel):
    secret_key: str = "dev-secret-change-in-production"
    algorithm:  str = "HS256"


class Secrets(BaseModel):
    jwt: JWTSecrets = Field(default_factory=JWTSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000


class LoggingSettings(BaseModel):
    level: str = "info"


class StoreSettings(BaseModel):
    """DuckDB persistence settings."""
    db_path:         str   = "chat.duckdb"
    timeout_seconds: float = Field(default=10.0, gt=0)


class ChatSettings(BaseModel):
    """Real-time chat behaviour."""
    default_room:            str       = "general"
    public_rooms:            List[str] = Field(default_factory=lambda: ["general"])
    history_limit:           int       = Field(default=50, ge=1, le=500)
    max_message_image_chars: int       = 3_000_000
    send_timeout_seconds:    float     = Field(default=5.0, gt=0)

    @field_validator("public_rooms")
    @classmethod
    def _no_dm_literals(cls, rooms: List[str]) -> List[str]:
        for room in rooms:
            if room.startswith("dm:"):
                raise ValueError(f"public room name may not use the dm: prefix: {room}")
        return rooms


class ProfileSettings(BaseModel):
    max_avatar_image_chars: int = 700_000
    max_avatar_emoji_chars: int = 16


class AuthSettings(BaseModel):
    token_expire_minutes: int = 7 * 24 * 60


class AdminSettings(BaseModel):
    """Usernames that are granted admin rights at startup / registration."""
    usernames: List[str] = Field(default_factory=list)


class AppConfig(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    store:   StoreSettings   = Field(default_factory=StoreSettings)
    chat:    ChatSettings    = Field(default_factory=ChatSettings)
    profile: ProfileSettings = Field(default_factory=ProfileSettings)
    auth:    AuthSettings    = Field(default_factory=AuthSettings)
    admin:   AdminSettings   = Field(default_factory=AdminSettings)
    secrets: Secrets         = Field(default_factory=Secrets)

    @property
    def rooms(self) -> List[str]:
        """Every public room, default room first."""
        rooms = [self.chat.default_room]
        rooms.extend(r for r in self.chat.public_rooms if r != self.chat.default_room)
        return rooms


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def _resolve_db_path(db_path: str, settings_dir: Path) -> str:
    if db_path == ":memory:":
        return db_path
    path = Path(db_path)
    if path.is_absolute():
        return str(path)
    return str(settings_dir / path)


def load_config(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppConfig:
    """Load and merge settings + secrets into a single *AppConfig* object."""
    settings_path = Path(settings_path) if settings_path else SETTINGS_FILE
    if secrets_path is None:
        secrets_path = settings_path.parent / SECRETS_FILE.name

    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(Path(secrets_path))

    # Merge: secrets live under the "secrets" key in AppConfig
    settings_data["secrets"] = secrets_data

    config = AppConfig(**settings_data)
    config.store.db_path = _resolve_db_path(
        config.store.db_path, settings_path.resolve().parent
    )
    logger.info(
        "Settings loaded (server=%s:%s, store=%s, rooms=%s)",
        config.server.host,
        config.server.port,
        config.store.db_path,
        config.rooms,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[AppConfig]) -> None:
    """Replace (or clear, with ``None``) the process-wide configuration."""
    global _config
    _config = config
