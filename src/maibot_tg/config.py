"""
Adapter configuration — ``config.toml`` plus environment overrides.

Environment variables (or a ``.env`` file) win over the config file:
  TELEGRAM_BOT_TOKEN, MAIBOT_URL, MAIBOT_TOKEN
"""

import tomllib
from pathlib import Path
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from maibot_tg.errors import ConfigError

DEFAULT_CONFIG_PATH = Path("config.toml")
DEFAULT_ENV_FILE = Path(".env")


class MaiBotConfig(BaseModel):
    url: str = "ws://localhost:8080"
    token: str = ""
    heartbeat_interval: float = Field(default=30.0, gt=0)
    reconnect_interval: float = Field(default=5.0, gt=0)
    handshake_timeout: float = Field(default=10.0, gt=0)


class ChatFilter(BaseModel):
    """whitelist: only listed chat ids pass. blacklist: every chat except the listed ones."""
    model_config = ConfigDict(populate_by_name=True)

    mode: Literal["whitelist", "blacklist"] = "whitelist"
    chat_ids: list[int] = Field(default=[], alias="list")


class MessageFilterConfig(BaseModel):
    banned_users: list[int] = []
    groups: ChatFilter = ChatFilter(mode="whitelist")
    private: ChatFilter = ChatFilter(mode="blacklist")


class Config(BaseModel):
    platform: str = "telegram"
    telegram_bot_token: str = ""
    log_level: str = "INFO"
    maibot: MaiBotConfig = MaiBotConfig()
    message_filter: MessageFilterConfig = MessageFilterConfig()


class EnvOverrides(BaseSettings):
    """Settings read from the environment or a ``.env`` file."""

    telegram_bot_token: Optional[str] = None
    maibot_url: Optional[str] = None
    maibot_token: Optional[str] = None

    model_config = SettingsConfigDict(env_file=DEFAULT_ENV_FILE, extra="ignore")

    def apply(self, data: dict[str, Any]) -> None:
        if self.telegram_bot_token:
            data["telegram_bot_token"] = self.telegram_bot_token
        maibot = {key: value for key, value in (("url", self.maibot_url), ("token", self.maibot_token)) if value}
        if maibot and isinstance(data.setdefault("maibot", {}), dict):
            data["maibot"].update(maibot)


def load_config(
    path: Union[str, Path, None] = None,
    use_env: bool = True,
    env_file: Union[str, Path, None] = DEFAULT_ENV_FILE,
) -> Config:
    """Load and validate the config file. Raises ConfigError on a missing or invalid file."""
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {config_path}") from e
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to load config {config_path}: {e}") from e

    if use_env:
        EnvOverrides(_env_file=env_file).apply(data)

    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config {config_path}: {e}") from e
