"""Configuration helpers for environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


class SettingsError(RuntimeError):
    """Raised when the environment does not describe a usable configuration."""


class MissingSettingError(SettingsError):
    """Raised when a required environment variable is missing."""


class InvalidSettingError(SettingsError):
    """Raised when an environment variable cannot be parsed."""


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise MissingSettingError(f"Environment variable '{name}' is required")
    return value


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    data_dir: str = "data"
    store_interval: float = 60.0
    accept_window: float = 600.0
    workers: int = 8
    drop_leaves_states: bool = False
    telegram_disable_ssl_verify: bool = False


def get_settings() -> Settings:
    """Load application settings from environment variables."""

    return Settings(
        telegram_bot_token=_require("TELEGRAM_BOT_TOKEN"),
        data_dir=os.getenv("CHATSTACK_DATA_DIR", "data"),
        store_interval=_get_float("CHATSTACK_STORE_INTERVAL", 60.0),
        accept_window=_get_float("CHATSTACK_ACCEPT_WINDOW", 600.0),
        workers=int(_get_float("CHATSTACK_WORKERS", 8)),
        drop_leaves_states=_get_bool("CHATSTACK_DROP_LEAVES_STATES"),
        telegram_disable_ssl_verify=_get_bool("TELEGRAM_DISABLE_SSL_VERIFY"),
    )


def _get_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise InvalidSettingError(f"Environment variable '{name}' must be a number") from exc
