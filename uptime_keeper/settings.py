from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from uptime_keeper.probe import DEFAULT_USER_AGENT, ProbeConfig


_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def _parse_bool(raw: Any) -> bool | None:
    if isinstance(raw, bool):
        return raw
    s = str(raw).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    return None


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return bool(default)
    parsed = _parse_bool(raw)
    return bool(default) if parsed is None else parsed


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return int(default)
    try:
        return int(str(raw).strip())
    except Exception:
        return int(default)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return float(default)
    try:
        return float(str(raw).strip())
    except Exception:
        return float(default)


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return str(default)
    s = str(raw).strip()
    return s if s else str(default)


def _env_first(*names: str) -> str:
    for name in names:
        raw = os.getenv(name)
        if raw is not None and str(raw).strip():
            return str(raw).strip()
    return ""


@dataclass(frozen=True)
class Settings:
    # Telegram bot credentials. The chat id is also the only authorized operator.
    telegram_bot_token: str = field(default_factory=lambda: _env_first("TG_BOT_TOKEN", "TELEGRAM_BOT_TOKEN"))
    telegram_chat_id: str = field(default_factory=lambda: _env_first("TG_CHAT_ID", "TELEGRAM_CHAT_ID"))
    telegram_api_base_url: str = field(
        default_factory=lambda: _env_str("TELEGRAM_API_BASE_URL", "https://api.telegram.org")
    )

    db_path: str = field(default_factory=lambda: _env_str("UPTIME_KEEPER_DB_PATH", "data/uptime-keeper.db"))

    # Probing.
    probe_timeout_seconds: float = field(
        default_factory=lambda: _env_float("UPTIME_KEEPER_PROBE_TIMEOUT_SECONDS", 10.0)
    )
    probe_max_attempts: int = field(default_factory=lambda: _env_int("UPTIME_KEEPER_PROBE_MAX_ATTEMPTS", 3))
    probe_retry_delay_seconds: float = field(
        default_factory=lambda: _env_float("UPTIME_KEEPER_PROBE_RETRY_DELAY_SECONDS", 5.0)
    )
    probe_user_agent: str = field(default_factory=lambda: _env_str("UPTIME_KEEPER_USER_AGENT", DEFAULT_USER_AGENT))
    # 0 means every endpoint is probed at once.
    max_concurrency: int = field(default_factory=lambda: _env_int("UPTIME_KEEPER_MAX_CONCURRENCY", 20))

    # Scheduling.
    schedule_enabled: bool = field(default_factory=lambda: _env_bool("UPTIME_KEEPER_SCHEDULE_ENABLED", True))
    schedule_cron: str = field(default_factory=lambda: _env_str("UPTIME_KEEPER_SCHEDULE_CRON", "*/10 * * * *"))

    # Reports.
    report_timezone: str = field(default_factory=lambda: _env_str("UPTIME_KEEPER_TIMEZONE", "Asia/Shanghai"))

    # Webhook / HTTP server.
    webhook_path: str = field(default_factory=lambda: _env_str("UPTIME_KEEPER_WEBHOOK_PATH", "/telegram/webhook"))
    public_base_url: str = field(default_factory=lambda: _env_str("UPTIME_KEEPER_PUBLIC_BASE_URL", ""))
    host: str = field(default_factory=lambda: _env_str("UPTIME_KEEPER_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("UPTIME_KEEPER_PORT", 8080))

    log_level: str = field(default_factory=lambda: _env_str("LOG_LEVEL", "INFO"))
    log_json: bool = field(default_factory=lambda: _env_bool("UPTIME_KEEPER_LOG_JSON", False))

    def probe_config(self) -> ProbeConfig:
        return ProbeConfig(
            timeout_seconds=max(0.1, float(self.probe_timeout_seconds)),
            max_attempts=max(1, int(self.probe_max_attempts)),
            retry_delay_seconds=max(0.0, float(self.probe_retry_delay_seconds)),
            user_agent=self.probe_user_agent,
        )

    def webhook_url(self) -> str:
        base = (self.public_base_url or "").rstrip("/")
        path = self.webhook_path if self.webhook_path.startswith("/") else "/" + self.webhook_path
        return base + path if base else ""


# Environment variables read by each setting. A non-blank value wins over the config file.
_ENV_NAMES: dict[str, tuple[str, ...]] = {
    "telegram_bot_token": ("TG_BOT_TOKEN", "TELEGRAM_BOT_TOKEN"),
    "telegram_chat_id": ("TG_CHAT_ID", "TELEGRAM_CHAT_ID"),
    "telegram_api_base_url": ("TELEGRAM_API_BASE_URL",),
    "db_path": ("UPTIME_KEEPER_DB_PATH",),
    "probe_timeout_seconds": ("UPTIME_KEEPER_PROBE_TIMEOUT_SECONDS",),
    "probe_max_attempts": ("UPTIME_KEEPER_PROBE_MAX_ATTEMPTS",),
    "probe_retry_delay_seconds": ("UPTIME_KEEPER_PROBE_RETRY_DELAY_SECONDS",),
    "probe_user_agent": ("UPTIME_KEEPER_USER_AGENT",),
    "max_concurrency": ("UPTIME_KEEPER_MAX_CONCURRENCY",),
    "schedule_enabled": ("UPTIME_KEEPER_SCHEDULE_ENABLED",),
    "schedule_cron": ("UPTIME_KEEPER_SCHEDULE_CRON",),
    "report_timezone": ("UPTIME_KEEPER_TIMEZONE",),
    "webhook_path": ("UPTIME_KEEPER_WEBHOOK_PATH",),
    "public_base_url": ("UPTIME_KEEPER_PUBLIC_BASE_URL",),
    "host": ("UPTIME_KEEPER_HOST",),
    "port": ("UPTIME_KEEPER_PORT",),
    "log_level": ("LOG_LEVEL",),
    "log_json": ("UPTIME_KEEPER_LOG_JSON",),
}


def _env_is_set(name: str) -> bool:
    return bool(_env_first(*_ENV_NAMES.get(name, ())))


def _coerce(name: str, kind: str, value: Any) -> Any:
    """Convert a config file value with the same rules used for environment variables."""
    if kind == "bool":
        parsed = _parse_bool(value)
        if parsed is None:
            raise ValueError(f"Config key {name!r} must be a boolean, got {value!r}")
        return parsed
    if kind in ("int", "float"):
        if isinstance(value, bool):
            raise ValueError(f"Config key {name!r} must be a number, got {value!r}")
        try:
            return int(str(value).strip()) if kind == "int" else float(str(value).strip())
        except ValueError:
            raise ValueError(f"Config key {name!r} must be {kind}, got {value!r}") from None
    return str(value).strip()


def load_settings(config_path: str | None = None) -> Settings:
    """Build settings from an optional YAML file, overridden by environment variables."""
    if config_path is None:
        config_path = os.getenv("UPTIME_KEEPER_CONFIG", "config/uptime-keeper.yaml")

    config_data: dict[str, Any] = {}
    path = Path(config_path)
    if path.exists():
        with path.open("r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file must contain a mapping: {config_path}")
        config_data = loaded

    kinds = {f.name: str(f.type) for f in dataclasses.fields(Settings)}
    unknown = sorted(set(config_data) - set(kinds))
    if unknown:
        raise ValueError(f"Unknown config keys in {config_path}: {', '.join(unknown)}")

    overrides = {
        name: _coerce(name, kinds[name], value)
        for name, value in config_data.items()
        if value is not None and not _env_is_set(name)
    }
    settings = Settings()
    if overrides:
        settings = dataclasses.replace(settings, **overrides)
    return settings
