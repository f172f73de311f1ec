from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from uptime_keeper.settings import _ENV_NAMES, Settings, load_settings


def test_defaults_match_probe_contract(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "UPTIME_KEEPER_PROBE_TIMEOUT_SECONDS",
        "UPTIME_KEEPER_PROBE_MAX_ATTEMPTS",
        "UPTIME_KEEPER_PROBE_RETRY_DELAY_SECONDS",
        "UPTIME_KEEPER_TIMEZONE",
    ):
        monkeypatch.delenv(name, raising=False)
    cfg = Settings().probe_config()
    assert cfg.timeout_seconds == 10.0
    assert cfg.max_attempts == 3
    assert cfg.retry_delay_seconds == 5.0
    assert Settings().report_timezone == "Asia/Shanghai"


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TG_BOT_TOKEN", "123:abc")
    monkeypatch.setenv("TG_CHAT_ID", " 42 ")
    monkeypatch.setenv("UPTIME_KEEPER_PROBE_RETRY_DELAY_SECONDS", "1.5")
    monkeypatch.setenv("UPTIME_KEEPER_MAX_CONCURRENCY", "not-a-number")
    monkeypatch.setenv("UPTIME_KEEPER_SCHEDULE_ENABLED", "off")
    settings = Settings()
    assert settings.telegram_bot_token == "123:abc"
    assert settings.telegram_chat_id == "42"
    assert settings.probe_retry_delay_seconds == 1.5
    assert settings.max_concurrency == 20
    assert settings.schedule_enabled is False


def test_telegram_env_fallback_names(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TG_CHAT_ID", raising=False)
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "77")
    assert Settings().telegram_chat_id == "77"


def test_webhook_url() -> None:
    assert Settings(public_base_url="https://bot.example.org/", webhook_path="hook").webhook_url() == (
        "https://bot.example.org/hook"
    )
    assert Settings(public_base_url="").webhook_url() == ""


def test_load_settings_from_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("TG_CHAT_ID", "TELEGRAM_CHAT_ID", "UPTIME_KEEPER_MAX_CONCURRENCY", "UPTIME_KEEPER_SCHEDULE_CRON"):
        monkeypatch.delenv(name, raising=False)
    path = tmp_path / "config.yaml"
    path.write_text("telegram_chat_id: '99'\nmax_concurrency: 5\nschedule_cron: '0 * * * *'\n", encoding="utf-8")
    settings = load_settings(str(path))
    assert settings.telegram_chat_id == "99"
    assert settings.max_concurrency == 5
    assert settings.schedule_cron == "0 * * * *"


def test_load_settings_rejects_unknown_keys(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("telegram_chat: '99'\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(str(path))


def test_load_settings_missing_file_uses_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TG_CHAT_ID", "5")
    assert load_settings(str(tmp_path / "absent.yaml")).telegram_chat_id == "5"


def test_env_overrides_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "config.yaml"
    path.write_text("telegram_chat_id: '1'\nreport_timezone: UTC\n", encoding="utf-8")
    monkeypatch.setenv("TG_CHAT_ID", "42")
    monkeypatch.delenv("UPTIME_KEEPER_TIMEZONE", raising=False)
    settings = load_settings(str(path))
    assert settings.telegram_chat_id == "42"
    assert settings.report_timezone == "UTC"


def test_config_file_values_are_converted(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("UPTIME_KEEPER_SCHEDULE_ENABLED", "UPTIME_KEEPER_PORT", "UPTIME_KEEPER_PROBE_TIMEOUT_SECONDS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("TG_CHAT_ID", raising=False)
    monkeypatch.delenv("TELEGRAM_CHAT_ID", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(
        "schedule_enabled: 'false'\nport: '9000'\nprobe_timeout_seconds: 4\ntelegram_chat_id: 42\n",
        encoding="utf-8",
    )
    settings = load_settings(str(path))
    assert settings.schedule_enabled is False
    assert settings.port == 9000
    assert settings.probe_timeout_seconds == 4.0
    assert settings.telegram_chat_id == "42"


@pytest.mark.parametrize("line", ["schedule_enabled: 'sometimes'\n", "port: eighty\n", "max_concurrency: true\n"])
def test_config_file_rejects_bad_values(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, line: str) -> None:
    for name in ("UPTIME_KEEPER_SCHEDULE_ENABLED", "UPTIME_KEEPER_PORT", "UPTIME_KEEPER_MAX_CONCURRENCY"):
        monkeypatch.delenv(name, raising=False)
    path = tmp_path / "config.yaml"
    path.write_text(line, encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(str(path))


def test_every_setting_has_env_names() -> None:
    assert set(_ENV_NAMES) == {f.name for f in dataclasses.fields(Settings)}
