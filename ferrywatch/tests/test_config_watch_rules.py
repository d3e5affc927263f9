from __future__ import annotations

import dataclasses
import datetime as dt

import pytest
import yaml

from ferrywatch.config import is_valid_rule, load_settings, load_watch_config, parse_watch_rules
from ferrywatch.domain import ConfigError, TimeOfDay

TODAY = dt.date(2026, 10, 18)

_ENV = (
    "CONFIG_FILE",
    "CACHE_FILE",
    "ERROR_FILE",
    "LOCK_FILE",
    "SCHEDULE_URL",
    "COMPANY_CODE",
    "TOTAL_PAX",
    "REQUEST_TIMEOUT_SECONDS",
    "SMTP_PASSWORD",
)


def _entry(**overrides) -> dict:
    entry = {
        "enabled": True,
        "from": "KP",
        "to": "KK",
        "date": TODAY.isoformat(),
        "condition": {"between": {"start": "04:00 pm", "end": "06:00 pm"}},
    }
    entry.update(overrides)
    return entry


def _write_config(path, **overrides) -> str:
    raw = {
        "cron": "*/10 * * * *",
        "mail": {
            "smtp": {"host": "smtp.example.test", "port": 465, "secure": True, "auth": {"user": "bot", "pass": "file-pw"}},
            "from": "bot@example.test",
            "to": "me@example.test",
        },
        "watch": [_entry()],
    }
    raw.update(overrides)
    path.write_text(yaml.safe_dump(raw), encoding="utf-8")
    return str(path)


def test_rule_for_today_is_valid() -> None:
    assert is_valid_rule(_entry(), today=TODAY)
    assert is_valid_rule(_entry(date=TODAY), today=TODAY)


def test_past_dates_are_dropped() -> None:
    assert not is_valid_rule(_entry(date="2026-10-17"), today=TODAY)
    assert not is_valid_rule(_entry(date=dt.date(2023, 12, 16)), today=TODAY)


@pytest.mark.parametrize(
    "overrides",
    [
        {"enabled": False},
        {"enabled": None},
        {"date": "next friday"},
        {"date": "2026-02-30"},
        {"date": None},
        {"from": "XX"},
        {"to": "kk"},
    ],
)
def test_invalid_entries_are_dropped(overrides: dict) -> None:
    assert not is_valid_rule(_entry(**overrides), today=TODAY)


def test_parse_watch_rules_keeps_only_valid_entries_in_order() -> None:
    rules = parse_watch_rules(
        [
            _entry(**{"from": "KK", "to": "PL"}),
            _entry(enabled=False),
            _entry(date="2026-10-19"),
            "not a mapping",
        ],
        today=TODAY,
    )

    assert [(r.route, r.date) for r in rules] == [
        ("KK-PL", TODAY),
        ("KP-KK", dt.date(2026, 10, 19)),
    ]
    assert rules[0].window.start == TimeOfDay(16, 0)
    assert rules[0].window.end == TimeOfDay(18, 0)
    # Disabled entries never become rules, so a rule carries no enabled flag.
    assert [f.name for f in dataclasses.fields(rules[0])] == ["origin", "destination", "date", "window"]


def test_unparseable_window_on_active_rule_is_config_error() -> None:
    with pytest.raises(ConfigError, match=r"watch\[0\]"):
        parse_watch_rules([_entry(condition={"between": {"start": "4pm", "end": "06:00 pm"}})], today=TODAY)


def test_unparseable_window_on_dropped_rule_is_ignored() -> None:
    assert parse_watch_rules([_entry(enabled=False, condition="garbage")], today=TODAY) == ()


def test_load_watch_config_reads_yaml(tmp_path) -> None:
    config = load_watch_config(_write_config(tmp_path / "config.yaml"), today=TODAY)

    assert config.cron == "*/10 * * * *"
    assert config.mail.sender == "bot@example.test"
    assert config.mail.recipients == ("me@example.test",)
    assert config.mail.smtp.secure is True
    assert config.mail.smtp.port == 465
    assert config.mail.smtp.password == "file-pw"
    assert len(config.watch) == 1


def test_smtp_password_setting_overrides_file(tmp_path) -> None:
    config = load_watch_config(_write_config(tmp_path / "config.yaml"), smtp_password="env-pw", today=TODAY)
    assert config.mail.smtp.password == "env-pw"


def test_recipients_accept_list_and_deduplicate(tmp_path) -> None:
    mail = {
        "smtp": {"host": "smtp.example.test"},
        "from": "bot@example.test",
        "to": ["a@example.test", " b@example.test", "a@example.test", ""],
    }
    config = load_watch_config(_write_config(tmp_path / "config.yaml", mail=mail), today=TODAY)
    assert config.mail.recipients == ("a@example.test", "b@example.test")
    assert config.mail.smtp.port == 587


def test_missing_config_file_is_config_error(tmp_path) -> None:
    with pytest.raises(ConfigError, match="Cannot read config file"):
        load_watch_config(str(tmp_path / "missing.yaml"))


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"cron": "every minute"}, "Invalid cron"),
        ({"mail": None}, "Missing 'mail'"),
        ({"mail": {"from": "bot@example.test", "to": "me@example.test"}}, "smtp.host"),
        ({"mail": {"smtp": {"host": "h"}, "from": "bot@example.test", "to": []}}, "mail.to is empty"),
        ({"watch": {"from": "KP"}}, "must be a list"),
    ],
)
def test_structural_problems_are_config_errors(tmp_path, overrides: dict, message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        load_watch_config(_write_config(tmp_path / "config.yaml", **overrides), today=TODAY)


def test_load_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)

    settings = load_settings(dotenv_path=None)
    assert settings.cache_file == "sent.yaml"
    assert settings.error_file == "error.yaml"
    assert settings.company_code == "LFLV"
    assert settings.total_pax == 2
    assert settings.smtp_password is None


def test_load_settings_rejects_non_positive_pax(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TOTAL_PAX", "0")
    with pytest.raises(ConfigError, match="TOTAL_PAX must be > 0"):
        load_settings(dotenv_path=None)


def test_load_settings_rejects_non_numeric_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REQUEST_TIMEOUT_SECONDS", "soon")
    with pytest.raises(ConfigError, match="Invalid REQUEST_TIMEOUT_SECONDS"):
        load_settings(dotenv_path=None)


def test_load_settings_does_not_override_existing_env_with_dotenv(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("CACHE_FILE", "from-env.yaml")

    dotenv = tmp_path / ".env"
    dotenv.write_text("CACHE_FILE=from-dotenv.yaml\n")

    settings = load_settings(dotenv_path=str(dotenv))
    assert settings.cache_file == "from-env.yaml"
