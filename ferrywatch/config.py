from __future__ import annotations

import datetime as dt
import logging
import os
from dataclasses import dataclass, field
from typing import Any

import yaml
from croniter import croniter
from dotenv import load_dotenv

from ferrywatch.domain import PLACE_CODES, ConfigError, ParseError, TimeOfDay, TimeWindow, WatchRule

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULE_URL = (
    "https://www.cuticutilangkawi.com/hcjSystem/executor.php?Ccl/travelApp/modules/checkOut/getTrip"
)
DEFAULT_CRON = "*/5 * * * *"


@dataclass(frozen=True)
class Settings:
    config_file: str = "config.yaml"

    # Where we store already notified trips and the failure streak
    cache_file: str = "sent.yaml"
    error_file: str = "error.yaml"
    lock_file: str = "ferrywatch.lock"

    schedule_url: str = DEFAULT_SCHEDULE_URL
    company_code: str = "LFLV"
    total_pax: int = 2
    request_timeout_seconds: float = 30.0

    # Overrides mail.smtp.auth.pass so the secret can stay out of config.yaml.
    smtp_password: str | None = None


@dataclass(frozen=True)
class SmtpConfig:
    host: str
    port: int = 587
    # True means implicit TLS (port 465); otherwise STARTTLS when offered.
    secure: bool = False
    username: str | None = None
    password: str | None = None
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class MailConfig:
    smtp: SmtpConfig
    sender: str
    recipients: tuple[str, ...]


@dataclass(frozen=True)
class WatchConfig:
    mail: MailConfig
    cron: str = DEFAULT_CRON
    watch: tuple[WatchRule, ...] = field(default_factory=tuple)


def _positive_number(name: str, default: str, kind: type) -> Any:
    raw = os.getenv(name, default)
    try:
        value = kind(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid {name} value: {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{name} must be > 0")
    return value


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    return Settings(
        config_file=os.getenv("CONFIG_FILE", "config.yaml"),
        cache_file=os.getenv("CACHE_FILE", "sent.yaml"),
        error_file=os.getenv("ERROR_FILE", "error.yaml"),
        lock_file=os.getenv("LOCK_FILE", "ferrywatch.lock"),
        schedule_url=os.getenv("SCHEDULE_URL", DEFAULT_SCHEDULE_URL),
        company_code=os.getenv("COMPANY_CODE", "LFLV"),
        total_pax=_positive_number("TOTAL_PAX", "2", int),
        request_timeout_seconds=_positive_number("REQUEST_TIMEOUT_SECONDS", "30", float),
        smtp_password=os.getenv("SMTP_PASSWORD") or None,
    )


def _parse_rule_date(raw: object) -> dt.date | None:
    # YAML already turns 2023-12-16 into a date; quoted values stay strings.
    if isinstance(raw, dt.datetime):
        return raw.date()
    if isinstance(raw, dt.date):
        return raw
    if isinstance(raw, str):
        try:
            return dt.date.fromisoformat(raw.strip())
        except ValueError:
            return None
    return None


def is_valid_rule(entry: Any, today: dt.date | None = None) -> bool:
    if not isinstance(entry, dict) or not entry.get("enabled"):
        return False

    entry_date = _parse_rule_date(entry.get("date"))
    if entry_date is None or entry_date < (today or dt.date.today()):
        return False

    return entry.get("from") in PLACE_CODES and entry.get("to") in PLACE_CODES


def _build_rule(index: int, entry: dict) -> WatchRule:
    try:
        between = (entry.get("condition") or {}).get("between") or {}
        window = TimeWindow(
            start=TimeOfDay.parse(between.get("start")),
            end=TimeOfDay.parse(between.get("end")),
        )
    except (ParseError, AttributeError) as e:
        raise ConfigError(f"watch[{index}]: invalid condition.between ({e})") from e

    return WatchRule(
        origin=entry["from"],
        destination=entry["to"],
        date=_parse_rule_date(entry["date"]),
        window=window,
    )


def parse_watch_rules(raw: Any, today: dt.date | None = None) -> tuple[WatchRule, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ConfigError("'watch' must be a list of rules")

    today = today or dt.date.today()
    rules: list[WatchRule] = []
    for index, entry in enumerate(raw):
        if not is_valid_rule(entry, today):
            logger.debug("Skipping watch[%d]: disabled, past or unknown route", index)
            continue
        rules.append(_build_rule(index, entry))
    return tuple(rules)


def _parse_recipients(raw: Any) -> tuple[str, ...]:
    # mail.to supports a single address, a comma-separated string or a list.
    if isinstance(raw, str):
        parts = raw.split(",")
    elif isinstance(raw, list):
        parts = [str(p) for p in raw]
    else:
        parts = []

    seen: set[str] = set()
    result: list[str] = []
    for p in (p.strip() for p in parts):
        if p and p not in seen:
            seen.add(p)
            result.append(p)

    if not result:
        raise ConfigError("mail.to is empty. Provide at least one recipient.")
    return tuple(result)


def parse_mail_config(raw: Any, smtp_password: str | None = None) -> MailConfig:
    if not isinstance(raw, dict):
        raise ConfigError("Missing 'mail' section")

    smtp_raw = raw.get("smtp")
    if not isinstance(smtp_raw, dict) or not smtp_raw.get("host"):
        raise ConfigError("mail.smtp.host is required")
    if not raw.get("from"):
        raise ConfigError("mail.from is required")

    secure = bool(smtp_raw.get("secure", False))
    auth = smtp_raw.get("auth") or {}
    try:
        port = int(smtp_raw.get("port", 465 if secure else 587))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid mail.smtp.port value: {smtp_raw.get('port')!r}") from e

    smtp = SmtpConfig(
        host=str(smtp_raw["host"]),
        port=port,
        secure=secure,
        username=auth.get("user") or None,
        password=smtp_password or auth.get("pass") or None,
    )
    return MailConfig(smtp=smtp, sender=str(raw["from"]), recipients=_parse_recipients(raw.get("to")))


def load_watch_config(path: str, *, smtp_password: str | None = None, today: dt.date | None = None) -> WatchConfig:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path} ({type(e).__name__}: {e})") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    cron = str(raw.get("cron") or DEFAULT_CRON)
    if not croniter.is_valid(cron):
        raise ConfigError(f"Invalid cron expression: {cron!r}")

    config = WatchConfig(
        mail=parse_mail_config(raw.get("mail"), smtp_password=smtp_password),
        cron=cron,
        watch=parse_watch_rules(raw.get("watch"), today=today),
    )
    logger.info("Config loaded: %d active watch rule(s), cron=%r", len(config.watch), config.cron)
    return config
