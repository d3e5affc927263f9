from __future__ import annotations

import asyncio
import datetime as dt
import enum
import logging
import time
from dataclasses import dataclass
from typing import Sequence

import httpx
from croniter import croniter

from ferrywatch.config import MailConfig, Settings, WatchConfig, load_watch_config
from ferrywatch.domain import PersistenceError, TripGroup, WatchRule
from ferrywatch.error_tracker import (
    describe_exception,
    load_error_state,
    record_failure,
    record_success,
    should_skip,
    skip_tick,
)
from ferrywatch.lock import TickInProgressError, single_flight
from ferrywatch.notifier import send_error_alert, send_trip_digest
from ferrywatch.schedule_client import fetch_schedule
from ferrywatch.schemas import ErrorState, NotifiedDay
from ferrywatch.state_file import load_cache, record_notified, save_cache
from ferrywatch.trip_filter import filter_trips

logger = logging.getLogger(__name__)


class TickOutcome(enum.Enum):
    OK = "ok"
    THROTTLED = "throttled"
    FAILED = "failed"
    LOCKED = "locked"


@dataclass(frozen=True)
class TickResult:
    outcome: TickOutcome
    # Config loaded during the tick, if loading got that far.
    config: WatchConfig | None = None
    groups: tuple[TripGroup, ...] = ()


async def _check_rule(
    client: httpx.AsyncClient,
    settings: Settings,
    rule: WatchRule,
    cache: Sequence[NotifiedDay],
) -> TripGroup:
    trips = await fetch_schedule(
        client,
        url=settings.schedule_url,
        company_code=settings.company_code,
        origin=rule.origin,
        destination=rule.destination,
        depart_date=rule.date,
        total_pax=settings.total_pax,
    )
    matched = filter_trips(rule, trips, cache)
    logger.info(
        "Rule %s %s [%s-%s]: %d new of %d trip(s)",
        rule.route,
        rule.date.isoformat(),
        rule.window.start,
        rule.window.end,
        len(matched),
        len(trips),
    )
    return TripGroup(rule=rule, trips=tuple(matched))


async def collect_groups(
    settings: Settings,
    rules: Sequence[WatchRule],
    cache: Sequence[NotifiedDay],
) -> list[TripGroup]:
    """Fetch and filter every rule concurrently against one cache snapshot.

    Waits for all fetches to settle; the first failure (in rule order) is re-raised.
    """
    async with httpx.AsyncClient(timeout=settings.request_timeout_seconds) as client:
        results = await asyncio.gather(
            *(_check_rule(client, settings, rule, cache) for rule in rules),
            return_exceptions=True,
        )

    for result in results:
        if isinstance(result, BaseException):
            raise result

    return [group for group in results if group.trips]


def _send_alert(mail: MailConfig | None, detail: str) -> None:
    if mail is None:
        logger.error("No mail settings available, cannot send error alert")
        return
    try:
        send_error_alert(mail, detail)
    except Exception:
        logger.warning("Failed to send error alert", exc_info=True)


def _handle_failure(
    settings: Settings,
    previous: ErrorState | None,
    exc: Exception,
    *,
    mail: MailConfig | None,
    config: WatchConfig | None = None,
) -> TickResult:
    # No stack trace here; the detail goes to the error file.
    logger.error("Tick failed (%s: %s)", type(exc).__name__, exc)

    try:
        state = record_failure(settings.error_file, previous, exc)
    except PersistenceError as e:
        logger.error("Failed to persist error state (%s)", e)
        state = ErrorState(cycle=(previous.cycle if previous else 0) + 1, exception=describe_exception(exc))

    if state.cycle == 1:
        _send_alert(mail, state.exception)
    else:
        logger.info("Failure cycle %d, alert already sent for this streak", state.cycle)

    return TickResult(outcome=TickOutcome.FAILED, config=config)


def _run_tick_locked(settings: Settings, fallback_mail: MailConfig | None) -> TickResult:
    try:
        previous = load_error_state(settings.error_file)
    except PersistenceError as e:
        # Start a fresh streak; record_failure overwrites the unreadable file.
        return _handle_failure(settings, None, e, mail=fallback_mail)

    if should_skip(previous):
        try:
            skip_tick(settings.error_file, previous)
        except PersistenceError as e:
            logger.error("Failed to persist error state (%s)", e)
        return TickResult(outcome=TickOutcome.THROTTLED)

    config: WatchConfig | None = None
    try:
        config = load_watch_config(settings.config_file, smtp_password=settings.smtp_password)
        cache = load_cache(settings.cache_file)

        groups = asyncio.run(collect_groups(settings, config.watch, cache))

        send_trip_digest(config.mail, groups)

        for group in groups:
            record_notified(cache, group.rule.date, group.trips)
        save_cache(settings.cache_file, cache)

        record_success(settings.error_file, previous)

    except Exception as e:
        mail = config.mail if config is not None else fallback_mail
        return _handle_failure(settings, previous, e, mail=mail, config=config)

    return TickResult(outcome=TickOutcome.OK, config=config, groups=tuple(groups))


def run_tick(settings: Settings, *, fallback_mail: MailConfig | None = None) -> TickResult:
    """Run one scheduled tick. Run-body errors end up in the error file, not raised.

    ``fallback_mail`` is the last known good mail config, used for the error
    alert when the config file itself cannot be loaded.
    """
    try:
        with single_flight(settings.lock_file):
            return _run_tick_locked(settings, fallback_mail)
    except TickInProgressError as e:
        logger.warning("Skipping tick (%s)", e)
        return TickResult(outcome=TickOutcome.LOCKED)
    except PersistenceError as e:
        # Raised only while acquiring the lock; the tick body handles its own.
        logger.error("Tick failed before start (%s)", e)
        return TickResult(outcome=TickOutcome.FAILED)


def seconds_until_next(cron: str, now: dt.datetime | None = None) -> float:
    now = now or dt.datetime.now()
    next_run = croniter(cron, now).get_next(dt.datetime)
    return max(0.0, (next_run - now).total_seconds())


def run_forever(settings: Settings, config: WatchConfig) -> None:
    logger.info("Worker started. cron=%r", config.cron)
    mail, cron = config.mail, config.cron
    while True:
        try:
            result = run_tick(settings, fallback_mail=mail)
            if result.config is not None:
                mail, cron = result.config.mail, result.config.cron
        except Exception as e:
            logger.error("Tick crashed in run_forever (%s: %s)", type(e).__name__, e)
        time.sleep(seconds_until_next(cron))
