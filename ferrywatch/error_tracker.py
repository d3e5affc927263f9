"""Failure streak bookkeeping.

While failing, only every third tick does real work; the others just bump
the cycle counter. The first failure of a streak is the only one that alerts.
"""
from __future__ import annotations

import logging
import os

from pydantic import ValidationError

from ferrywatch.domain import PersistenceError
from ferrywatch.schemas import ErrorState
from ferrywatch.state_file import read_yaml, write_yaml

logger = logging.getLogger(__name__)

RETRY_EVERY_CYCLES = 3


def describe_exception(exc: BaseException) -> str:
    msg = str(exc).strip()
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


def load_error_state(path: str) -> ErrorState | None:
    raw = read_yaml(path)
    if raw is None:
        return None

    try:
        return ErrorState.model_validate(raw)
    except ValidationError as e:
        raise PersistenceError(f"Error file {path} does not match the expected schema: {e}") from e


def save_error_state(path: str, state: ErrorState) -> None:
    write_yaml(path, state.model_dump(mode="json"))


def clear_error_state(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        return
    except OSError as e:
        raise PersistenceError(f"Cannot remove {path} ({type(e).__name__}: {e})") from e


def should_skip(state: ErrorState | None) -> bool:
    return state is not None and state.cycle % RETRY_EVERY_CYCLES != 0


def skip_tick(path: str, state: ErrorState) -> ErrorState:
    skipped = ErrorState(cycle=state.cycle + 1, exception=state.exception)
    save_error_state(path, skipped)
    logger.info(
        "Still failing, skipping this tick (cycle %d -> %d, next attempt at a multiple of %d)",
        state.cycle,
        skipped.cycle,
        RETRY_EVERY_CYCLES,
    )
    return skipped


def record_failure(path: str, previous: ErrorState | None, exc: BaseException) -> ErrorState:
    """Persist the next cycle of the streak; cycle == 1 means a new streak."""
    failed = ErrorState(
        cycle=(previous.cycle if previous else 0) + 1,
        exception=describe_exception(exc),
    )
    save_error_state(path, failed)
    return failed


def record_success(path: str, previous: ErrorState | None) -> None:
    if previous is None:
        return
    clear_error_state(path)
    logger.info("Recovered after %d failing cycle(s)", previous.cycle)
