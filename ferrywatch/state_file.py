from __future__ import annotations

import datetime as dt
import logging
import os
import tempfile
from typing import Any, Iterable

import yaml
from pydantic import TypeAdapter, ValidationError

from ferrywatch.domain import PersistenceError
from ferrywatch.schemas import NotifiedDay, NotifiedTrip, Trip

logger = logging.getLogger(__name__)

_CACHE_ADAPTER = TypeAdapter(list[NotifiedDay])


def read_yaml(path: str) -> Any:
    """Return the parsed document, or None for a missing or empty file."""
    if not os.path.exists(path):
        return None

    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except OSError as e:
        raise PersistenceError(f"Cannot read {path} ({type(e).__name__}: {e})") from e
    except yaml.YAMLError as e:
        raise PersistenceError(f"Invalid YAML in {path}: {e}") from e


def write_yaml(path: str, data: Any) -> None:
    folder = os.path.dirname(os.path.abspath(path))
    try:
        os.makedirs(folder, exist_ok=True)

        # Atomic write
        with tempfile.NamedTemporaryFile("w", delete=False, encoding="utf-8", dir=folder, suffix=".tmp") as tf:
            yaml.safe_dump(data, tf, allow_unicode=True, sort_keys=False)
            tmp_name = tf.name

        os.replace(tmp_name, path)
    except OSError as e:
        raise PersistenceError(f"Cannot write {path} ({type(e).__name__}: {e})") from e


def load_cache(path: str) -> list[NotifiedDay]:
    raw = read_yaml(path)
    if raw is None:
        return []

    try:
        return _CACHE_ADAPTER.validate_python(raw)
    except ValidationError as e:
        raise PersistenceError(f"Cache file {path} does not match the expected schema: {e}") from e


def save_cache(path: str, cache: list[NotifiedDay]) -> None:
    write_yaml(path, _CACHE_ADAPTER.dump_python(cache, mode="json", by_alias=True))
    logger.info("Cache saved to %s (%d day(s))", path, len(cache))


def record_notified(cache: list[NotifiedDay], date: dt.date, trips: Iterable[Trip]) -> NotifiedDay:
    """Insert-or-update each trip under its date, keyed by (tripID, ferryName)."""
    day = next((d for d in cache if d.date == date), None)
    if day is None:
        day = NotifiedDay(date=date, trips=[])
        cache.append(day)

    for trip in trips:
        entry = NotifiedTrip(
            trip_id=trip.trip_id,
            trip_datetime=trip.trip_datetime,
            ferry_name=trip.ferry_name,
        )
        for i, existing in enumerate(day.trips):
            if existing.key == entry.key:
                day.trips[i] = entry
                break
        else:
            day.trips.append(entry)

    return day
