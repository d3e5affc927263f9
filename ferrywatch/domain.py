from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ferrywatch.schemas import Trip

# Ports served by the booking provider: Kuala Perlis, Kuah (Langkawi), Penang.
PLACE_CODES = frozenset({"KP", "KK", "PL"})

_TIME_FORMATS = ("%I:%M %p", "%H:%M")


class FerryWatchError(RuntimeError):
    """Base class for errors raised by ferrywatch."""


class ConfigError(FerryWatchError):
    """Configuration is missing or malformed. Fatal at startup."""


class ParseError(FerryWatchError, ValueError):
    """A value (time of day, date) could not be parsed strictly."""


class NetworkError(FerryWatchError):
    """The booking endpoint could not be reached."""


class UpstreamError(FerryWatchError):
    """The booking endpoint answered, but not with a usable trip list."""


class PersistenceError(FerryWatchError):
    """Cache or error-state file could not be read, validated or written."""


@dataclass(frozen=True, order=True)
class TimeOfDay:
    """Minute-granularity wall-clock time, e.g. ``04:00 pm``."""

    hour: int
    minute: int

    @classmethod
    def parse(cls, raw: object) -> TimeOfDay:
        if not isinstance(raw, str):
            # YAML turns unquoted 16:00 into a base-60 integer.
            raise ParseError(f"Invalid time of day {raw!r}: expected a quoted string like '04:00 pm'")

        text = " ".join(raw.split())
        for fmt in _TIME_FORMATS:
            try:
                parsed = dt.datetime.strptime(text, fmt)
            except ValueError:
                continue
            return cls(hour=parsed.hour, minute=parsed.minute)

        raise ParseError(f"Invalid time of day {raw!r}: expected 'hh:mm am/pm' or 'HH:MM'")

    def __str__(self) -> str:
        return dt.time(self.hour, self.minute).strftime("%I:%M %p").lower()


@dataclass(frozen=True)
class TimeWindow:
    start: TimeOfDay
    end: TimeOfDay

    def contains(self, value: TimeOfDay) -> bool:
        # Inclusive on both ends; start > end is an empty window.
        return self.start <= value <= self.end


@dataclass(frozen=True)
class WatchRule:
    origin: str
    destination: str
    date: dt.date
    window: TimeWindow

    @property
    def route(self) -> str:
        return f"{self.origin}-{self.destination}"


@dataclass(frozen=True)
class TripGroup:
    """Newly matched trips for one rule, in the order the provider listed them."""

    rule: WatchRule
    trips: tuple[Trip, ...]
