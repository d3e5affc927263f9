from __future__ import annotations

from typing import Iterable, Sequence

from ferrywatch.domain import TimeOfDay, WatchRule
from ferrywatch.schemas import NotifiedDay, Trip


def is_notified(cache: Iterable[NotifiedDay], rule: WatchRule, trip: Trip) -> bool:
    """True if this trip was already sent for the rule's date.

    Trips are matched by (tripID, ferryName): the provider reuses trip ids
    across ferries.
    """
    key = (trip.trip_id, trip.ferry_name)
    return any(
        day.date == rule.date and any(t.key == key for t in day.trips)
        for day in cache
    )


def should_notify(rule: WatchRule, trip: Trip, cache: Iterable[NotifiedDay]) -> bool:
    # Raises ParseError for a garbled tripDatetime instead of treating it as out of window.
    departs = TimeOfDay.parse(trip.trip_datetime)
    return rule.window.contains(departs) and not is_notified(cache, rule, trip)


def filter_trips(rule: WatchRule, trips: Iterable[Trip], cache: Sequence[NotifiedDay]) -> list[Trip]:
    return [trip for trip in trips if should_notify(rule, trip, cache)]
