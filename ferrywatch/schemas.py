# Schemas for the booking provider's trip-search response and the YAML state files.
from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field


class _Record(BaseModel):
    # Wire and file names are camelCase; YAML may hand us trip ids as ints.
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


class Trip(_Record):
    """
    One departure as returned in ``departTrip``.

    Extra provider fields (routeID, disable, ...) are ignored.
    """
    trip_id: str = Field(alias="tripID")
    trip_datetime: str = Field(alias="tripDatetime")  # "04:00 pm"
    ferry_name: str = Field(default="", alias="ferryName")
    seat_status: str = Field(default="", alias="seatStatus")  # "58/338"
    left: int = 0
    unix: int = 0
    date: str = ""


class ScheduleResponse(_Record):
    depart_trip: list[Trip] = Field(alias="departTrip")
    status: str | None = None
    error_no: int | None = Field(default=None, alias="errorNo")
    error_message: str | None = Field(default=None, alias="errorMessage")


class NotifiedTrip(_Record):
    trip_id: str = Field(alias="tripID")
    trip_datetime: str = Field(alias="tripDatetime")
    # Older cache files only carried tripID and tripDatetime.
    ferry_name: str = Field(default="", alias="ferryName")

    @property
    def key(self) -> tuple[str, str]:
        return (self.trip_id, self.ferry_name)


class NotifiedDay(_Record):
    date: dt.date
    trips: list[NotifiedTrip] = Field(default_factory=list)


class ErrorState(_Record):
    cycle: int = Field(ge=1)
    exception: str = ""
