from __future__ import annotations

import datetime as dt
import logging

import httpx

from ferrywatch.domain import NetworkError, UpstreamError
from ferrywatch.schemas import ScheduleResponse, Trip

logger = logging.getLogger(__name__)


def build_trip_search_form(
    *,
    company_code: str,
    origin: str,
    destination: str,
    depart_date: dt.date,
    total_pax: int,
) -> dict[str, str]:
    return {
        "comCode": company_code,
        "firstTripUnix": "0",
        "departDate": depart_date.isoformat(),
        "originCode": origin,
        "destinationCode": destination,
        "totalPax": str(total_pax),
    }


async def fetch_schedule(
    client: httpx.AsyncClient,
    *,
    url: str,
    company_code: str,
    origin: str,
    destination: str,
    depart_date: dt.date,
    total_pax: int,
) -> list[Trip]:
    form = build_trip_search_form(
        company_code=company_code,
        origin=origin,
        destination=destination,
        depart_date=depart_date,
        total_pax=total_pax,
    )
    route = f"{origin}-{destination} {depart_date.isoformat()}"

    try:
        r = await client.post(url, data=form)
    except httpx.TransportError as e:
        raise NetworkError(f"Trip search failed for {route} ({type(e).__name__}: {e})") from e

    if r.is_error:
        raise UpstreamError(f"Trip search for {route} returned HTTP {r.status_code}")

    try:
        data = ScheduleResponse.model_validate(r.json())
    except ValueError as e:
        # Covers both a non-JSON body and a body without departTrip.
        raise UpstreamError(f"Trip search for {route} returned an unexpected body") from e

    if data.status is not None and data.status != "success":
        raise UpstreamError(f"Trip search for {route} failed: {data.error_message or data.status}")

    logger.info("Fetched %d trip(s) for %s", len(data.depart_trip), route)
    return data.depart_trip
