from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Sequence

from ferrywatch.config import MailConfig
from ferrywatch.domain import TripGroup
from ferrywatch.mail_notifier import send_email
from ferrywatch.schemas import Trip

logger = logging.getLogger(__name__)

DIGEST_SUBJECT = "Update feri"
ERROR_SUBJECT = "Update feri: error"


@dataclass(frozen=True)
class Digest:
    subject: str
    text: str
    html: str


def _format_trip(trip: Trip) -> str:
    return f"{trip.trip_datetime} (name: {trip.ferry_name}, seat: {trip.seat_status})"


def build_digest(groups: Sequence[TripGroup]) -> Digest | None:
    if not groups:
        return None

    text_parts: list[str] = []
    html_parts: list[str] = []
    for group in groups:
        date = group.rule.date.isoformat()
        route = group.rule.route

        text_parts.append(f"Date: {date}\nRoute: {route}")
        text_parts.extend(f"  • {_format_trip(t)}" for t in group.trips)
        text_parts.append("")

        html_parts.append(f"<div>Date: <b>{html.escape(date)}</b></div>")
        html_parts.append(f"<div>Route: <b>{html.escape(route)}</b></div>")
        html_parts.append("<div><ul>")
        html_parts.extend(
            f"<li><b>{html.escape(t.trip_datetime)}</b> "
            f"(name: {html.escape(t.ferry_name)}, seat: {html.escape(t.seat_status)})</li>"
            for t in group.trips
        )
        html_parts.append("</ul></div><br />")

    return Digest(subject=DIGEST_SUBJECT, text="\n".join(text_parts), html="".join(html_parts))


def send_trip_digest(mail: MailConfig, groups: Sequence[TripGroup]) -> bool:
    digest = build_digest(groups)
    if digest is None:
        logger.info("No new trips, nothing to send")
        return False

    send_email(mail=mail, subject=digest.subject, text=digest.text, html=digest.html)
    logger.info(
        "Digest sent to %s (%d trip(s) in %d group(s))",
        ", ".join(mail.recipients),
        sum(len(g.trips) for g in groups),
        len(groups),
    )
    return True


def send_error_alert(mail: MailConfig, detail: str) -> None:
    send_email(mail=mail, subject=ERROR_SUBJECT, text=detail)
    logger.info("Error alert sent to %s", ", ".join(mail.recipients))
