"""Turn raw extracted records into canonical Segments."""

import secrets
from typing import Any, Callable, Dict

from trip_sync.models import Confirmation, Segment, SegmentDetails, SegmentKind
from trip_sync.normalize.date_parser import parse_timestamp

# Loose spellings the extractor has been seen to produce
_KIND_ALIASES = {
    "flight": SegmentKind.FLIGHT,
    "air": SegmentKind.FLIGHT,
    "hotel": SegmentKind.HOTEL,
    "lodging": SegmentKind.HOTEL,
    "train": SegmentKind.TRAIN,
    "rail": SegmentKind.TRAIN,
    "car": SegmentKind.CAR,
    "car_rental": SegmentKind.CAR,
}


class InvalidSegmentError(ValueError):
    """A raw record cannot become a Segment."""


def new_segment_id() -> str:
    return secrets.token_hex(8)


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def parse_kind(raw: Any) -> SegmentKind:
    key = _text(raw).lower().replace(" ", "_")
    if key in _KIND_ALIASES:
        return _KIND_ALIASES[key]
    raise InvalidSegmentError(f"unknown segment type: {raw!r}")


def normalize_segment(
    raw: Dict[str, Any],
    email_id: str = "",
    id_factory: Callable[[], str] = new_segment_id,
) -> Segment:
    """Convert one extracted record into a Segment.

    The record has the extractor's shape: ``type``, ``description``,
    ``startDate``, ``endDate``, ``location``, ``status``, ``travelerName`` and
    a ``details`` object holding ``confirmationNumber``, ``provider``,
    ``bookingAgent``, ``from``, ``to``, ``flightNumber``, ``airlineCode``,
    ``phoneNumber`` and ``boardingPassDataUri``.

    A record that already carries an ``id`` keeps it. A missing end time
    defaults to the start time. An end before the start is kept as-is;
    callers can spot it through ``Segment.has_inverted_times``.
    """
    if not isinstance(raw, dict):
        raise InvalidSegmentError(f"expected a record object, got {type(raw).__name__}")
    kind = parse_kind(raw.get("type"))

    start = parse_timestamp(raw.get("startDate"))
    if start is None:
        raise InvalidSegmentError(f"unparseable start time: {raw.get('startDate')!r}")
    end = parse_timestamp(raw.get("endDate")) or start

    details_raw = raw.get("details") or {}
    if not isinstance(details_raw, dict):
        raise InvalidSegmentError(f"expected a details object, got {type(details_raw).__name__}")
    details = SegmentDetails(
        provider=_text(details_raw.get("provider")),
        booking_agent=_text(details_raw.get("bookingAgent")),
        from_location=_text(details_raw.get("from")),
        to_location=_text(details_raw.get("to")),
        flight_number=_text(details_raw.get("flightNumber")),
        airline_code=_text(details_raw.get("airlineCode")).upper(),
        phone_number=_text(details_raw.get("phoneNumber")),
    )
    confirmation = Confirmation(
        number=_text(details_raw.get("confirmationNumber")),
        traveler_name=_text(raw.get("travelerName")),
        boarding_pass_ref=_text(details_raw.get("boardingPassDataUri")),
    )

    return Segment(
        id=_text(raw.get("id")) or id_factory(),
        kind=kind,
        start_time=start,
        end_time=end,
        description=_text(raw.get("description")),
        location=_text(raw.get("location")),
        status=_text(raw.get("status")) if kind == SegmentKind.FLIGHT else "",
        confirmations=(confirmation,),
        details=details,
        source_email_id=email_id,
    )
