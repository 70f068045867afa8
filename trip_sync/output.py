"""Output formatters: trip listing, JSON, and dict conversion for storage."""

import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from trip_sync.models import (
    Alert,
    Confirmation,
    Segment,
    SegmentDetails,
    SegmentKind,
    Trip,
)
from trip_sync.normalize.date_parser import parse_timestamp

_KIND_ICONS = {
    SegmentKind.FLIGHT: "✈",
    SegmentKind.HOTEL: "🏨",
    SegmentKind.TRAIN: "🚆",
    SegmentKind.CAR: "🚗",
}


def _date_str(d) -> str:
    if d is None:
        return "?"
    if isinstance(d, (date, datetime)):
        return d.isoformat()
    return str(d)


def _parse_date(s: Optional[str]) -> Optional[date]:
    if not s:
        return None
    return date.fromisoformat(s)


# ---------------------------------------------------------------------------
# Dict conversion
# ---------------------------------------------------------------------------

def segment_to_dict(s: Segment) -> Dict[str, Any]:
    return {
        "id": s.id,
        "type": s.kind.value,
        "description": s.description,
        "start_time": s.start_time.isoformat(),
        "end_time": s.end_time.isoformat(),
        "location": s.location,
        "status": s.status,
        "confirmations": [
            {"number": c.number, "traveler_name": c.traveler_name, "boarding_pass_ref": c.boarding_pass_ref}
            for c in s.confirmations
        ],
        "details": {
            "provider": s.details.provider,
            "booking_agent": s.details.booking_agent,
            "from": s.details.from_location,
            "to": s.details.to_location,
            "flight_number": s.details.flight_number,
            "airline_code": s.details.airline_code,
            "phone_number": s.details.phone_number,
        },
        "source_email_id": s.source_email_id,
        "trip_id": s.trip_id,
        "archived": s.archived,
    }


def segment_from_dict(d: Dict[str, Any]) -> Segment:
    details = d.get("details") or {}
    start = parse_timestamp(d["start_time"])
    return Segment(
        id=d["id"],
        kind=SegmentKind(d["type"]),
        start_time=start,
        end_time=parse_timestamp(d.get("end_time")) or start,
        description=d.get("description", ""),
        location=d.get("location", ""),
        status=d.get("status", ""),
        confirmations=tuple(
            Confirmation(
                number=c.get("number", ""),
                traveler_name=c.get("traveler_name", ""),
                boarding_pass_ref=c.get("boarding_pass_ref", ""),
            )
            for c in d.get("confirmations") or []
        ),
        details=SegmentDetails(
            provider=details.get("provider", ""),
            booking_agent=details.get("booking_agent", ""),
            from_location=details.get("from", ""),
            to_location=details.get("to", ""),
            flight_number=details.get("flight_number", ""),
            airline_code=details.get("airline_code", ""),
            phone_number=details.get("phone_number", ""),
        ),
        source_email_id=d.get("source_email_id", ""),
        trip_id=d.get("trip_id"),
        archived=bool(d.get("archived", False)),
    )


def trip_to_dict(t: Trip) -> Dict[str, Any]:
    return {
        "id": t.id,
        "name": t.name,
        "summary": t.summary,
        "icon": t.icon,
        "primary_destination": t.primary_destination,
        "start_date": _date_str(t.start_date) if t.start_date else None,
        "end_date": _date_str(t.end_date) if t.end_date else None,
        "travelers": list(t.travelers),
        "planning_progress": t.planning_progress,
        "segments": [segment_to_dict(s) for s in t.segments],
        "alerts": [{"id": a.id, "title": a.title, "description": a.description} for a in t.alerts],
        "dismissed_alert_ids": list(t.dismissed_alert_ids),
        "archived": t.archived,
        "archived_at": t.archived_at.isoformat() if t.archived_at else None,
    }


def trip_from_dict(d: Dict[str, Any]) -> Trip:
    return Trip(
        id=d["id"],
        name=d.get("name", ""),
        segments=tuple(segment_from_dict(s) for s in d.get("segments") or []),
        start_date=_parse_date(d.get("start_date")),
        end_date=_parse_date(d.get("end_date")),
        summary=d.get("summary", ""),
        icon=d.get("icon", ""),
        primary_destination=d.get("primary_destination", ""),
        travelers=tuple(d.get("travelers") or ()),
        planning_progress=int(d.get("planning_progress", 0)),
        alerts=tuple(
            Alert(id=a["id"], title=a.get("title", ""), description=a.get("description", ""))
            for a in d.get("alerts") or []
        ),
        dismissed_alert_ids=tuple(d.get("dismissed_alert_ids") or ()),
        archived=bool(d.get("archived", False)),
        archived_at=parse_timestamp(d.get("archived_at")),
    )


# ---------------------------------------------------------------------------
# Human-readable listing
# ---------------------------------------------------------------------------

def format_trips(trips: Iterable[Trip]) -> str:
    """Produce a human-readable trip-by-trip listing."""
    lines = []
    lines.append("=" * 72)
    lines.append("  TRIPS")
    lines.append("=" * 72)

    trips = list(trips)
    if not trips:
        lines.append("\n  No trips yet.")
        return "\n".join(lines) + "\n"

    for trip in trips:
        flag = "  [archived]" if trip.archived else ""
        lines.append(
            f"\n  {_date_str(trip.start_date)}  →  {_date_str(trip.end_date)}  |  "
            f"{trip.name}  [{trip.planning_progress}%]{flag}"
        )
        lines.append(f"    id: {trip.id}")
        if trip.travelers:
            lines.append(f"    Travelers: {', '.join(trip.travelers)}")
        if trip.summary:
            lines.append(f"    {trip.summary}")

        for seg in trip.segments:
            icon = _KIND_ICONS.get(seg.kind, "•")
            label = seg.description or seg.location or seg.kind.value.title()
            archived = " (archived)" if seg.archived else ""
            lines.append(f"    {icon} {seg.start_time:%Y-%m-%d %H:%M}  {label}{archived}")
            refs = [c.number for c in seg.confirmations if c.number]
            if refs:
                lines.append(f"       Ref: {', '.join(refs)}")

        for alert in trip.open_alerts:
            lines.append(f"    ⚠ {alert.title}: {alert.description}")

    return "\n".join(lines) + "\n"


def to_json(trips: Iterable[Trip], path: Path):
    data = {
        "generated": datetime.now().isoformat(timespec="seconds"),
        "trips": [trip_to_dict(t) for t in trips],
    }
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")


# ---------------------------------------------------------------------------
# Point-of-interest request payload
# ---------------------------------------------------------------------------

_TRIP_TYPES = ("sightseeing", "adventure", "relaxation", "business")


def recommendation_input(
    trip: Trip,
    traveler_profile: str,
    interests: Iterable[str] = (),
    trip_type: str = "sightseeing",
) -> Dict[str, str]:
    """Request body for the point-of-interest recommender."""
    if trip_type not in _TRIP_TYPES:
        raise ValueError(f"trip_type must be one of {', '.join(_TRIP_TYPES)}")
    destination = trip.primary_destination
    if not destination:
        destination = next((s.location for s in trip.active_segments if s.location), "")
    return {
        "destination": destination,
        "travelerProfile": traveler_profile,
        "tripType": trip_type,
        "interests": ", ".join(i.strip() for i in interests if i.strip()),
    }


def trips_to_dicts(trips: Iterable[Trip]) -> List[Dict[str, Any]]:
    return [trip_to_dict(t) for t in trips]
