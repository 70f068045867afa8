"""Detect lodging gaps and upcoming check-ins within a trip."""

from datetime import datetime, timedelta
from typing import Iterable, List

from trip_sync.config import SyncSettings
from trip_sync.models import Alert, Segment, SegmentKind


def lodging_gap_id(before: Segment, after: Segment) -> str:
    return f"gap-{before.id}-{after.id}"


def check_in_id(flight: Segment) -> str:
    return f"checkin-{flight.id}"


def _label(seg: Segment) -> str:
    return seg.description or seg.location or seg.kind.value.title()


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


def detect_lodging_gaps(segments: Iterable[Segment], gap_hours: float) -> List[Alert]:
    """Alert on stretches with nothing booked that last longer than gap_hours.

    The gap is measured from the latest end time seen so far, so a hotel that
    spans a day trip still covers the nights around it. The alert is keyed by
    the segment holding that end time and the segment after the gap.
    """
    ordered = sorted((s for s in segments if not s.archived), key=lambda s: (s.start_time, s.end_time, s.id))
    alerts: List[Alert] = []
    if not ordered:
        return alerts

    covering = ordered[0]
    for nxt in ordered[1:]:
        gap = _hours(nxt.start_time - covering.end_time)
        if gap > gap_hours:
            alerts.append(Alert(
                id=lodging_gap_id(covering, nxt),
                title="Lodging gap",
                description=(
                    f"Nothing is booked for {gap:.0f} hours between "
                    f"{_label(covering)} and {_label(nxt)}."
                ),
            ))
        if nxt.end_time > covering.end_time:
            covering = nxt
    return alerts


def detect_check_ins(segments: Iterable[Segment], lead_hours: float, now: datetime) -> List[Alert]:
    """Remind about future flights departing within lead_hours. 0 disables."""
    if lead_hours <= 0:
        return []
    horizon = now + timedelta(hours=lead_hours)
    alerts = []
    for seg in sorted(segments, key=lambda s: (s.start_time, s.id)):
        if seg.archived or seg.kind != SegmentKind.FLIGHT:
            continue
        if now < seg.start_time <= horizon:
            flight = " ".join(p for p in (seg.details.airline_code, seg.details.flight_number) if p)
            alerts.append(Alert(
                id=check_in_id(seg),
                title="Check-in reminder",
                description=(
                    f"Check in for {flight or _label(seg)}, departing "
                    f"{seg.start_time:%Y-%m-%d %H:%M} ({_hours(seg.start_time - now):.0f}h from now)."
                ),
            ))
    return alerts


def generate_alerts(segments: Iterable[Segment], settings: SyncSettings, now: datetime) -> List[Alert]:
    """All alerts for one trip's segments. Archived segments are ignored."""
    segments = list(segments)
    return (
        detect_lodging_gaps(segments, settings.lodging_gap_hours)
        + detect_check_ins(segments, settings.check_in_lead_time_hours, now)
    )
