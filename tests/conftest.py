from dataclasses import replace
from datetime import datetime

import pytest

from trip_sync.config import SyncSettings
from trip_sync.models import Confirmation, Segment, SegmentDetails, SegmentKind, Trip


def _ts(value):
    return value if isinstance(value, datetime) else datetime.fromisoformat(value)


@pytest.fixture
def make_segment():
    def factory(
        id="s1",
        kind=SegmentKind.HOTEL,
        start="2024-06-01T15:00",
        end=None,
        location="",
        provider="",
        from_location="",
        to_location="",
        confirmation="",
        traveler="",
        description="",
        flight_number="",
        trip_id=None,
        archived=False,
    ):
        start_dt = _ts(start)
        return Segment(
            id=id,
            kind=kind,
            start_time=start_dt,
            end_time=_ts(end) if end else start_dt,
            description=description,
            location=location,
            confirmations=(Confirmation(number=confirmation, traveler_name=traveler),),
            details=SegmentDetails(
                provider=provider,
                from_location=from_location,
                to_location=to_location,
                flight_number=flight_number,
            ),
            source_email_id=f"email-{id}",
            trip_id=trip_id,
            archived=archived,
        )
    return factory


@pytest.fixture
def make_trip():
    def factory(id, segments, **fields):
        segments = tuple(replace(s, trip_id=id) for s in segments)
        active = [s for s in segments if not s.archived]
        fields.setdefault("name", "Trip")
        if active:
            fields.setdefault("start_date", min(s.start_time for s in active).date())
            fields.setdefault("end_date", max(s.end_time for s in active).date())
        return Trip(id=id, segments=segments, **fields)
    return factory


@pytest.fixture
def settings():
    return SyncSettings()


@pytest.fixture
def now():
    return datetime(2024, 5, 1, 9, 0)


@pytest.fixture
def paris_segments(make_segment):
    """New York → Paris round trip with every night covered."""
    return [
        make_segment(
            "f1", SegmentKind.FLIGHT, "2024-05-31T18:00", "2024-06-01T08:00",
            location="Paris", provider="Air France",
            from_location="New York (JFK)", to_location="Paris (CDG)",
            confirmation="AF1", traveler="Alice Smith", flight_number="AF009",
        ),
        make_segment(
            "h1", SegmentKind.HOTEL, "2024-06-01T15:00", "2024-06-05T11:00",
            location="Paris, France", provider="Hotel Lutetia",
            confirmation="HL1", traveler="Alice Smith",
        ),
        make_segment(
            "f2", SegmentKind.FLIGHT, "2024-06-05T14:00", "2024-06-05T16:30",
            location="New York", provider="Air France",
            from_location="Paris (CDG)", to_location="New York (JFK)",
            confirmation="AF2", traveler="Bob Jones", flight_number="AF010",
        ),
    ]
