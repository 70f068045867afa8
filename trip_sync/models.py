"""Data models for the trip consolidation pipeline."""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, Tuple


class SegmentKind(str, Enum):
    FLIGHT = "FLIGHT"
    HOTEL = "HOTEL"
    TRAIN = "TRAIN"
    CAR = "CAR"


# Kinds whose identity is a from/to pair rather than a single location
TRANSPORT_KINDS = frozenset({SegmentKind.FLIGHT, SegmentKind.TRAIN})


class SyncStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class SyncState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching_unseen_input"
    EXTRACTING = "extracting"
    NORMALIZING = "normalizing"
    MERGING = "merging"
    GROUPING = "grouping"
    RECONCILING = "reconciling"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


class EmailStatus(str, Enum):
    PROCESSED = "processed_success"
    SKIPPED = "skipped_no_content"
    ERROR = "processed_error"


@dataclass(frozen=True)
class Confirmation:
    number: str = ""
    traveler_name: str = ""
    boarding_pass_ref: str = ""


@dataclass(frozen=True)
class SegmentDetails:
    provider: str = ""
    booking_agent: str = ""
    from_location: str = ""  # "from" in records
    to_location: str = ""  # "to" in records
    flight_number: str = ""
    airline_code: str = ""
    phone_number: str = ""


DETAIL_FIELDS = (
    "provider",
    "booking_agent",
    "from_location",
    "to_location",
    "flight_number",
    "airline_code",
    "phone_number",
)


@dataclass(frozen=True)
class Segment:
    id: str
    kind: SegmentKind
    start_time: datetime
    end_time: datetime
    description: str = ""
    location: str = ""
    status: str = ""  # real-time flight status
    confirmations: Tuple[Confirmation, ...] = ()
    details: SegmentDetails = field(default_factory=SegmentDetails)
    source_email_id: str = ""
    trip_id: Optional[str] = None  # weak back-reference, the Trip owns the segment
    archived: bool = False

    @property
    def is_transport(self) -> bool:
        return self.kind in TRANSPORT_KINDS

    @property
    def has_inverted_times(self) -> bool:
        return self.start_time > self.end_time

    @property
    def traveler_names(self) -> Tuple[str, ...]:
        return tuple(c.traveler_name for c in self.confirmations if c.traveler_name)


@dataclass(frozen=True)
class Alert:
    id: str
    title: str
    description: str = ""


@dataclass(frozen=True)
class Trip:
    id: str
    name: str
    segments: Tuple[Segment, ...] = ()
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    summary: str = ""
    icon: str = ""
    primary_destination: str = ""
    travelers: Tuple[str, ...] = ()
    planning_progress: int = 0
    alerts: Tuple[Alert, ...] = ()
    dismissed_alert_ids: Tuple[str, ...] = ()
    archived: bool = False
    archived_at: Optional[datetime] = None

    @property
    def active_segments(self) -> Tuple[Segment, ...]:
        return tuple(s for s in self.segments if not s.archived)

    @property
    def open_alerts(self) -> Tuple[Alert, ...]:
        """Alerts the user has not dismissed."""
        dismissed = set(self.dismissed_alert_ids)
        return tuple(a for a in self.alerts if a.id not in dismissed)


@dataclass(frozen=True)
class EmailMessage:
    id: str
    body: str = ""
    subject: str = ""
    sender: str = ""
    date: str = ""


@dataclass(frozen=True)
class ExtractionOutcome:
    """Result of running extraction over one email."""
    email_id: str
    status: EmailStatus
    records: Tuple[dict, ...] = ()
    error: str = ""


@dataclass(frozen=True)
class ChangeSet:
    """Everything a sync run writes, as one batch."""
    upserts: Tuple[Trip, ...] = ()
    archive_ids: Tuple[str, ...] = ()
    archived_at: Optional[datetime] = None
    processed: Tuple[ExtractionOutcome, ...] = ()
    committed_at: Optional[datetime] = None


@dataclass
class SyncResult:
    status: SyncStatus
    trips: list[Trip] = field(default_factory=list)
    message: str = ""
    log: list[str] = field(default_factory=list)
    state: SyncState = SyncState.IDLE
    change_set: Optional[ChangeSet] = None

    @property
    def ok(self) -> bool:
        return self.status == SyncStatus.SUCCESS
