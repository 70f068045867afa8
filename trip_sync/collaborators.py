"""Boundaries to the mailbox, extraction service and trip store."""

from typing import Any, Dict, List, Mapping, Protocol, Set

from trip_sync.models import ChangeSet, EmailMessage, Trip


class SyncError(Exception):
    """Base class for sync failures."""


class MailboxAuthError(SyncError):
    """Mailbox credentials were rejected. Fatal for the run."""


class ExtractionError(SyncError):
    """Extraction failed for a single email. Recoverable."""


class StoreError(SyncError):
    """The trip store exists but cannot be read. Fatal for the run."""


class CommitError(SyncError):
    """The batch write of a change set failed. Fatal for the run."""


class MailSource(Protocol):
    async def fetch_messages(self) -> List[EmailMessage]:
        ...


class SegmentExtractor(Protocol):
    async def extract(self, message: EmailMessage) -> List[Dict[str, Any]]:
        ...


class TripRepository(Protocol):
    def load_trips(self, user: str) -> List[Trip]:
        """Non-archived trips for the user."""
        ...

    def known_trip_ids(self, user: str) -> Set[str]:
        """Every trip ID ever stored for the user, archived ones included."""
        ...

    def processed_email_ids(self, user: str) -> Set[str]:
        ...

    def load_settings(self, user: str) -> Mapping[str, Any]:
        ...

    def commit(self, user: str, change_set: ChangeSet) -> None:
        ...
