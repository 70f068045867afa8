"""Work out which stored trips a sync run leaves behind."""

from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from trip_sync.models import ChangeSet, ExtractionOutcome, Trip


def trips_to_archive(previous_ids: Iterable[str], new_ids: Iterable[str]) -> List[str]:
    """IDs present before and absent now, in their previous order.

    These trips were absorbed into others or lost all their segments. They
    are flagged, never deleted, so the user can restore them.
    """
    current = set(new_ids)
    result = []
    for trip_id in previous_ids:
        if trip_id not in current and trip_id not in result:
            result.append(trip_id)
    return result


def build_change_set(
    prior_trips: Sequence[Trip],
    new_trips: Sequence[Trip],
    archived_at: datetime,
    processed: Optional[Iterable[ExtractionOutcome]] = None,
    committed_at: Optional[datetime] = None,
) -> ChangeSet:
    """Upsert every new trip and flag the orphaned ones, as one batch.

    ``committed_at`` stamps the processed-email records and defaults to
    ``archived_at``.
    """
    archive_ids = trips_to_archive((t.id for t in prior_trips), (t.id for t in new_trips))
    return ChangeSet(
        upserts=tuple(new_trips),
        archive_ids=tuple(archive_ids),
        archived_at=archived_at if archive_ids else None,
        processed=tuple(processed or ()),
        committed_at=committed_at or archived_at,
    )
