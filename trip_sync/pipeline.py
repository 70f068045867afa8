"""Orchestrates one sync: fetch → extract → normalize → merge → group → reconcile → commit."""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional

from trip_sync.assemble.archive import build_change_set
from trip_sync.assemble.grouping import group_segments, random_suffix
from trip_sync.assemble.merge import merge_segments
from trip_sync.collaborators import (
    CommitError,
    MailboxAuthError,
    MailSource,
    SegmentExtractor,
    StoreError,
    TripRepository,
)
from trip_sync.config import EXTRACTION_CHUNK_SIZE, SyncSettings
from trip_sync.extract.chunked import process_in_chunks
from trip_sync.models import (
    EmailMessage,
    EmailStatus,
    ExtractionOutcome,
    Segment,
    SyncResult,
    SyncState,
    SyncStatus,
    Trip,
)
from trip_sync.normalize.segments import InvalidSegmentError, new_segment_id, normalize_segment

logger = logging.getLogger(__name__)

AUTH_FAILURE_MESSAGE = (
    "Mailbox connection failed. The mailbox credentials seem to be invalid or expired. "
    "Please re-authenticate and sync again."
)


class RunLog:
    """Timestamped lines for the caller, mirrored to the module logger."""

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self.lines: List[str] = []
        self._clock = clock

    def __call__(self, message: str):
        self.lines.append(f"[{self._clock():%H:%M:%S}] {message}")
        logger.info(message)


class SyncRun:
    """A single pass of the sync state machine for one user.

    Every call to ``execute`` is independent, so a run can be started again
    right after one finished or failed.
    """

    def __init__(
        self,
        user: str,
        source: MailSource,
        extractor: SegmentExtractor,
        store: TripRepository,
        settings: Optional[SyncSettings] = None,
        now: Optional[datetime] = None,
        chunk_size: int = EXTRACTION_CHUNK_SIZE,
        commit: bool = True,
        id_factory: Callable[[], str] = new_segment_id,
        suffix_factory: Callable[[], str] = random_suffix,
    ):
        self.user = user
        self.source = source
        self.extractor = extractor
        self.store = store
        self.settings = settings
        self.now = now
        self.chunk_size = chunk_size
        self.commit = commit
        self.id_factory = id_factory
        self.suffix_factory = suffix_factory
        self.state = SyncState.IDLE
        self.log = RunLog()

    def _enter(self, state: SyncState):
        self.state = state
        logger.debug("sync %s: %s", self.user, state.value)

    def _fail(self, message: str) -> SyncResult:
        self._enter(SyncState.FAILED)
        return SyncResult(
            status=SyncStatus.ERROR, trips=[], message=message, log=self.log.lines, state=self.state,
        )

    # --- stages ---

    async def _fetch_unseen(self) -> List[EmailMessage]:
        self._enter(SyncState.FETCHING)
        self.log("Starting inbox scan for new travel emails...")
        messages = await self.source.fetch_messages()
        self.log(f"Found {len(messages)} potential email(s) in the inbox.")
        processed = self.store.processed_email_ids(self.user)
        unseen = [m for m in messages if m.id not in processed]
        self.log(f"Identified {len(unseen)} new, un-processed email(s) for this user.")
        return unseen

    async def _extract_one(self, message: EmailMessage) -> ExtractionOutcome:
        if not message.body.strip():
            return ExtractionOutcome(email_id=message.id, status=EmailStatus.SKIPPED)
        records = await self.extractor.extract(message)
        if records:
            self.log(f"  - Found {len(records)} segment(s) in email {message.id[:10]}...")
        return ExtractionOutcome(email_id=message.id, status=EmailStatus.PROCESSED, records=tuple(records))

    async def _extract(self, unseen: List[EmailMessage]) -> List[ExtractionOutcome]:
        self._enter(SyncState.EXTRACTING)
        if not unseen:
            return []
        chunked = await process_in_chunks(unseen, self._extract_one, self.chunk_size, self.log)
        outcomes = {o.email_id: o for o in chunked.results}
        for failure in chunked.failures:
            outcomes[failure.item.id] = ExtractionOutcome(
                email_id=failure.item.id, status=EmailStatus.ERROR, error=failure.message,
            )
        if chunked.failures:
            self.log(f"{len(chunked.failures)} email(s) failed extraction and were skipped.")
        return [outcomes[m.id] for m in unseen if m.id in outcomes]

    def _normalize(self, outcomes: List[ExtractionOutcome]) -> List[Segment]:
        self._enter(SyncState.NORMALIZING)
        segments = []
        for outcome in outcomes:
            for raw in outcome.records:
                try:
                    seg = normalize_segment(raw, outcome.email_id, self.id_factory)
                except InvalidSegmentError as e:
                    self.log(f"  - Skipped a record from email {outcome.email_id[:10]}: {e}")
                    continue
                if seg.has_inverted_times:
                    self.log(f"  - Segment {seg.id} ends before it starts; keeping it as extracted.")
                segments.append(seg)
        if outcomes:
            self.log(f"Found {len(segments)} new segments." if segments
                     else "No new travel segments found in any scanned emails.")
        return segments

    def _merge(self, prior_trips: List[Trip], new_segments: List[Segment]) -> List[Segment]:
        self._enter(SyncState.MERGING)
        # Stored segments go first so their identities win merges
        pool = [
            replace(seg, trip_id=trip.id)
            for trip in prior_trips
            for seg in trip.segments
        ]
        pool.extend(new_segments)
        merged = merge_segments(pool, self.log)
        self.log(f"Consolidating {len(pool)} segment(s) ({len(new_segments)} new) into {len(merged)} unique.")
        return merged

    def _group(self, segments: List[Segment], prior_trips: List[Trip], settings: SyncSettings, now: datetime) -> List[Trip]:
        self._enter(SyncState.GROUPING)
        trips = group_segments(
            segments,
            settings,
            now,
            prior_trips=prior_trips,
            known_ids=self.store.known_trip_ids(self.user),
            suffix_factory=self.suffix_factory,
            log=self.log,
        )
        self.log(f"Grouping complete. Resulted in {len(trips)} trip(s).")
        return trips

    # --- driver ---

    async def execute(self) -> SyncResult:
        now = self.now or datetime.now()
        try:
            settings = self.settings or SyncSettings.from_mapping(self.store.load_settings(self.user))
            try:
                unseen = await self._fetch_unseen()
            except MailboxAuthError as e:
                self.log(f"FATAL: Mailbox authentication failed. {e}")
                return self._fail(AUTH_FAILURE_MESSAGE)

            outcomes = await self._extract(unseen)
            new_segments = self._normalize(outcomes)

            prior_trips = self.store.load_trips(self.user)
            merged = self._merge(prior_trips, new_segments)
            trips = self._group(merged, prior_trips, settings, now)

            self._enter(SyncState.RECONCILING)
            change_set = build_change_set(prior_trips, trips, archived_at=now, processed=outcomes, committed_at=now)
            if change_set.archive_ids:
                self.log(f"Archiving {len(change_set.archive_ids)} trip(s) that were merged or are no longer valid.")

            self._enter(SyncState.COMMITTING)
            if self.commit:
                try:
                    self.store.commit(self.user, change_set)
                except CommitError as e:
                    self.log(f"FATAL: {e}")
                    return self._fail(f"Could not save trips: {e}")
                self.log("Database synchronized with trip data.")
            else:
                self.log("Dry run: nothing was written.")
        except StoreError as e:
            self.log(f"FATAL: {e}")
            return self._fail(f"Could not read trips: {e}")
        except Exception as e:
            logger.exception("Error during sync for %s", self.user)
            self.log(f"FATAL ERROR: {e}")
            return self._fail(str(e) or type(e).__name__)

        self._enter(SyncState.DONE)
        message = _summarize(trips, new_segments, unseen)
        self.log("Sync complete.")
        return SyncResult(
            status=SyncStatus.SUCCESS,
            trips=trips,
            message=message,
            log=self.log.lines,
            state=self.state,
            change_set=change_set,
        )


def _summarize(trips: List[Trip], new_segments: List[Segment], unseen: List[EmailMessage]) -> str:
    if not unseen:
        return "No new emails found. Your trips are up to date."
    if new_segments:
        return (f"Sync complete. Found {len(new_segments)} new segments, "
                f"resulting in {len(trips)} trip(s).")
    return f"Sync complete. Processed {len(trips)} total trip(s)."


async def sync(
    user: str,
    source: MailSource,
    extractor: SegmentExtractor,
    store: TripRepository,
    settings: Optional[SyncSettings] = None,
    now: Optional[datetime] = None,
    chunk_size: int = EXTRACTION_CHUNK_SIZE,
    commit: bool = True,
) -> SyncResult:
    """Run one sync for ``user`` and report the outcome. Never raises."""
    run = SyncRun(
        user, source, extractor, store,
        settings=settings, now=now, chunk_size=chunk_size, commit=commit,
    )
    return await run.execute()
