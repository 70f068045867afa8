"""Cluster merged segments into trips whose IDs survive re-syncs."""

import re
import secrets
import string
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from trip_sync.assemble.alerts import generate_alerts
from trip_sync.config import SyncSettings
from trip_sync.models import Segment, SegmentKind, Trip
from trip_sync.normalize.places import cities, place_keys, resolve_city

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_MAX_ID_ATTEMPTS = 100


def random_suffix() -> str:
    return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(6))


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:40].strip("-") or "trip"


def new_trip_id(name: str, taken: Set[str], suffix_factory: Callable[[], str] = random_suffix) -> str:
    """URL-safe slug of the name plus a random suffix, unused in ``taken``."""
    base = slugify(name)
    for _ in range(_MAX_ID_ATTEMPTS):
        candidate = f"{base}-{suffix_factory()}"
        if candidate not in taken:
            return candidate
    raise RuntimeError(f"could not find a free trip id for {name!r}")


def _chrono(seg: Segment) -> Tuple:
    return (seg.start_time, seg.end_time, seg.id)


def _hours(delta: timedelta) -> float:
    return delta.total_seconds() / 3600


# ---------------------------------------------------------------------------
# Step 1: Walk active segments in time order, cutting at logical gaps
# ---------------------------------------------------------------------------

def _departure_keys(seg: Segment) -> FrozenSet[str]:
    if seg.is_transport:
        return place_keys(seg.details.from_location)
    return place_keys(seg.location)


def _arrival_keys(seg: Segment) -> FrozenSet[str]:
    if seg.is_transport:
        return place_keys(seg.details.to_location or seg.location)
    return place_keys(seg.location)


@dataclass
class _Cluster:
    segments: List[Segment]
    latest_end: datetime
    origin: FrozenSet[str]  # where the journey left from, if it began with transport
    destinations: Set[str] = field(default_factory=set)

    @classmethod
    def open(cls, seg: Segment) -> "_Cluster":
        origin = cities(_departure_keys(seg)) if seg.is_transport else frozenset()
        cluster = cls(segments=[], latest_end=seg.end_time, origin=origin)
        cluster.add(seg)
        return cluster

    def add(self, seg: Segment):
        self.segments.append(seg)
        self.latest_end = max(self.latest_end, seg.end_time)
        arrival = _arrival_keys(seg)
        # Coming back to the origin is not a new destination
        if not (arrival & self.origin):
            self.destinations |= arrival

    def is_related(self, seg: Segment) -> bool:
        departure = _departure_keys(seg)
        if not departure or not self.destinations:
            return True
        return bool(departure & self.destinations)


def _split_reason(cluster: _Cluster, seg: Segment, settings: SyncSettings) -> Optional[str]:
    gap = _hours(seg.start_time - cluster.latest_end)
    if gap > settings.logical_gap_hours:
        return f"{gap:.0f}h without bookings"
    if not cluster.is_related(seg):
        return "no shared city or region"
    return None


def cluster_segments(
    segments: Iterable[Segment],
    settings: SyncSettings,
    log: Optional[Callable[[str], None]] = None,
) -> List[List[Segment]]:
    """Split active segments into chronological clusters. Archived ones are skipped."""
    clusters: List[_Cluster] = []
    for seg in sorted((s for s in segments if not s.archived), key=_chrono):
        if clusters:
            reason = _split_reason(clusters[-1], seg, settings)
            if reason is None:
                clusters[-1].add(seg)
                continue
            if log:
                log(f"Starting a new trip at {seg.start_time:%Y-%m-%d} ({reason}).")
        clusters.append(_Cluster.open(seg))
    return [c.segments for c in clusters]


# ---------------------------------------------------------------------------
# Step 2: Derived trip fields
# ---------------------------------------------------------------------------

def rank_destinations(active: Sequence[Segment]) -> List[str]:
    """Cities visited, most time spent first. The journey's origin is left out."""
    ordered = sorted(active, key=_chrono)
    first_transport = next((s for s in ordered if s.is_transport), None)
    origin = resolve_city(first_transport.details.from_location) if first_transport else ""

    weights: Dict[str, float] = {}
    for seg in ordered:
        if seg.is_transport:
            city = resolve_city(seg.details.to_location or seg.location)
            weight = 1.0
        else:
            city = resolve_city(seg.location)
            weight = 1.0
            if seg.kind == SegmentKind.HOTEL:
                weight += max(_hours(seg.end_time - seg.start_time), 0) / 24
        if city and city != origin:
            weights[city] = weights.get(city, 0.0) + weight
    return sorted(weights, key=lambda c: -weights[c])


def trip_name(destinations: Sequence[str]) -> str:
    if not destinations:
        return "Trip"
    if len(destinations) == 1:
        return f"{destinations[0]} Trip"
    if len(destinations) == 2:
        return f"{destinations[0]} & {destinations[1]} Trip"
    return f"{destinations[0]}, {destinations[1]} & more Trip"


def collect_travelers(active: Iterable[Segment]) -> Tuple[str, ...]:
    seen: Set[str] = set()
    names = []
    for seg in active:
        for name in seg.traveler_names:
            key = " ".join(name.split()).casefold()
            if key not in seen:
                seen.add(key)
                names.append(name)
    return tuple(names)


def _nights_covered(active: Sequence[Segment]) -> float:
    """Share of nights in the trip's date range spent in a hotel or in transit."""
    start = min(s.start_time for s in active).date()
    end = max(s.end_time for s in active).date()
    nights = [start + timedelta(days=i) for i in range((end - start).days)]
    if not nights:
        return 1.0

    covered: Set[date] = set()
    for seg in active:
        if seg.kind != SegmentKind.HOTEL and not seg.is_transport:
            continue
        d = seg.start_time.date()
        while d < seg.end_time.date():
            covered.add(d)
            d += timedelta(days=1)
    return sum(1 for n in nights if n in covered) / len(nights)


def planning_progress(active: Sequence[Segment], has_lodging_gap: bool = False) -> int:
    """0-100: 30 for getting there, 30 for getting back, 40 for lodging coverage.

    100 needs both directions of travel and every night covered; any lodging
    gap caps the score below 100.
    """
    if not active:
        return 0
    score = 0
    transports = [s for s in sorted(active, key=_chrono) if s.is_transport]
    if transports:
        score += 30
        origin = cities(place_keys(transports[0].details.from_location))
        if origin and any(cities(_arrival_keys(t)) & origin for t in transports[1:]):
            score += 30
    score += int(40 * _nights_covered(active))
    if has_lodging_gap:
        score = min(score, 99)
    return max(0, min(score, 100))


def _summary(active: Sequence[Segment], destinations: Sequence[str]) -> str:
    if not active:
        return "All bookings in this trip are archived."
    counts = Counter(s.kind for s in active)
    labels = {
        SegmentKind.FLIGHT: "flight",
        SegmentKind.HOTEL: "hotel stay",
        SegmentKind.TRAIN: "train",
        SegmentKind.CAR: "car rental",
    }
    parts = [f"{counts[k]} {labels[k]}{'s' if counts[k] != 1 else ''}" for k in SegmentKind if counts[k]]
    start = min(s.start_time for s in active)
    end = max(s.end_time for s in active)
    where = f" in {', '.join(destinations)}" if destinations else ""
    return f"{', '.join(parts)}{where}, {start:%b %d} to {end:%b %d, %Y}."


def build_trip(
    trip_id: str,
    segments: Iterable[Segment],
    settings: SyncSettings,
    now: datetime,
    prior: Optional[Trip] = None,
) -> Trip:
    """Materialize one trip. Only active segments feed dates, travelers and alerts."""
    ordered = tuple(sorted((replace(s, trip_id=trip_id) for s in segments), key=_chrono))
    active = [s for s in ordered if not s.archived]
    destinations = rank_destinations(active or ordered)
    alerts = tuple(generate_alerts(active, settings, now))
    has_gap = any(a.id.startswith("gap-") for a in alerts)

    return Trip(
        id=trip_id,
        name=trip_name(destinations),
        segments=ordered,
        start_date=min(s.start_time for s in active).date() if active else None,
        end_date=max(s.end_time for s in active).date() if active else None,
        summary=_summary(active, destinations),
        icon=prior.icon if prior else "",
        primary_destination=destinations[0] if destinations else "",
        travelers=collect_travelers(active),
        planning_progress=planning_progress(active, has_gap),
        alerts=alerts,
        dismissed_alert_ids=prior.dismissed_alert_ids if prior else (),
        archived=False,
        archived_at=None,
    )


# ---------------------------------------------------------------------------
# Step 3: Trip identity
# ---------------------------------------------------------------------------

def _prior_starts(segments: Iterable[Segment], prior_by_id: Dict[str, Trip]) -> Dict[str, datetime]:
    starts: Dict[str, datetime] = {}
    for seg in segments:
        if seg.trip_id:
            current = starts.get(seg.trip_id)
            starts[seg.trip_id] = seg.start_time if current is None else min(current, seg.start_time)
    for trip_id, trip in prior_by_id.items():
        if trip.start_date:
            starts[trip_id] = datetime.combine(trip.start_date, time.min)
    return starts


def choose_prior_ids(
    clusters: Sequence[Sequence[Segment]],
    prior_starts: Dict[str, datetime],
) -> List[Optional[str]]:
    """Reuse prior trip IDs: most contributed segments wins, earliest start breaks ties.

    Each prior ID goes to one cluster at most. Clusters with the strongest
    claim pick first.
    """
    ranked: List[List[str]] = []
    strength: List[int] = []
    for cluster in clusters:
        counts = Counter(s.trip_id for s in cluster if s.trip_id)
        ranked.append(sorted(counts, key=lambda tid: (-counts[tid], prior_starts.get(tid, datetime.max), tid)))
        strength.append(counts[ranked[-1][0]] if ranked[-1] else 0)

    chosen: List[Optional[str]] = [None] * len(clusters)
    taken: Set[str] = set()
    for i in sorted(range(len(clusters)), key=lambda i: (-strength[i], i)):
        for tid in ranked[i]:
            if tid not in taken:
                chosen[i] = tid
                taken.add(tid)
                break
    return chosen


def absorbing_trip_ids(
    clusters: Sequence[Sequence[Segment]],
    chosen_ids: Sequence[str],
) -> Dict[str, str]:
    """Map each prior trip ID to the trip that took most of its active segments.

    Ties go to the earlier cluster.
    """
    best: Dict[str, Tuple[int, int]] = {}
    for i, cluster in enumerate(clusters):
        for tid, count in Counter(s.trip_id for s in cluster if s.trip_id).items():
            if tid not in best or count > best[tid][0]:
                best[tid] = (count, i)
    return {tid: chosen_ids[i] for tid, (_, i) in best.items()}


def group_segments(
    segments: Iterable[Segment],
    settings: SyncSettings,
    now: datetime,
    prior_trips: Iterable[Trip] = (),
    known_ids: Iterable[str] = (),
    suffix_factory: Callable[[], str] = random_suffix,
    log: Optional[Callable[[str], None]] = None,
) -> List[Trip]:
    """Group merged segments into trips covering every segment exactly once.

    ``prior_trips`` are the stored trips the segments came from; their
    dismissed alerts and icons carry over to the trip that keeps their ID.
    ``known_ids`` are all IDs in use, archived trips included, so fresh IDs
    never collide with them.
    """
    segments = list(segments)
    prior_by_id = {t.id: t for t in prior_trips}
    taken: Set[str] = set(known_ids) | set(prior_by_id)

    clusters = cluster_segments(segments, settings, log)
    chosen = choose_prior_ids(clusters, _prior_starts(segments, prior_by_id))

    members: Dict[str, List[Segment]] = {}
    final_ids: List[str] = []
    for cluster, trip_id in zip(clusters, chosen):
        if trip_id is None:
            trip_id = new_trip_id(trip_name(rank_destinations(cluster)), taken, suffix_factory)
        elif len({s.trip_id for s in cluster if s.trip_id}) > 1 and log:
            log(f"Combined bookings from several trips into {trip_id}.")
        taken.add(trip_id)
        members[trip_id] = list(cluster)
        final_ids.append(trip_id)
    absorbed_by = absorbing_trip_ids(clusters, final_ids)

    # Archived segments follow their trip or whichever trip absorbed it,
    # otherwise they stay together under their old ID
    for seg in sorted((s for s in segments if s.archived), key=_chrono):
        if seg.trip_id in members:
            members[seg.trip_id].append(seg)
        elif seg.trip_id in absorbed_by:
            members[absorbed_by[seg.trip_id]].append(seg)
        elif seg.trip_id:
            if log:
                log(f"Keeping archived bookings of {seg.trip_id} as their own trip.")
            members[seg.trip_id] = [seg]
        else:
            trip_id = new_trip_id(trip_name(rank_destinations([seg])), taken, suffix_factory)
            taken.add(trip_id)
            members[trip_id] = [seg]
            if log:
                log(f"Archived segment {seg.id} has no trip; kept as {trip_id}.")

    trips = [
        build_trip(trip_id, segs, settings, now, prior_by_id.get(trip_id))
        for trip_id, segs in members.items()
    ]
    trips.sort(key=lambda t: (t.start_date or date.max, t.id))
    return trips
