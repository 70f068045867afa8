"""Merge segments that describe the same booking.

Two travelers' confirmations for one flight, or two rooms booked separately
for one hotel stay, arrive as separate segments. They are fused into one
segment carrying every confirmation, under the identity of whichever segment
was seen first.
"""

from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from trip_sync.models import DETAIL_FIELDS, Confirmation, Segment, SegmentDetails, SegmentKind


def _fold(value: str) -> str:
    return " ".join(value.split()).casefold()


def duplicate_key(seg: Segment) -> Tuple:
    """Fields that must all agree for two segments to be the same booking."""
    if seg.is_transport:
        places: Tuple[str, ...] = (_fold(seg.details.from_location), _fold(seg.details.to_location))
    else:
        places = (_fold(seg.location),)
    return (seg.kind, _fold(seg.details.provider), seg.start_time, seg.end_time) + places


def _hotel_overlap(a: Segment, b: Segment) -> bool:
    """Separate room bookings for one stay: same hotel, overlapping nights."""
    if a.kind != SegmentKind.HOTEL or b.kind != SegmentKind.HOTEL:
        return False
    provider = _fold(a.details.provider)
    location = _fold(a.location)
    if not provider or not location:
        return False
    if provider != _fold(b.details.provider) or location != _fold(b.location):
        return False
    return a.start_time < b.end_time and b.start_time < a.end_time


def is_duplicate(a: Segment, b: Segment) -> bool:
    return duplicate_key(a) == duplicate_key(b) or _hotel_overlap(a, b)


def _merge_details(primary: SegmentDetails, secondary: SegmentDetails) -> SegmentDetails:
    """Fill primary's empty detail fields from secondary."""
    filled = {
        name: getattr(secondary, name)
        for name in DETAIL_FIELDS
        if not getattr(primary, name) and getattr(secondary, name)
    }
    return replace(primary, **filled) if filled else primary


def _merge_confirmations(
    primary: Tuple[Confirmation, ...], secondary: Tuple[Confirmation, ...]
) -> Tuple[Confirmation, ...]:
    merged = list(primary)
    for conf in secondary:
        if conf not in merged:
            merged.append(conf)
    return tuple(merged)


def merge_pair(primary: Segment, secondary: Segment) -> Segment:
    """Fold secondary into primary. Primary keeps its id, email and scalars."""
    if primary.id == secondary.id:
        return primary
    return replace(
        primary,
        confirmations=_merge_confirmations(primary.confirmations, secondary.confirmations),
        details=_merge_details(primary.details, secondary.details),
        trip_id=primary.trip_id or secondary.trip_id,
    )


def _can_absorb(kept: Segment, seg: Segment) -> bool:
    # An archived booking never swallows a live one
    if kept.archived and not seg.archived:
        return False
    return is_duplicate(kept, seg)


def merge_segments(
    segments: Iterable[Segment],
    log: Optional[Callable[[str], None]] = None,
) -> List[Segment]:
    """Fuse duplicate segments. Returns a new list in first-seen order.

    Input order decides identity: put persisted segments before new ones so
    stored IDs survive. A segment whose ID has already been seen is dropped,
    which makes re-merging an already merged pool a no-op. A live segment is
    never folded into an archived one, so rebooking an archived stay shows up.
    """
    merged: List[Segment] = []
    seen_ids: Dict[str, int] = {}

    for seg in segments:
        if seg.id in seen_ids:
            continue

        target = next((i for i, m in enumerate(merged) if _can_absorb(m, seg)), None)
        if target is None:
            seen_ids[seg.id] = len(merged)
            merged.append(seg)
            continue

        primary = merged[target]
        merged[target] = merge_pair(primary, seg)
        seen_ids[seg.id] = target
        if log:
            reason = "overlapping stay" if duplicate_key(primary) != duplicate_key(seg) else "same booking"
            log(f"Merged segment {seg.id} into {primary.id} ({reason}, {primary.kind.value.lower()} "
                f"{primary.description or primary.location}).")

    return merged
