from dataclasses import replace
from datetime import date

import pytest

from trip_sync.assemble.grouping import (
    choose_prior_ids,
    cluster_segments,
    group_segments,
    new_trip_id,
    planning_progress,
    rank_destinations,
    slugify,
    trip_name,
)
from trip_sync.models import SegmentKind


def _suffixes(*values):
    return iter(values).__next__


def _tokyo_flight(make_segment, trip_id=None):
    return make_segment(
        "f3", SegmentKind.FLIGHT, "2024-06-07T10:00", "2024-06-08T14:00",
        location="Tokyo", provider="ANA",
        from_location="New York (JFK)", to_location="Tokyo (HND)",
        trip_id=trip_id,
    )


def _paris_hotel(make_segment, id, start, end, trip_id=None, provider="Hotel Lutetia"):
    return make_segment(
        id, SegmentKind.HOTEL, start, end,
        location="Paris, France", provider=provider, trip_id=trip_id,
    )


# ---------------------------------------------------------------------------
# Clustering
# ---------------------------------------------------------------------------

def test_round_trip_forms_one_trip(paris_segments, settings, now):
    trips = group_segments(paris_segments, settings, now, suffix_factory=lambda: "ab12cd")

    assert len(trips) == 1
    trip = trips[0]
    assert trip.id == "paris-trip-ab12cd"
    assert trip.name == "Paris Trip"
    assert trip.primary_destination == "Paris"
    assert trip.start_date == date(2024, 5, 31)
    assert trip.end_date == date(2024, 6, 5)
    assert trip.travelers == ("Alice Smith", "Bob Jones")
    assert trip.planning_progress == 100
    assert trip.alerts == ()
    assert trip.archived is False
    assert [s.id for s in trip.segments] == ["f1", "h1", "f2"]
    assert all(s.trip_id == trip.id for s in trip.segments)


def test_unrelated_places_split_trips(paris_segments, make_segment, settings, now):
    lines = []
    segments = paris_segments + [_tokyo_flight(make_segment)]

    trips = group_segments(segments, settings, now, suffix_factory=_suffixes("ab12cd", "cd34ef"), log=lines.append)

    assert [t.id for t in trips] == ["paris-trip-ab12cd", "tokyo-trip-cd34ef"]
    assert "Starting a new trip at 2024-06-07 (no shared city or region)." in lines


def test_long_gap_splits_trips(make_segment, settings):
    first = _paris_hotel(make_segment, "h1", "2024-06-01T15:00", "2024-06-05T11:00")
    second = _paris_hotel(make_segment, "h2", "2024-06-20T15:00", "2024-06-22T11:00")
    lines = []

    clusters = cluster_segments([second, first], settings, lines.append)

    assert [[s.id for s in c] for c in clusters] == [["h1"], ["h2"]]
    assert lines[0].endswith("h without bookings).")


def test_gap_within_threshold_keeps_one_trip(make_segment, settings):
    first = _paris_hotel(make_segment, "h1", "2024-06-01T15:00", "2024-06-05T11:00")
    second = _paris_hotel(make_segment, "h2", "2024-06-10T15:00", "2024-06-12T11:00")
    assert len(cluster_segments([first, second], settings)) == 1


def test_segments_without_places_stay_with_their_neighbours(make_segment, settings):
    hotel = _paris_hotel(make_segment, "h1", "2024-06-01T15:00", "2024-06-05T11:00")
    car = make_segment("c1", SegmentKind.CAR, "2024-06-02T09:00", "2024-06-02T18:00")
    assert len(cluster_segments([hotel, car], settings)) == 1


def test_every_segment_lands_in_exactly_one_trip(paris_segments, make_segment, settings, now):
    segments = paris_segments + [
        _tokyo_flight(make_segment),
        make_segment("c1", SegmentKind.CAR, "2024-06-10T09:00", location="Paris", archived=True),
    ]
    trips = group_segments(segments, settings, now, suffix_factory=_suffixes("aaaaaa", "bbbbbb", "cccccc"))

    ids = [s.id for t in trips for s in t.segments]
    assert sorted(ids) == sorted(s.id for s in segments)


def test_grouping_is_deterministic(paris_segments, make_segment, settings, now):
    segments = paris_segments + [_tokyo_flight(make_segment)]
    first = group_segments(segments, settings, now, suffix_factory=_suffixes("ab12cd", "cd34ef"))
    second = group_segments(list(reversed(segments)), settings, now, suffix_factory=_suffixes("ab12cd", "cd34ef"))
    assert first == second


# ---------------------------------------------------------------------------
# Trip identity
# ---------------------------------------------------------------------------

def test_new_segment_joins_existing_trip_id(paris_segments, make_trip, settings, now):
    prior = make_trip("paris-trip-ab12cd", paris_segments[:2])
    added = replace(paris_segments[2], trip_id="paris-trip-ab12cd")

    trips = group_segments(
        list(prior.segments) + [added], settings, now,
        prior_trips=[prior], known_ids={"paris-trip-ab12cd"}, suffix_factory=lambda: "zzzzzz",
    )

    assert [t.id for t in trips] == ["paris-trip-ab12cd"]
    assert len(trips[0].segments) == 3


def test_untagged_new_segment_joins_existing_trip_id(paris_segments, make_trip, settings, now):
    prior = make_trip("paris-trip-ab12cd", paris_segments[:2])
    trips = group_segments(
        list(prior.segments) + [paris_segments[2]], settings, now,
        prior_trips=[prior], suffix_factory=lambda: "zzzzzz",
    )
    assert [t.id for t in trips] == ["paris-trip-ab12cd"]


def test_majority_prior_trip_keeps_its_id(make_segment, settings, now):
    segments = [
        _paris_hotel(make_segment, "a1", "2024-06-01T15:00", "2024-06-03T11:00", trip_id="trip-a"),
        _paris_hotel(make_segment, "b1", "2024-06-03T15:00", "2024-06-05T11:00", trip_id="trip-b"),
        _paris_hotel(make_segment, "b2", "2024-06-05T15:00", "2024-06-07T11:00", trip_id="trip-b", provider="Le Bristol"),
    ]
    lines = []

    trips = group_segments(segments, settings, now, log=lines.append)

    assert [t.id for t in trips] == ["trip-b"]
    assert "Combined bookings from several trips into trip-b." in lines


def test_tie_goes_to_the_earliest_prior_trip(make_segment, make_trip, settings, now):
    b = _paris_hotel(make_segment, "b1", "2024-06-01T15:00", "2024-06-03T11:00", trip_id="trip-b")
    a = _paris_hotel(make_segment, "a1", "2024-06-03T15:00", "2024-06-05T11:00", trip_id="trip-a")

    assert [t.id for t in group_segments([a, b], settings, now)] == ["trip-b"]

    # A stored start date outranks the segments still attached
    prior_a = make_trip("trip-a", [a], start_date=date(2024, 5, 1))
    prior_b = make_trip("trip-b", [b])
    trips = group_segments([a, b], settings, now, prior_trips=[prior_a, prior_b])
    assert [t.id for t in trips] == ["trip-a"]


def test_prior_id_is_used_once_when_a_trip_splits(paris_segments, make_segment, settings, now):
    segments = [replace(s, trip_id="old-trip") for s in paris_segments]
    segments.append(_tokyo_flight(make_segment, trip_id="old-trip"))

    trips = group_segments(segments, settings, now, suffix_factory=lambda: "ab12cd")

    assert [t.id for t in trips] == ["old-trip", "tokyo-trip-ab12cd"]


def test_choose_prior_ids_strongest_claim_first():
    class Seg:
        def __init__(self, trip_id):
            self.trip_id = trip_id

    clusters = [[Seg("t")], [Seg("t"), Seg("t")], [Seg(None)]]
    assert choose_prior_ids(clusters, {}) == [None, "t", None]


def test_new_ids_avoid_known_ids(paris_segments, settings, now):
    trips = group_segments(
        paris_segments, settings, now,
        known_ids={"paris-trip-ab12cd"}, suffix_factory=_suffixes("ab12cd", "ab12cd", "zz9999"),
    )
    assert trips[0].id == "paris-trip-zz9999"


def test_new_trip_id_gives_up_eventually():
    with pytest.raises(RuntimeError):
        new_trip_id("Paris Trip", {"paris-trip-aaaaaa"}, lambda: "aaaaaa")


def test_new_trip_id_uses_random_suffix():
    trip_id = new_trip_id("Paris & Rome Trip", set())
    prefix, suffix = trip_id.rsplit("-", 1)
    assert prefix == "paris-rome-trip"
    assert len(suffix) == 6
    assert suffix.isalnum() and suffix == suffix.lower()


@pytest.mark.parametrize("name,slug", [
    ("Paris Trip", "paris-trip"),
    ("São Paulo Trip", "s-o-paulo-trip"),
    ("", "trip"),
    ("!!!", "trip"),
])
def test_slugify(name, slug):
    assert slugify(name) == slug


# ---------------------------------------------------------------------------
# Archived segments
# ---------------------------------------------------------------------------

def test_archived_segments_follow_their_trip(paris_segments, make_segment, make_trip, settings, now):
    prior = make_trip("paris-trip-ab12cd", paris_segments)
    parked_car = make_segment(
        "c1", SegmentKind.CAR, "2024-06-10T09:00", "2024-06-12T09:00",
        location="Paris", trip_id="paris-trip-ab12cd", archived=True,
    )
    stale = make_segment("c2", SegmentKind.CAR, "2024-07-01T09:00", location="Lyon", trip_id="old-trip-000000", archived=True)
    orphan = make_segment("c3", SegmentKind.CAR, "2024-08-01T09:00", location="Rome", archived=True)
    lines = []

    trips = group_segments(
        list(prior.segments) + [parked_car, stale, orphan], settings, now,
        prior_trips=[prior], suffix_factory=lambda: "xyz789", log=lines.append,
    )
    by_id = {t.id: t for t in trips}

    assert set(by_id) == {"paris-trip-ab12cd", "old-trip-000000", "rome-trip-xyz789"}
    paris = by_id["paris-trip-ab12cd"]
    assert "c1" in [s.id for s in paris.segments]
    assert paris.end_date == date(2024, 6, 5)
    assert by_id["old-trip-000000"].start_date is None
    assert [s.id for s in by_id["rome-trip-xyz789"].segments] == ["c3"]
    assert any("c3" in line for line in lines)


def test_archived_segments_follow_the_trip_that_absorbed_theirs(make_segment, make_trip, settings, now):
    kept = make_trip("paris-trip-bbbbbb", [
        _paris_hotel(make_segment, "b1", "2024-06-01T15:00", "2024-06-03T11:00"),
        _paris_hotel(make_segment, "b2", "2024-06-05T15:00", "2024-06-07T11:00"),
    ])
    absorbed = make_trip("paris-trip-aaaaaa", [
        _paris_hotel(make_segment, "a1", "2024-06-03T15:00", "2024-06-05T11:00"),
        make_segment("a2", SegmentKind.CAR, "2024-06-04T09:00", location="Paris", archived=True),
    ])

    trips = group_segments(
        list(kept.segments) + list(absorbed.segments), settings, now,
        prior_trips=[absorbed, kept], suffix_factory=lambda: "zzzzzz",
    )

    assert [t.id for t in trips] == ["paris-trip-bbbbbb"]
    assert [s.id for s in trips[0].segments] == ["b1", "a1", "a2", "b2"]
    assert all(s.trip_id == "paris-trip-bbbbbb" for s in trips[0].segments)


# ---------------------------------------------------------------------------
# Carried-over and derived fields
# ---------------------------------------------------------------------------

def test_dismissed_alerts_survive_regrouping(make_segment, make_trip, settings, now):
    s1 = make_segment("s1", SegmentKind.HOTEL, "2024-06-01T15:00", "2024-06-02T10:00", location="Paris")
    s2 = make_segment("s2", SegmentKind.HOTEL, "2024-06-03T16:00", "2024-06-04T11:00", location="Paris")
    prior = make_trip("paris-trip-ab12cd", [s1, s2], dismissed_alert_ids=("gap-s1-s2",), icon="🗼")

    trip = group_segments(list(prior.segments), settings, now, prior_trips=[prior])[0]

    assert trip.id == "paris-trip-ab12cd"
    assert "gap-s1-s2" in [a.id for a in trip.alerts]
    assert trip.dismissed_alert_ids == ("gap-s1-s2",)
    assert trip.open_alerts == ()
    assert trip.icon == "🗼"


def test_archived_flag_is_reset(paris_segments, make_trip, settings, now):
    prior = make_trip("paris-trip-ab12cd", paris_segments, archived=True)
    trip = group_segments(list(prior.segments), settings, now, prior_trips=[prior])[0]
    assert trip.archived is False
    assert trip.archived_at is None


def test_archived_segments_do_not_count_toward_travelers(paris_segments, settings, now):
    segments = [paris_segments[0], paris_segments[1], replace(paris_segments[2], archived=True)]
    trip = group_segments(segments, settings, now, suffix_factory=lambda: "ab12cd")[0]
    assert trip.travelers == ("Alice Smith",)
    assert trip.end_date == date(2024, 6, 5)


def test_planning_progress(paris_segments):
    outbound = paris_segments[0]
    assert planning_progress(paris_segments) == 100
    assert planning_progress([outbound]) == 70
    assert planning_progress(paris_segments, has_lodging_gap=True) == 99
    assert planning_progress([]) == 0


def test_planning_progress_rewards_lodging_coverage(paris_segments):
    outbound, hotel, inbound = paris_segments
    short_stay = replace(hotel, end_time=hotel.start_time.replace(day=3))
    assert planning_progress([outbound, short_stay, inbound]) == 60 + int(40 * 3 / 5)


def test_rank_destinations_skips_the_origin(paris_segments):
    assert rank_destinations(paris_segments) == ["Paris"]


@pytest.mark.parametrize("destinations,name", [
    ([], "Trip"),
    (["Paris"], "Paris Trip"),
    (["Paris", "Rome"], "Paris & Rome Trip"),
    (["Paris", "Rome", "Nice"], "Paris, Rome & more Trip"),
])
def test_trip_name(destinations, name):
    assert trip_name(destinations) == name
