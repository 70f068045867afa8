"""JSON-file trip store: one document per user, written whole on commit."""

import json
import logging
import os
import tempfile
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Set

from trip_sync.collaborators import CommitError, StoreError
from trip_sync.config import STORE_PATH
from trip_sync.models import ChangeSet, Trip
from trip_sync.output import trip_from_dict, trip_to_dict

logger = logging.getLogger(__name__)


class JsonTripStore:
    """Stores trips, processed-email records and settings per user.

    Layout::

        {"users": {"<user>": {"trips": {"<id>": {...}},
                              "processed_emails": {"<email id>": {...}},
                              "settings": {...}}}}
    """

    def __init__(self, path: Path = STORE_PATH):
        self.path = Path(path)
        self._loaded: Optional[Dict[str, Any]] = None

    @property
    def _data(self) -> Dict[str, Any]:
        """The whole store, read from disk on first use.

        A file that exists but cannot be parsed raises ``StoreError`` and is
        left untouched, so a later write cannot replace it with a partial
        document.
        """
        if self._loaded is None:
            self._loaded = self._load()
        return self._loaded

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {"users": {}}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.error("Could not read trip store %s: %s", self.path, e)
            raise StoreError(f"could not read trip store {self.path}: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.setdefault("users", {}), dict):
            raise StoreError(f"trip store {self.path} is not a users document")
        return data

    def _user(self, user: str) -> Dict[str, Any]:
        doc = self._data["users"].setdefault(user, {})
        doc.setdefault("trips", {})
        doc.setdefault("processed_emails", {})
        doc.setdefault("settings", {})
        return doc

    def _save(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2, ensure_ascii=False, default=str)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    # --- reads ---

    def load_trips(self, user: str, include_archived: bool = False) -> List[Trip]:
        trips = [trip_from_dict(d) for d in self._user(user)["trips"].values()]
        if not include_archived:
            trips = [t for t in trips if not t.archived]
        trips.sort(key=lambda t: (t.start_date is None, t.start_date, t.id))
        return trips

    def get_trip(self, user: str, trip_id: str) -> Optional[Trip]:
        d = self._user(user)["trips"].get(trip_id)
        return trip_from_dict(d) if d else None

    def known_trip_ids(self, user: str) -> Set[str]:
        return set(self._user(user)["trips"])

    def processed_email_ids(self, user: str) -> Set[str]:
        return set(self._user(user)["processed_emails"])

    def load_settings(self, user: str) -> Mapping[str, Any]:
        return dict(self._user(user)["settings"])

    def save_settings(self, user: str, settings: Mapping[str, Any]):
        self._user(user)["settings"] = dict(settings)
        self._save()

    def load_archived_items(self, user: str) -> List[Trip]:
        """Archived trips, and trips holding archived segments."""
        return [
            t for t in self.load_trips(user, include_archived=True)
            if t.archived or any(s.archived for s in t.segments)
        ]

    # --- sync commit ---

    def commit(self, user: str, change_set: ChangeSet) -> None:
        """Apply a change set and write the store in one go."""
        doc = self._user(user)
        snapshot = json.loads(json.dumps(doc, default=str))
        try:
            for trip in change_set.upserts:
                doc["trips"][trip.id] = trip_to_dict(trip)
            stamp = change_set.archived_at.isoformat() if change_set.archived_at else None
            processed_at = (change_set.committed_at or datetime.now()).isoformat(timespec="seconds")
            for trip_id in change_set.archive_ids:
                if trip_id in doc["trips"]:
                    doc["trips"][trip_id]["archived"] = True
                    doc["trips"][trip_id]["archived_at"] = stamp
            for outcome in change_set.processed:
                doc["processed_emails"][outcome.email_id] = {
                    "processed_at": processed_at,
                    "status": outcome.status.value,
                    "found_segments": bool(outcome.records),
                }
            self._save()
        except (OSError, TypeError, ValueError) as e:
            self._data["users"][user] = snapshot
            raise CommitError(f"could not write trip store {self.path}: {e}") from e

    # --- user actions ---

    def _update_trip(self, user: str, trip: Trip):
        self._user(user)["trips"][trip.id] = trip_to_dict(trip)
        self._save()

    def _require(self, user: str, trip_id: str) -> Trip:
        trip = self.get_trip(user, trip_id)
        if trip is None:
            raise KeyError(f"no trip {trip_id!r} for {user}")
        return trip

    def archive_trip(self, user: str, trip_id: str, when: Optional[datetime] = None):
        trip = self._require(user, trip_id)
        self._update_trip(user, replace(trip, archived=True, archived_at=when or datetime.now()))

    def restore_trip(self, user: str, trip_id: str):
        trip = self._require(user, trip_id)
        self._update_trip(user, replace(trip, archived=False, archived_at=None))

    def _set_segment_archived(self, user: str, trip_id: str, segment_id: str, archived: bool):
        trip = self._require(user, trip_id)
        if not any(s.id == segment_id for s in trip.segments):
            raise KeyError(f"no segment {segment_id!r} in trip {trip_id!r}")
        segments = tuple(replace(s, archived=archived) if s.id == segment_id else s for s in trip.segments)
        self._update_trip(user, replace(trip, segments=segments))

    def archive_segment(self, user: str, trip_id: str, segment_id: str):
        self._set_segment_archived(user, trip_id, segment_id, True)

    def restore_segment(self, user: str, trip_id: str, segment_id: str):
        self._set_segment_archived(user, trip_id, segment_id, False)

    def dismiss_alert(self, user: str, trip_id: str, alert_id: str):
        trip = self._require(user, trip_id)
        if alert_id in trip.dismissed_alert_ids:
            return
        self._update_trip(user, replace(trip, dismissed_alert_ids=trip.dismissed_alert_ids + (alert_id,)))

    def __len__(self):
        return len(self._data["users"])

    def __contains__(self, user: str) -> bool:
        return user in self._data["users"]
