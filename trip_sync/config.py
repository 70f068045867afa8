"""Configuration: .env loading, paths, constants, per-run settings."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

# Project root = parent of trip_sync/
PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(PROJECT_ROOT / ".env")

# --- LLM API ---
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", "")

# Default to Gemini via OpenAI-compatible endpoint; fall back to OpenAI if no Google key
LLM_BACKEND = os.getenv("LLM_BACKEND", "gemini" if GOOGLE_API_KEY else "openai")
LLM_MODEL = os.getenv("LLM_MODEL", "gemini-2.0-flash" if LLM_BACKEND == "gemini" else "gpt-4o-mini")

# --- Paths ---
MBOX_PATH = os.getenv("MBOX_PATH", str(PROJECT_ROOT / "travel.mbox"))
STORE_PATH = Path(os.getenv("TRIP_STORE_PATH", str(PROJECT_ROOT / "trips.json")))

# --- User ---
DEFAULT_USER = os.getenv("TRIP_SYNC_USER", "me@example.com")

# --- Extraction ---
MAX_BODY_CHARS = 6000  # truncate email body sent to LLM
EXTRACTION_CHUNK_SIZE = int(os.getenv("EXTRACTION_CHUNK_SIZE", "5"))  # concurrent extraction calls

# --- Assembly defaults ---
LODGING_GAP_HOURS = 24.0
CHECK_IN_LEAD_TIME_HOURS = 0.0  # 0 disables check-in reminders
LOGICAL_GAP_HOURS = 7 * 24.0  # split trips on gaps longer than this


@dataclass(frozen=True)
class SyncSettings:
    """Thresholds for one sync run, passed explicitly to every stage."""
    lodging_gap_hours: float = LODGING_GAP_HOURS
    check_in_lead_time_hours: float = CHECK_IN_LEAD_TIME_HOURS
    logical_gap_hours: float = LOGICAL_GAP_HOURS

    def __post_init__(self):
        for name in ("lodging_gap_hours", "check_in_lead_time_hours", "logical_gap_hours"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")

    @classmethod
    def from_mapping(cls, stored: Optional[Mapping[str, Any]]) -> "SyncSettings":
        """Layer a stored settings document over the defaults.

        Accepts ``{"alerts": {"lodgingGapHours": .., "checkInLeadTimeHours": ..},
        "grouping": {"logicalGapHours": ..}}``; missing keys keep their defaults.
        """
        stored = stored or {}
        alerts = stored.get("alerts") or {}
        grouping = stored.get("grouping") or {}
        return cls(
            lodging_gap_hours=float(alerts.get("lodgingGapHours", LODGING_GAP_HOURS)),
            check_in_lead_time_hours=float(alerts.get("checkInLeadTimeHours", CHECK_IN_LEAD_TIME_HOURS)),
            logical_gap_hours=float(grouping.get("logicalGapHours", LOGICAL_GAP_HOURS)),
        )
