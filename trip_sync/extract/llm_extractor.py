"""LLM extraction of travel segment records from email content."""

import json
import re
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from trip_sync.collaborators import ExtractionError
from trip_sync.config import (
    GOOGLE_API_KEY,
    LLM_BACKEND,
    LLM_MODEL,
    MAX_BODY_CHARS,
    OPENAI_API_KEY,
)


def make_client() -> AsyncOpenAI:
    if LLM_BACKEND == "gemini":
        return AsyncOpenAI(
            api_key=GOOGLE_API_KEY,
            base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
        )
    return AsyncOpenAI(api_key=OPENAI_API_KEY)


EXTRACTION_PROMPT = """\
You are a structured-data extraction engine for travel booking emails.

Given an email subject, sender, date and body, extract EVERY travel booking
(flights, hotels, trains, car rentals) as a separate segment. Return a JSON
array (no markdown fences) of objects with these fields:

[
  {
    "type": "FLIGHT" | "HOTEL" | "TRAIN" | "CAR",
    "description": "short summary, e.g. 'Flight from JFK to CDG on Air France AF009'",
    "startDate": "YYYY-MM-DDTHH:mm:ss",
    "endDate": "YYYY-MM-DDTHH:mm:ss",
    "location": "primary city, e.g. 'Paris, France'",
    "status": "real-time flight status or null",
    "travelerName": "passenger or guest name or null",
    "details": {
      "confirmationNumber": "booking reference or null",
      "provider": "airline / hotel / rail / rental company or null",
      "bookingAgent": "booking site if different from provider or null",
      "from": "departure location for transport or null",
      "to": "arrival location for transport or null",
      "flightNumber": "flight number or null",
      "airlineCode": "IATA airline code or null",
      "phoneNumber": "hotel phone number or null"
    }
  }
]

Rules:
- Flights: startDate = departure, endDate = arrival. One segment per leg.
- Hotels: startDate = check-in, endDate = check-out, location = hotel city.
- Cars: startDate = pick-up, endDate = drop-off, location = pick-up city.
- Use the email's send date to infer a missing year.
- If the email holds no booking (marketing, account notices), return [].
- Return ONLY the JSON array, no extra text.
"""


def _build_user_message(message) -> str:
    body = (message.body or "")[:MAX_BODY_CHARS]
    return (
        f"Subject: {message.subject}\n"
        f"From: {message.sender}\n"
        f"Date: {message.date}\n"
        f"---\n{body}"
    )


def _parse_response(text: str) -> List[Dict[str, Any]]:
    """Parse the LLM response, stripping markdown fences if present."""
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```$", "", text)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise ExtractionError(f"unparseable extraction response: {text[:200]!r}") from e
    # Some models wrap the list: {"segments": [...]}
    if isinstance(parsed, dict):
        parsed = parsed.get("segments", [parsed] if parsed.get("type") else [])
    if not isinstance(parsed, list):
        raise ExtractionError(f"expected a JSON array, got {type(parsed).__name__}")
    return [item for item in parsed if isinstance(item, dict)]


class LLMSegmentExtractor:
    """Extracts segment records from one email with an OpenAI-compatible model."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: str = LLM_MODEL):
        self._client = client
        self.model = model

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = make_client()
        return self._client

    async def extract(self, message) -> List[Dict[str, Any]]:
        resp = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": EXTRACTION_PROMPT},
                {"role": "user", "content": _build_user_message(message)},
            ],
            temperature=0.0,
            max_tokens=2000,
        )
        raw = resp.choices[0].message.content or ""
        return _parse_response(raw)
