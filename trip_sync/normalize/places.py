"""Normalize free-text locations to city and region keys for proximity checks."""

import re
from typing import FrozenSet, Iterable

# Maps raw variations → canonical city
_ALIASES = {
    # New York variants
    "new york city": "New York",
    "nyc": "New York",
    "manhattan": "New York",
    "brooklyn": "New York",
    "newark": "New York",
    "jfk": "New York",
    "lga": "New York",
    "ewr": "New York",
    "kennedy intl": "New York",
    "laguardia": "New York",
    # Los Angeles
    "la": "Los Angeles",
    "lax": "Los Angeles",
    "santa monica": "Los Angeles",
    "burbank": "Los Angeles",
    "bur": "Los Angeles",
    # San Francisco
    "sf": "San Francisco",
    "sfo": "San Francisco",
    "oak": "San Francisco",
    "oakland": "San Francisco",
    # Washington
    "washington dc": "Washington DC",
    "washington, dc": "Washington DC",
    "dca": "Washington DC",
    "iad": "Washington DC",
    "washington dulles": "Washington DC",
    # Chicago
    "ord": "Chicago",
    "mdw": "Chicago",
    "o'hare": "Chicago",
    # Other US
    "bos": "Boston",
    "sea": "Seattle",
    "atl": "Atlanta",
    "den": "Denver",
    "mia": "Miami",
    "aus": "Austin",
    # Europe
    "cdg": "Paris",
    "ory": "Paris",
    "orly": "Paris",
    "charles de gaulle": "Paris",
    "gare du nord": "Paris",
    "gare de lyon": "Paris",
    "lhr": "London",
    "lgw": "London",
    "stn": "London",
    "heathrow": "London",
    "gatwick": "London",
    "st pancras": "London",
    "bcn": "Barcelona",
    "el prat": "Barcelona",
    "mad": "Madrid",
    "fco": "Rome",
    "fiumicino": "Rome",
    "roma": "Rome",
    "roma termini": "Rome",
    "mxp": "Milan",
    "lin": "Milan",
    "milano": "Milan",
    "firenze": "Florence",
    "venezia": "Venice",
    "ams": "Amsterdam",
    "schiphol": "Amsterdam",
    "fra": "Frankfurt",
    "muc": "Munich",
    "münchen": "Munich",
    "ber": "Berlin",
    "lis": "Lisbon",
    "lisboa": "Lisbon",
    "zrh": "Zurich",
    "zürich": "Zurich",
    "vie": "Vienna",
    "wien": "Vienna",
    "prg": "Prague",
    "praha": "Prague",
    "dub": "Dublin",
    "cph": "Copenhagen",
    "ath": "Athens",
    "ist": "Istanbul",
    "waw": "Warsaw",
    "warszawa": "Warsaw",
    # Asia / Pacific
    "hnd": "Tokyo",
    "nrt": "Tokyo",
    "narita": "Tokyo",
    "haneda": "Tokyo",
    "kix": "Osaka",
    "icn": "Seoul",
    "sin": "Singapore",
    "hkg": "Hong Kong",
    "syd": "Sydney",
    # Americas
    "yyz": "Toronto",
    "yvr": "Vancouver",
    "mex": "Mexico City",
    "cdmx": "Mexico City",
    "cun": "Cancun",
    "gru": "Sao Paulo",
    "são paulo": "Sao Paulo",
}

# Words that mark the part of a string that is not a place
_VENUE_WORDS = re.compile(
    r'\b(hotel|inn|resort|suites?|motel|hostel|lodge|airbnb|'
    r'airport|intl|international|terminal|station|apt|'
    r'marriott|hilton|hyatt|sheraton|westin)\b',
    re.I,
)

# Canonical names double as their own aliases
_CANONICAL = {city.lower(): city for city in _ALIASES.values()}

_IATA_IN_PARENS = re.compile(r'\(([A-Z]{3})\)')
_POSTCODE = re.compile(r'\b\d{4,5}(-\d{4})?\b')


def _lookup(name: str) -> str:
    key = name.lower()
    return _ALIASES.get(key) or _CANONICAL.get(key, "")


def _clean(part: str) -> str:
    part = _POSTCODE.sub("", part)
    part = re.sub(r'\s+', ' ', part)
    return part.strip(" ,.-")


def resolve_city(raw: str) -> str:
    """Normalize a raw location string to a canonical city name.

    Tries in order:
    1. IATA code in parentheses, e.g. "Charles de Gaulle (CDG)"
    2. Exact alias match on the whole string, then on the part before a comma
    3. Venue names ("Hilton Paris Opera", "JFK Airport") stripped to what remains
    4. Cleaned-up first comma-separated part
    """
    if not raw:
        return ""

    cleaned = raw.strip()

    m = _IATA_IN_PARENS.search(cleaned)
    if m and _lookup(m.group(1)):
        return _lookup(m.group(1))
    cleaned = _IATA_IN_PARENS.sub("", cleaned).strip()

    if _lookup(cleaned):
        return _lookup(cleaned)

    head = _clean(cleaned.split(",")[0])
    if _lookup(head):
        return _lookup(head)

    # "JFK Airport", "Roma Termini station", "Hilton Paris Opera"
    if _VENUE_WORDS.search(head):
        stripped = _clean(_VENUE_WORDS.sub("", head))
        if _lookup(stripped):
            return _lookup(stripped)
        for name in sorted(set(_ALIASES) | set(_CANONICAL), key=len, reverse=True):
            if len(name) > 3 and re.search(rf'\b{re.escape(name)}\b', stripped, re.I):
                return _lookup(name)
        # A venue name with a city after the comma: "Hotel X, Paris, France"
        parts = [_clean(p) for p in cleaned.split(",")[1:] if _clean(p)]
        if parts:
            return _lookup(parts[0]) or parts[0]
        return ""

    if head and not any(c.isdigit() for c in head) and len(head) < 50:
        return head
    return ""


def _region(raw: str) -> str:
    """Last comma-separated part that is not the city itself ("France", "NY")."""
    parts = [_clean(p) for p in raw.split(",")]
    parts = [p for p in parts if p]
    if len(parts) < 2:
        return ""
    return parts[-1]


def place_keys(raw: str) -> FrozenSet[str]:
    """Comparable keys for a location: its city and, when given, its region."""
    if not raw:
        return frozenset()
    keys = set()
    city = resolve_city(raw)
    if city:
        keys.add(f"city:{city.casefold()}")
    region = _region(raw)
    if region and region.casefold() != city.casefold():
        keys.add(f"region:{region.casefold()}")
    return frozenset(keys)


def cities(keys: Iterable[str]) -> FrozenSet[str]:
    return frozenset(k for k in keys if k.startswith("city:"))
