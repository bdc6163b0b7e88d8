"""
Since-marker codec. The caller only ever sees one JSON string per channel:

    {"#cats": "2023-01-01T00:00:00.000000+00:00", "from:nasa": "10432"}

Each value belongs to the channel family that produced it. This module only
unpacks the entry for one query and packs the map back up; it never looks
inside an opaque marker. Date-family channels get a datetime.
"""

import json
from collections.abc import Mapping
from datetime import datetime

from channels.base import ParseError
from models import format_timestamp, parse_timestamp


def decode(raw, query: str, requires_date: bool = False):
    """
    Extract the marker for `query` from a caller-supplied since value.

    Args:
        raw: None, a JSON object string {query: marker}, a bare marker string
            (applies to every query), an already-decoded mapping, or a datetime.
        query: The query term whose marker is wanted.
        requires_date: The channel works with date markers.

    Returns:
        None when there is no marker for this query, else the marker
        (a timezone-aware datetime when requires_date).

    Raises:
        ParseError: requires_date and the marker is not a valid date.
    """
    if raw is None or raw == "":
        return None

    if isinstance(raw, datetime):
        return parse_timestamp(raw)

    if isinstance(raw, Mapping):
        return _keyed(raw, query, requires_date)

    if not isinstance(raw, str):
        if requires_date:
            raise ParseError(f"Invalid since value {raw!r}: must be null, a JSON string or a datetime")
        return raw

    try:
        decoded = json.loads(raw)
    except ValueError:
        decoded = None

    if isinstance(decoded, dict):
        return _keyed(decoded, query, requires_date)
    if isinstance(decoded, str):
        # a JSON string literal, e.g. '"abc"'
        raw = decoded
        if raw == "":
            return None

    # Not a JSON object: a bare marker shared by every query
    if requires_date:
        return _to_date(raw)
    return raw


def _keyed(markers: Mapping, query: str, requires_date: bool):
    marker = markers.get(query)
    if marker is None or marker == "":
        return None
    if requires_date:
        return _to_date(marker)
    return marker


def _to_date(value) -> datetime:
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ParseError(f"Unable to parse since marker {value!r} as a date")
    return parsed


def encode(markers: Mapping) -> str:
    """
    Pack {query: marker} into the JSON string handed back to the caller.
    Queries without a marker are left out.
    """
    packed = {}
    for query, marker in markers.items():
        if marker is None:
            continue
        packed[query] = format_timestamp(marker) if isinstance(marker, datetime) else marker
    return json.dumps(packed)
