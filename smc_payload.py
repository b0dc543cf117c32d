#!/usr/bin/env python3
"""
SMC (Share Mirror Controller) - xAPI Payload Helpers
Version: 1.0.0

The codec returns a bare object when a status list has a single entry and a
list otherwise, and numeric identifiers may arrive as strings. These helpers
normalize both.
"""

import re
from typing import Any, Iterable, List, Optional

_LEADING_INT = re.compile(r'^\s*([+-]?\d+)')

def as_list(value: Any) -> List[Any]:
    """Wrap single status objects in a list, map empty values to []."""
    if isinstance(value, list):
        return value
    if value is None or value == '' or value == {}:
        return []
    return [value]

def parse_int(value: Any) -> Optional[int]:
    """Parse the leading integer of a value, None when there is none."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if value is None:
        return None
    match = _LEADING_INT.match(str(value))
    if not match:
        return None
    return int(match.group(1))

def first_present(record: dict, keys: Iterable[str]) -> Any:
    """Return the value of the first key present in record (None if none)."""
    for key in keys:
        if key in record and record[key] is not None:
            return record[key]
    return None

def normalize_ids(values: Any) -> List[int]:
    """Coerce ids to int, drop non-numeric ones, dedupe and sort."""
    ids = set()
    for value in as_list(values):
        number = parse_int(value)
        if number is not None:
            ids.add(number)
    return sorted(ids)
