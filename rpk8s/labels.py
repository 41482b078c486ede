"""Helpers to read structured data from flat, dot separated image labels.

Image labels are a flat `Dict[str, str]`. Nested objects and arrays are
encoded in the keys, eg

    com.lightbend.rp.endpoints.0.name = "ep1"
    com.lightbend.rp.endpoints.0.acls.0.type = "http"

The functions here recover those nested structures and parse the scalar
values. None of them ever raise: malformed data yields `None` or an empty
result.

"""
import math
import re
from typing import Dict, List, Tuple

# Canonical textual representations that the scalar decoders accept.
INT_RE = re.compile(r"[+-]?[0-9]+")
FLOAT_RE = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
ARRAY_INDEX_RE = re.compile(r"[0-9]+")

INT32_RANGE = (-(2**31), 2**31 - 1)
INT64_RANGE = (-(2**63), 2**63 - 1)


def decode_boolean(value: str) -> bool | None:
    value = value.lower()
    if value == "true":
        return True
    if value == "false":
        return False
    return None


def _decode_integer(value: str, bounds) -> int | None:
    if not INT_RE.fullmatch(value):
        return None

    out = int(value)
    lower, upper = bounds
    return out if lower <= out <= upper else None


def decode_int(value: str) -> int | None:
    """Return the 32 bit integer in `value` or `None`."""
    return _decode_integer(value, INT32_RANGE)


def decode_long(value: str) -> int | None:
    """Return the 64 bit integer in `value` or `None`."""
    return _decode_integer(value, INT64_RANGE)


def decode_double(value: str) -> float | None:
    # Reject `nan`, `inf`, `1_000` etc which `float` would happily accept.
    if not FLOAT_RE.fullmatch(value):
        return None

    # Overflows, eg `1e400`, become `inf`.
    out = float(value)
    return out if math.isfinite(out) else None


def select_indexed_array(
    labels: Dict[str, str], prefix: str
) -> List[Tuple[int, Dict[str, str]]]:
    """Return the array elements stored under `prefix` with their index.

    Each `{prefix}.{N}.{suffix}: value` label contributes `{suffix: value}` to
    the N-th element. A label `{prefix}.{N}` without suffix contributes
    `{"": value}`. The elements are sorted by their numeric index `N`, and gaps
    in the indices are ignored.

    """
    start = prefix + "."

    elements: Dict[int, Dict[str, str]] = {}
    for key, value in labels.items():
        if not key.startswith(start):
            continue

        index, _, suffix = key[len(start) :].partition(".")
        if not ARRAY_INDEX_RE.fullmatch(index):
            continue
        elements.setdefault(int(index), {})[suffix] = value

    return [(idx, elements[idx]) for idx in sorted(elements)]


def select_array(labels: Dict[str, str], prefix: str) -> List[Dict[str, str]]:
    """Same as `select_indexed_array` but without the indices."""
    return [element for _, element in select_indexed_array(labels, prefix)]


def select_subset(labels: Dict[str, str], prefix: str) -> Dict[str, str]:
    """Return all labels under `prefix` with the `{prefix}.` part removed."""
    start = prefix + "."
    return {
        key[len(start) :]: value
        for key, value in labels.items()
        if key.startswith(start)
    }
