"""Normalization primitives shared by the fingerprinter, differ and comparator.

Everything here is a pure function. Recursion guards take their state as
arguments (the current depth, the identities seen on the current path) so
callers can thread it through without any module-level bookkeeping.

Redaction order matters:
    UUIDs must be redacted before timestamps. A UUID's last segment is 12 hex
    characters and is often all digits, which the bare Unix-timestamp pattern
    (10-13 digits) would otherwise eat, leaving a half-replaced UUID behind.
    Use redact_output() rather than calling the two redactors by hand.
"""

import re
import unicodedata
from typing import Any, Dict, FrozenSet, Iterable, Optional

# Default maximum nesting depth for schema traversal.
MAX_SCHEMA_DEPTH = 50

UUID_PLACEHOLDER = "<UUID>"
TIMESTAMP_PLACEHOLDER = "<TIMESTAMP>"

UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)

TIMESTAMP_PATTERNS = [
    # ISO 8601
    re.compile(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})?"),
    # Unix timestamps (seconds or milliseconds)
    re.compile(r"\d{10,13}"),
]


def normalize_key(key: str) -> str:
    """NFC-normalize a property key so equivalent spellings compare equal."""
    return unicodedata.normalize("NFC", key)


def index_by_normalized_key(keys: Iterable[str]) -> Dict[str, str]:
    """Map each normalized key to its first original spelling."""
    originals: Dict[str, str] = {}
    for key in keys:
        originals.setdefault(normalize_key(key), key)
    return originals


def normalize_numeric(value: Any) -> Any:
    """Collapse integral floats to int (``1.0`` -> ``1``).

    Non-integral floats and non-numeric values pass through unchanged.
    """
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def depth_guard(depth: int, limit: int = MAX_SCHEMA_DEPTH) -> Optional[Dict[str, Any]]:
    """Return a truncation sentinel when ``depth`` exceeds ``limit``.

    The sentinel becomes part of the canonical output, so two schemas that
    only differ below the limit may still fingerprint differently.
    """
    if depth > limit:
        return {"_truncated": True, "_reason": "max_depth_exceeded", "_depth": depth}
    return None


def cycle_guard(node: Any, visited: FrozenSet[int]) -> Optional[Dict[str, Any]]:
    """Return a circular sentinel if ``node`` is already on the current path.

    ``visited`` holds the ``id()`` of every container between the root and
    ``node``. Callers extend it with ``visited | {id(node)}`` when descending,
    so a subtree that is shared but not cyclic is never flagged.
    """
    if isinstance(node, (dict, list)) and id(node) in visited:
        return {"_circular": True}
    return None


def redact_uuids(text: str) -> str:
    """Replace every UUID with a single placeholder token."""
    return UUID_PATTERN.sub(UUID_PLACEHOLDER, text)


def redact_timestamps(text: str) -> str:
    """Replace ISO 8601 and Unix timestamps with a placeholder token."""
    for pattern in TIMESTAMP_PATTERNS:
        text = pattern.sub(TIMESTAMP_PLACEHOLDER, text)
    return text


def redact_output(
    text: str,
    normalize_uuids: bool = True,
    normalize_timestamps: bool = True,
) -> str:
    """Apply the configured redactions, UUIDs first."""
    if normalize_uuids:
        text = redact_uuids(text)
    if normalize_timestamps:
        text = redact_timestamps(text)
    return text
