"""Schema fingerprinting.

Turns a JSON-Schema-like tree into a canonical form and a short digest so two
snapshots of a tool's input schema can be checked for equality before running
the full differ.

The canonical form is insensitive to:
  - property insertion order
  - enum value order
  - integral floats vs ints (``1.0`` vs ``1``)
  - NFC/NFD spellings of property keys

Cyclic schema graphs terminate with a ``{"_circular": true}`` marker and
excessively deep ones with a ``{"_truncated": true, ...}`` marker.
"""

import hashlib
import json
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional

from mcpdrift.core.normalize import (
    MAX_SCHEMA_DEPTH,
    cycle_guard,
    depth_guard,
    index_by_normalized_key,
    normalize_key,
    normalize_numeric,
)

EMPTY_SCHEMA_HASH = "empty"

HASH_LENGTH = 16

CONSTRAINT_FIELDS = ("minimum", "maximum", "minLength", "maxLength", "pattern", "default")


@dataclass
class SchemaFingerprint:
    """Canonical form of a schema plus its truncated digest."""

    canonical: Dict[str, Any]
    digest: str


def canonical_value(value: Any) -> Any:
    """Numeric-normalize a literal (enum member, default) recursively."""
    if isinstance(value, dict):
        return {k: canonical_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [canonical_value(v) for v in value]
    return normalize_numeric(value)


def _json_sort_key(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=False)


def canonical_json(value: Any) -> str:
    """Deterministic, compact JSON serialization used for hashing."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def canonicalize_schema(
    schema: Any,
    depth: int = 0,
    visited: FrozenSet[int] = frozenset(),
    max_depth: int = MAX_SCHEMA_DEPTH,
) -> Any:
    """Build the canonical form of a schema node.

    Args:
        schema: The schema node (normally a dict).
        depth: Current recursion depth.
        visited: Identities of the nodes on the path from the root to here.
        max_depth: Depth beyond which a truncation sentinel is emitted.

    Returns:
        Canonical dict, or the node unchanged if it is not a dict.
    """
    truncated = depth_guard(depth, max_depth)
    if truncated:
        return truncated

    circular = cycle_guard(schema, visited)
    if circular:
        return circular

    if not isinstance(schema, dict):
        return canonical_value(schema)

    path = visited | {id(schema)}
    result: Dict[str, Any] = {}

    schema_type = schema.get("type")
    if schema_type is not None:
        result["type"] = sorted(schema_type, key=str) if isinstance(schema_type, list) else schema_type

    if schema.get("format") is not None:
        result["format"] = schema["format"]

    if schema.get("enum") is not None:
        result["enum"] = sorted(
            (canonical_value(v) for v in schema["enum"]),
            key=_json_sort_key,
        )

    for field in CONSTRAINT_FIELDS:
        if field in schema and schema[field] is not None:
            result[field] = canonical_value(schema[field])

    required = schema.get("required")
    if required:
        result["required"] = sorted(normalize_key(name) for name in required)

    properties = schema.get("properties")
    if isinstance(properties, dict):
        # First original spelling wins when two keys normalize identically.
        originals = index_by_normalized_key(properties)
        result["properties"] = {
            key: canonicalize_schema(properties[originals[key]], depth + 1, path, max_depth)
            for key in sorted(originals)
        }

    if schema.get("items") is not None:
        result["items"] = canonicalize_schema(schema["items"], depth + 1, path, max_depth)

    additional = schema.get("additionalProperties")
    if additional is not None:
        if isinstance(additional, bool):
            result["additionalProperties"] = additional
        else:
            result["additionalProperties"] = canonicalize_schema(
                additional, depth + 1, path, max_depth
            )

    return result


def fingerprint_schema(
    schema: Optional[Dict[str, Any]],
    max_depth: int = MAX_SCHEMA_DEPTH,
) -> SchemaFingerprint:
    """Fingerprint a schema.

    A fresh visited set is built for every call, so this is safe to run
    concurrently across many schemas.
    """
    if schema is None:
        return SchemaFingerprint(canonical={}, digest=EMPTY_SCHEMA_HASH)

    canonical = canonicalize_schema(schema, 0, frozenset(), max_depth)
    digest = hashlib.sha256(canonical_json(canonical).encode("utf-8")).hexdigest()
    return SchemaFingerprint(canonical=canonical, digest=digest[:HASH_LENGTH])


def compute_schema_hash(
    schema: Optional[Dict[str, Any]],
    max_depth: int = MAX_SCHEMA_DEPTH,
) -> str:
    """Short hex digest of a schema's canonical form ("empty" for None)."""
    return fingerprint_schema(schema, max_depth).digest


def infer_property_type(value: Any) -> Dict[str, Any]:
    """Infer a schema node from an observed argument value."""
    value = normalize_numeric(value)
    if value is None:
        return {"type": "null"}
    if isinstance(value, bool):
        return {"type": "boolean"}
    if isinstance(value, int):
        return {"type": "integer"}
    if isinstance(value, float):
        return {"type": "number"}
    if isinstance(value, str):
        return {"type": "string"}
    if isinstance(value, list):
        if not value:
            return {"type": "array"}
        return {"type": "array", "items": infer_property_type(value[0])}
    if isinstance(value, dict):
        return {
            "type": "object",
            "properties": {k: infer_property_type(v) for k, v in value.items()},
        }
    return {"type": "string"}


def infer_schema_from_args(args: Dict[str, Any]) -> Dict[str, Any]:
    """Infer an object schema from one set of call arguments.

    Every observed argument is treated as required.
    """
    properties = {key: infer_property_type(value) for key, value in args.items()}
    return {
        "type": "object",
        "properties": properties,
        "required": sorted(properties),
    }


@dataclass
class ConsensusHash:
    """Most common schema hash across observed interactions."""

    hash: str
    consistency: float
    variations: int


def compute_consensus_schema_hash(interactions: List[Dict[str, Any]]) -> ConsensusHash:
    """Compute the dominant argument-schema hash across interactions.

    Args:
        interactions: Observed calls, each a dict with an ``args`` mapping.

    Returns:
        ConsensusHash with the most common hash, the fraction of interactions
        that produced it, and the number of distinct hashes seen.
    """
    if not interactions:
        return ConsensusHash(hash=EMPTY_SCHEMA_HASH, consistency=1.0, variations=0)

    counts: Counter = Counter(
        compute_schema_hash(infer_schema_from_args(interaction.get("args", {})))
        for interaction in interactions
    )
    # Counter.most_common keeps first-seen order on ties.
    most_common, count = counts.most_common(1)[0]
    return ConsensusHash(
        hash=most_common,
        consistency=count / len(interactions),
        variations=len(counts),
    )
