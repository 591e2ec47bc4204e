"""Schema differ: classify how a tool's input schema changed.

Walks two schema trees and emits path-addressed SchemaChange entries. Object
properties are addressed with dots (``filters.limit``), array item schemas
with a ``[]`` suffix (``tags[]``). Changes to the top-level node itself
(its type, constraints, ...) are reported at ``$``.

Compatibility policy (a change is "breaking" if existing callers may fail):
  - required: newly required name -> breaking; no longer required -> safe
  - property added -> breaking only when it is also newly required
  - property removed -> always breaking
  - type changed -> always breaking
  - format: only none -> defined is breaking (other transitions are not,
    including date -> date-time, a known gap)
  - enum: breaking if any previously allowed value disappeared
  - minimum/minLength raised (or newly set) -> breaking
  - maximum/maxLength lowered (or newly set) -> breaking
  - pattern newly set or changed -> breaking
  - items typing added or removed -> safe (an untyped array accepts anything)
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from mcpdrift.core.fingerprint import canonical_value, compute_schema_hash
from mcpdrift.core.normalize import MAX_SCHEMA_DEPTH, index_by_normalized_key, normalize_key
from mcpdrift.core.severity import DriftSeverity


class SchemaChangeType(Enum):
    """Kind of change detected between two schemas."""

    PROPERTY_ADDED = "property_added"
    PROPERTY_REMOVED = "property_removed"
    TYPE_CHANGED = "type_changed"
    CONSTRAINT_CHANGED = "constraint_changed"
    REQUIRED_CHANGED = "required_changed"
    ENUM_CHANGED = "enum_changed"
    DESCRIPTION_CHANGED = "description_changed"
    FORMAT_CHANGED = "format_changed"


@dataclass(frozen=True)
class SchemaChange:
    """A single classified difference between two schemas."""

    path: str
    change_type: SchemaChangeType
    before: Any
    after: Any
    breaking: bool
    description: str


@dataclass
class SchemaComparisonResult:
    """Outcome of comparing two schemas."""

    identical: bool
    changes: List[SchemaChange] = field(default_factory=list)
    previous_hash: str = ""
    current_hash: str = ""
    visual_diff: str = ""

    @property
    def breaking_changes(self) -> List[SchemaChange]:
        return [c for c in self.changes if c.breaking]

    @property
    def non_breaking_changes(self) -> List[SchemaChange]:
        return [c for c in self.changes if not c.breaking]

    @property
    def has_breaking_changes(self) -> bool:
        return any(c.breaking for c in self.changes)

    @property
    def severity(self) -> DriftSeverity:
        return classify_schema_changes(self.changes)


def classify_schema_changes(changes: List[SchemaChange]) -> DriftSeverity:
    """BREAKING if any change is breaking, INFO for other changes, else NONE."""
    if any(c.breaking for c in changes):
        return DriftSeverity.BREAKING
    if changes:
        return DriftSeverity.INFO
    return DriftSeverity.NONE


# Path used for changes to the top-level schema node itself.
ROOT_PATH = "$"

MIN_CONSTRAINTS = ("minimum", "minLength")
MAX_CONSTRAINTS = ("maximum", "maxLength")


def normalize_type(schema_type: Any) -> str:
    """Canonical string for a type: "any" if unset, sorted and pipe-joined for lists."""
    if schema_type is None:
        return "any"
    if isinstance(schema_type, list):
        return "|".join(sorted(str(t) for t in schema_type))
    return str(schema_type)


def summarize_property(prop: Dict[str, Any]) -> str:
    """Short one-line rendering of a property schema for change records."""
    if not isinstance(prop, dict):
        return "unknown"

    parts: List[str] = []
    prop_type = prop.get("type")
    if prop_type:
        parts.append("|".join(prop_type) if isinstance(prop_type, list) else str(prop_type))
    if prop.get("format"):
        parts.append(f"({prop['format']})")
    if prop.get("enum") is not None:
        parts.append(f"enum[{len(prop['enum'])}]")

    constraints = []
    for name, label in (
        ("minimum", "min"),
        ("maximum", "max"),
        ("minLength", "minLen"),
        ("maxLength", "maxLen"),
    ):
        if prop.get(name) is not None:
            constraints.append(f"{label}:{prop[name]}")
    if prop.get("pattern"):
        constraints.append("pattern")
    if constraints:
        parts.append("{" + ",".join(constraints) + "}")

    return " ".join(parts) or "unknown"


def _enum_key(value: Any) -> str:
    return json.dumps(canonical_value(value), sort_keys=True)


def _accepts_anything(node: Any) -> bool:
    return node is True or node == {}


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


class _Walker:
    """Holds the change list for one top-level comparison."""

    def __init__(self, max_depth: int):
        self.max_depth = max_depth
        self.changes: List[SchemaChange] = []

    def add(self, path, change_type, before, after, breaking, description):
        self.changes.append(
            SchemaChange(
                path=path or ROOT_PATH,
                change_type=change_type,
                before=before,
                after=after,
                breaking=breaking,
                description=description,
            )
        )

    def compare_members(
        self,
        prev: Dict[str, Any],
        curr: Dict[str, Any],
        path: str,
        depth: int,
        visited: FrozenSet[Tuple[int, int]],
    ) -> None:
        """Compare the object-level parts of two nodes: required and properties."""
        prev_required = [normalize_key(name) for name in prev.get("required") or []]
        curr_required = [normalize_key(name) for name in curr.get("required") or []]
        prev_required_set = set(prev_required)
        curr_required_set = set(curr_required)
        required_path = _join(path, "required")

        # Only the first addition and the first removal are reported.
        for name in curr_required:
            if name not in prev_required_set:
                self.add(
                    required_path,
                    SchemaChangeType.REQUIRED_CHANGED,
                    prev_required,
                    curr_required,
                    True,
                    f'Property "{name}" is now required',
                )
                break

        for name in prev_required:
            if name not in curr_required_set:
                self.add(
                    required_path,
                    SchemaChangeType.REQUIRED_CHANGED,
                    prev_required,
                    curr_required,
                    False,
                    f'Property "{name}" is no longer required',
                )
                break

        prev_props = prev.get("properties") or {}
        curr_props = curr.get("properties") or {}
        # Normalized key -> original spelling, first spelling wins.
        prev_keys = index_by_normalized_key(prev_props)
        curr_keys = index_by_normalized_key(curr_props)
        keys = list(prev_keys) + [k for k in curr_keys if k not in prev_keys]

        for key in keys:
            prop_path = _join(path, key)
            if key not in prev_keys:
                newly_required = key in curr_required_set and key not in prev_required_set
                self.add(
                    prop_path,
                    SchemaChangeType.PROPERTY_ADDED,
                    None,
                    summarize_property(curr_props[curr_keys[key]]),
                    newly_required,
                    f'Property "{key}" added{" (required)" if newly_required else " (optional)"}',
                )
            elif key not in curr_keys:
                self.add(
                    prop_path,
                    SchemaChangeType.PROPERTY_REMOVED,
                    summarize_property(prev_props[prev_keys[key]]),
                    None,
                    True,
                    f'Property "{key}" removed',
                )
            else:
                self.compare_property(
                    prev_props[prev_keys[key]], curr_props[curr_keys[key]], prop_path, depth + 1, visited
                )

        self.compare_additional_properties(prev, curr, path, depth, visited)

    def compare_additional_properties(self, prev, curr, path, depth, visited) -> None:
        before = prev.get("additionalProperties")
        after = curr.get("additionalProperties")

        if isinstance(before, dict) and isinstance(after, dict):
            self.compare_property(before, after, _join(path, "*"), depth + 1, visited)
            return
        if before == after:
            return

        # Anything other than absent/true restricts the set of accepted keys.
        was_open = before is None or before is True
        is_open = after is None or after is True
        self.add(
            _join(path, "additionalProperties"),
            SchemaChangeType.CONSTRAINT_CHANGED,
            before if not isinstance(before, dict) else summarize_property(before),
            after if not isinstance(after, dict) else summarize_property(after),
            was_open and not is_open,
            "Additional properties "
            + ("restricted" if was_open and not is_open else "relaxed" if is_open else "changed"),
        )

    def compare_literal_schemas(self, prev: Any, curr: Any, path: str) -> None:
        """Boolean (or otherwise non-object) schema nodes on either side."""
        if _accepts_anything(prev) and _accepts_anything(curr):
            return
        if canonical_value(prev) == canonical_value(curr):
            return
        self.add(
            path,
            SchemaChangeType.TYPE_CHANGED,
            summarize_property(prev) if isinstance(prev, dict) else prev,
            summarize_property(curr) if isinstance(curr, dict) else curr,
            not _accepts_anything(curr),
            f"Schema changed from {json.dumps(prev, default=str)} to {json.dumps(curr, default=str)}",
        )

    def compare_property(
        self,
        prev: Dict[str, Any],
        curr: Dict[str, Any],
        path: str,
        depth: int,
        visited: FrozenSet[Tuple[int, int]],
    ) -> None:
        if not isinstance(prev, dict) or not isinstance(curr, dict):
            self.compare_literal_schemas(prev, curr, path)
            return
        if depth > self.max_depth:
            return
        pair = (id(prev), id(curr))
        if pair in visited:
            return
        visited = visited | {pair}

        prev_type = normalize_type(prev.get("type"))
        curr_type = normalize_type(curr.get("type"))
        if prev_type != curr_type:
            self.add(
                path,
                SchemaChangeType.TYPE_CHANGED,
                prev.get("type"),
                curr.get("type"),
                True,
                f'Type changed from "{prev_type}" to "{curr_type}"',
            )

        prev_format = prev.get("format")
        curr_format = curr.get("format")
        if prev_format != curr_format:
            # Only none -> defined counts as breaking. A switch between two
            # concrete formats is reported as non-breaking.
            self.add(
                path,
                SchemaChangeType.FORMAT_CHANGED,
                prev_format,
                curr_format,
                curr_format is not None and prev_format is None,
                f'Format changed from "{prev_format or "none"}" to "{curr_format or "none"}"',
            )

        if prev.get("description") != curr.get("description"):
            self.add(
                path,
                SchemaChangeType.DESCRIPTION_CHANGED,
                prev.get("description"),
                curr.get("description"),
                False,
                "Description changed",
            )

        self.compare_enum(prev, curr, path)

        for constraint in MIN_CONSTRAINTS + MAX_CONSTRAINTS + ("pattern",):
            self.compare_constraint(prev, curr, path, constraint)

        if prev.get("default") != curr.get("default"):
            self.add(
                path,
                SchemaChangeType.CONSTRAINT_CHANGED,
                prev.get("default"),
                curr.get("default"),
                False,
                f'Default changed from {_display(prev.get("default"))} to {_display(curr.get("default"))}',
            )

        if (
            prev.get("properties") is not None
            or curr.get("properties") is not None
            or prev.get("required")
            or curr.get("required")
            or "additionalProperties" in prev
            or "additionalProperties" in curr
        ):
            self.compare_members(prev, curr, path, depth, visited)

        self.compare_items(prev, curr, path, depth, visited)

    def compare_enum(self, prev: Dict[str, Any], curr: Dict[str, Any], path: str) -> None:
        prev_enum = prev.get("enum")
        curr_enum = curr.get("enum")
        if prev_enum is None and curr_enum is None:
            return

        prev_values = {_enum_key(v) for v in prev_enum or []}
        curr_values = {_enum_key(v) for v in curr_enum or []}
        if prev_enum is not None and curr_enum is not None and prev_values == curr_values:
            return

        if curr_enum is None:
            # Dropping the enum altogether accepts every previous value.
            self.add(path, SchemaChangeType.ENUM_CHANGED, prev_enum, None, False, "Enum constraint removed")
            return

        removed = prev_values - curr_values
        added = curr_values - prev_values
        self.add(
            path,
            SchemaChangeType.ENUM_CHANGED,
            prev_enum,
            curr_enum,
            bool(removed),
            f"Enum values changed: {len(removed)} removed, {len(added)} added",
        )

    def compare_constraint(
        self,
        prev: Dict[str, Any],
        curr: Dict[str, Any],
        path: str,
        constraint: str,
    ) -> None:
        before = prev.get(constraint)
        after = curr.get(constraint)
        if before == after:
            return

        if constraint in MIN_CONSTRAINTS:
            breaking = after is not None and (before is None or after > before)
        elif constraint in MAX_CONSTRAINTS:
            breaking = after is not None and (before is None or after < before)
        else:
            # Regex semantics are not introspected.
            breaking = after is not None

        self.add(
            path,
            SchemaChangeType.CONSTRAINT_CHANGED,
            before,
            after,
            breaking,
            f'Constraint "{constraint}" changed from {_display(before)} to {_display(after)}',
        )

    def compare_items(self, prev, curr, path, depth, visited) -> None:
        prev_items = prev.get("items")
        curr_items = curr.get("items")
        items_path = f"{path or ROOT_PATH}[]"

        if prev_items is not None and curr_items is not None:
            self.compare_property(prev_items, curr_items, items_path, depth + 1, visited)
        elif prev_items is None and curr_items is not None:
            self.add(
                items_path,
                SchemaChangeType.TYPE_CHANGED,
                "untyped array",
                summarize_property(curr_items),
                False,
                "Array items type added",
            )
        elif prev_items is not None and curr_items is None:
            self.add(
                items_path,
                SchemaChangeType.TYPE_CHANGED,
                summarize_property(prev_items),
                "untyped array",
                False,
                "Array items type removed",
            )


def _display(value: Any) -> str:
    if value is None:
        return "none"
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _format_value(value: Any) -> str:
    if value is None:
        return "<none>"
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def generate_visual_diff(changes: List[SchemaChange]) -> str:
    """Render changes grouped by path, ``!`` marking paths with breaking changes."""
    if not changes:
        return ""

    by_path: Dict[str, List[SchemaChange]] = {}
    for change in changes:
        by_path.setdefault(change.path, []).append(change)

    lines = ["Schema Diff:", ""]
    for path, path_changes in by_path.items():
        marker = "!" if any(c.breaking for c in path_changes) else "~"
        lines.append(f"{marker} {path}:")
        for change in path_changes:
            prefix = "  [BREAKING]" if change.breaking else "  [info]"
            lines.append(f"{prefix} {change.description}")
            if change.before is not None:
                lines.append(f"    - {_format_value(change.before)}")
            if change.after is not None:
                lines.append(f"    + {_format_value(change.after)}")

    breaking = sum(1 for c in changes if c.breaking)
    lines.append("")
    lines.append(f"Summary: {breaking} breaking, {len(changes) - breaking} non-breaking change(s)")
    return "\n".join(lines)


def compare_schemas(
    previous: Optional[Dict[str, Any]],
    current: Optional[Dict[str, Any]],
    max_depth: int = MAX_SCHEMA_DEPTH,
) -> SchemaComparisonResult:
    """Compare two tool input schemas.

    Fingerprints are compared first; the full walk only runs when they
    differ.

    Args:
        previous: Baseline schema (None if the tool had no schema).
        current: Current schema.
        max_depth: Nesting depth beyond which the walk stops.

    Returns:
        SchemaComparisonResult with classified changes and a visual diff.
    """
    previous_hash = compute_schema_hash(previous, max_depth)
    current_hash = compute_schema_hash(current, max_depth)

    if previous_hash == current_hash:
        return SchemaComparisonResult(
            identical=True,
            previous_hash=previous_hash,
            current_hash=current_hash,
        )

    walker = _Walker(max_depth)
    walker.compare_property(previous or {}, current or {}, "", 0, frozenset())

    return SchemaComparisonResult(
        identical=False,
        changes=walker.changes,
        previous_hash=previous_hash,
        current_hash=current_hash,
        visual_diff=generate_visual_diff(walker.changes),
    )
