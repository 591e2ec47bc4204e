"""Golden output comparator.

Compares a tool's current output against its golden output in one of three
modes:

  exact       Post-redaction string equality. Any mismatch is one difference
              at the document root.
  structural  JSON shape only: types per path, added/removed keys, array
              length. Value changes under the same type are ignored, and a
              type mismatch stops the walk into that subtree.
  semantic    Both sides flattened to path -> primitive maps and compared
              value by value.

Non-JSON goldens (and, in semantic mode, anything that does not parse) fall
back to a line-by-line diff. Unparseable output never raises; it shows up as
a difference so one bad tool does not abort a batch.

Every difference is checked against the golden's ``allowedDrift`` patterns on
its own; severity is then derived from the differences that are not allowed.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Pattern

from mcpdrift.core.golden import (
    ComparisonMode,
    ContentType,
    GoldenOutput,
    GoldenStore,
    extract_key_values,
    json_type,
)
from mcpdrift.core.normalize import normalize_numeric, redact_output
from mcpdrift.core.severity import DriftSeverity
from mcpdrift.core.types import ToolCallResult

logger = logging.getLogger(__name__)

ROOT_PATH = "$"

# Max characters of a value kept on a difference for display.
DISPLAY_LIMIT = 50

_ROOT_ANCHOR = re.compile(r"^\$\.?")


class DifferenceType(str, Enum):
    """Kind of difference between golden and current output."""

    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"
    TYPE_CHANGED = "type_changed"
    VALUE_CHANGED = "value_changed"


@dataclass
class GoldenDifference:
    """A single difference between golden and current output."""

    type: DifferenceType
    path: str
    expected: Optional[Any] = None
    actual: Optional[Any] = None
    allowed: bool = False
    description: str = ""


@dataclass
class GoldenComparisonResult:
    """Result of comparing one current output against its golden."""

    tool_name: str
    passed: bool
    severity: DriftSeverity
    mode: ComparisonMode
    golden_captured_at: Optional[datetime]
    differences: List[GoldenDifference] = field(default_factory=list)
    summary: str = ""

    @property
    def disallowed_differences(self) -> List[GoldenDifference]:
        return [d for d in self.differences if not d.allowed]


class AllowedDriftMatcher:
    """Matches difference paths against allowed-drift patterns.

    ``*`` matches exactly one path segment (no dots). A leading ``$`` or
    ``$.`` is stripped from patterns and paths alike, so ``$.a.b`` and
    ``a.b`` are interchangeable.

    Build one per comparison; patterns are compiled once.
    """

    def __init__(self, patterns: Iterable[str]):
        self.patterns: List[Pattern[str]] = [self._compile(p) for p in patterns]

    @staticmethod
    def _strip_root(path: str) -> str:
        return _ROOT_ANCHOR.sub("", path, count=1)

    @classmethod
    def _compile(cls, pattern: str) -> Pattern[str]:
        parts = cls._strip_root(pattern).split("*")
        return re.compile("^" + "[^.]+".join(re.escape(part) for part in parts) + "$")

    def is_allowed(self, path: str) -> bool:
        normalized = self._strip_root(path)
        return any(p.match(normalized) for p in self.patterns)


def truncate_for_display(value: Any, max_length: int = DISPLAY_LIMIT) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


def _stringify(value: Any) -> str:
    """Render a flattened primitive the way it appears in JSON."""
    if isinstance(value, str):
        return value
    return json.dumps(normalize_numeric(value))


def compare_lines(golden: str, current: str, matcher: AllowedDriftMatcher) -> List[GoldenDifference]:
    """Line-by-line diff, addressed as ``line N``."""
    differences: List[GoldenDifference] = []
    golden_lines = golden.split("\n")
    current_lines = current.split("\n")

    for i in range(max(len(golden_lines), len(current_lines))):
        path = f"line {i + 1}"
        if i >= len(golden_lines):
            differences.append(
                GoldenDifference(
                    type=DifferenceType.ADDED,
                    path=path,
                    actual=truncate_for_display(current_lines[i]),
                    allowed=matcher.is_allowed(path),
                    description=f"Line {i + 1} was added",
                )
            )
        elif i >= len(current_lines):
            differences.append(
                GoldenDifference(
                    type=DifferenceType.REMOVED,
                    path=path,
                    expected=truncate_for_display(golden_lines[i]),
                    allowed=matcher.is_allowed(path),
                    description=f"Line {i + 1} was removed",
                )
            )
        elif golden_lines[i] != current_lines[i]:
            differences.append(
                GoldenDifference(
                    type=DifferenceType.CHANGED,
                    path=path,
                    expected=truncate_for_display(golden_lines[i]),
                    actual=truncate_for_display(current_lines[i]),
                    allowed=matcher.is_allowed(path),
                    description=f"Line {i + 1} changed",
                )
            )

    return differences


def _compare_shapes(
    golden: Any,
    current: Any,
    path: str,
    matcher: AllowedDriftMatcher,
    differences: List[GoldenDifference],
) -> None:
    golden_type = json_type(golden)
    current_type = json_type(current)

    if golden_type != current_type:
        differences.append(
            GoldenDifference(
                type=DifferenceType.TYPE_CHANGED,
                path=path,
                expected=golden_type,
                actual=current_type,
                allowed=matcher.is_allowed(path),
                description=f"Type changed from {golden_type} to {current_type}",
            )
        )
        return

    if golden_type == "object":
        keys = list(golden) + [k for k in current if k not in golden]
        for key in keys:
            child_path = f"{path}.{key}"
            if key not in golden:
                differences.append(
                    GoldenDifference(
                        type=DifferenceType.ADDED,
                        path=child_path,
                        actual=truncate_for_display(current[key]),
                        allowed=matcher.is_allowed(child_path),
                        description=f'Field "{key}" was added',
                    )
                )
            elif key not in current:
                differences.append(
                    GoldenDifference(
                        type=DifferenceType.REMOVED,
                        path=child_path,
                        expected=truncate_for_display(golden[key]),
                        allowed=matcher.is_allowed(child_path),
                        description=f'Field "{key}" was removed',
                    )
                )
            else:
                _compare_shapes(golden[key], current[key], child_path, matcher, differences)
        return

    if golden_type == "array":
        if len(golden) != len(current):
            length_path = f"{path}.length"
            differences.append(
                GoldenDifference(
                    type=DifferenceType.VALUE_CHANGED,
                    path=length_path,
                    expected=len(golden),
                    actual=len(current),
                    allowed=matcher.is_allowed(length_path),
                    description=f"Array length changed from {len(golden)} to {len(current)}",
                )
            )
        for i in range(min(len(golden), len(current))):
            _compare_shapes(golden[i], current[i], f"{path}[{i}]", matcher, differences)

    # Primitives of the same type: values are not compared in this mode.


def compare_structure(golden_raw: str, current_raw: str, matcher: AllowedDriftMatcher) -> List[GoldenDifference]:
    """Shape-only comparison of two JSON documents."""
    golden = json.loads(golden_raw)
    try:
        current = json.loads(current_raw)
    except (ValueError, RecursionError):
        logger.debug("Current output is not valid JSON; reporting a root type change")
        return [
            GoldenDifference(
                type=DifferenceType.TYPE_CHANGED,
                path=ROOT_PATH,
                expected="valid JSON",
                actual="invalid JSON",
                allowed=matcher.is_allowed(ROOT_PATH),
                description="Current output is not valid JSON",
            )
        ]

    differences: List[GoldenDifference] = []
    _compare_shapes(golden, current, ROOT_PATH, matcher, differences)
    return differences


def compare_semantic_values(
    golden_values: Dict[str, Any],
    current_values: Dict[str, Any],
    matcher: AllowedDriftMatcher,
) -> List[GoldenDifference]:
    """Compare two flattened key/value maps, values as strings."""
    differences: List[GoldenDifference] = []
    keys = list(golden_values) + [k for k in current_values if k not in golden_values]

    for key in keys:
        allowed = matcher.is_allowed(key)
        if key not in golden_values:
            differences.append(
                GoldenDifference(
                    type=DifferenceType.ADDED,
                    path=key,
                    actual=truncate_for_display(current_values[key]),
                    allowed=allowed,
                    description=f'Value "{key}" was added',
                )
            )
        elif key not in current_values:
            differences.append(
                GoldenDifference(
                    type=DifferenceType.REMOVED,
                    path=key,
                    expected=truncate_for_display(golden_values[key]),
                    allowed=allowed,
                    description=f'Value "{key}" was removed',
                )
            )
        elif golden_values[key] != current_values[key]:
            differences.append(
                GoldenDifference(
                    type=DifferenceType.VALUE_CHANGED,
                    path=key,
                    expected=truncate_for_display(golden_values[key]),
                    actual=truncate_for_display(current_values[key]),
                    allowed=allowed,
                    description=f'Value "{key}" changed',
                )
            )

    return differences


def _flatten_normalized(raw: str, golden: GoldenOutput) -> Dict[str, str]:
    """Flatten a JSON document and redact each value as text.

    Redaction runs per value rather than on the raw document because a
    redacted bare number would no longer parse.
    """
    tolerance = golden.tolerance
    return {
        key: redact_output(_stringify(value), tolerance.normalize_uuids, tolerance.normalize_timestamps)
        for key, value in extract_key_values(json.loads(raw)).items()
    }


def determine_severity(differences: List[GoldenDifference], mode: ComparisonMode) -> DriftSeverity:
    """Severity from the disallowed differences of one comparison."""
    if not differences:
        return DriftSeverity.NONE

    if mode == ComparisonMode.EXACT:
        return DriftSeverity.BREAKING

    if any(d.type in (DifferenceType.REMOVED, DifferenceType.TYPE_CHANGED) for d in differences):
        return DriftSeverity.BREAKING

    if any(d.type == DifferenceType.ADDED for d in differences):
        return DriftSeverity.WARNING

    return DriftSeverity.INFO


def summarize_differences(differences: List[GoldenDifference], mode: ComparisonMode) -> str:
    if not differences:
        return f"Output matches golden ({mode.value} mode)"

    added = sum(1 for d in differences if d.type == DifferenceType.ADDED)
    removed = sum(1 for d in differences if d.type == DifferenceType.REMOVED)
    changed = sum(
        1 for d in differences if d.type in (DifferenceType.CHANGED, DifferenceType.VALUE_CHANGED)
    )
    type_changed = sum(1 for d in differences if d.type == DifferenceType.TYPE_CHANGED)

    parts = []
    if added:
        parts.append(f"{added} added")
    if removed:
        parts.append(f"{removed} removed")
    if changed:
        parts.append(f"{changed} changed")
    if type_changed:
        parts.append(f"{type_changed} type changes")

    return f"{len(differences)} difference(s): {', '.join(parts)}"


def compare_output(golden: GoldenOutput, current_raw: str) -> GoldenComparisonResult:
    """
    Compare a current raw output against a golden output.

    Args:
        golden: The golden output with its tolerance settings
        current_raw: The current output text

    Returns:
        GoldenComparisonResult; never raises on malformed output
    """
    tolerance = golden.tolerance
    mode = ComparisonMode(tolerance.mode)
    matcher = AllowedDriftMatcher(tolerance.allowed_drift)

    golden_normalized = redact_output(golden.output.raw, tolerance.normalize_uuids, tolerance.normalize_timestamps)
    current_normalized = redact_output(current_raw, tolerance.normalize_uuids, tolerance.normalize_timestamps)
    is_json = golden.output.content_type == ContentType.JSON

    differences: List[GoldenDifference] = []

    if mode == ComparisonMode.EXACT:
        if golden_normalized != current_normalized:
            differences.append(
                GoldenDifference(
                    type=DifferenceType.CHANGED,
                    path=ROOT_PATH,
                    expected=truncate_for_display(golden_normalized),
                    actual=truncate_for_display(current_normalized),
                    allowed=matcher.is_allowed(ROOT_PATH),
                    description="Output content differs",
                )
            )

    elif mode == ComparisonMode.STRUCTURAL:
        if is_json:
            # Shapes only: value redaction cannot change a type.
            try:
                differences = compare_structure(golden.output.raw, current_raw, matcher)
            except (ValueError, RecursionError) as e:
                logger.debug(f"Structural comparison failed for {golden.tool_name} ({e!r}); using line diff")
                differences = compare_lines(golden_normalized, current_normalized, matcher)
        else:
            differences = compare_lines(golden_normalized, current_normalized, matcher)

    elif mode == ComparisonMode.SEMANTIC:
        try:
            if not is_json:
                raise ValueError(f"golden content is {golden.output.content_type.value}")
            differences = compare_semantic_values(
                _flatten_normalized(golden.output.raw, golden),
                _flatten_normalized(current_raw, golden),
                matcher,
            )
        except (ValueError, RecursionError) as e:
            # json.JSONDecodeError is a ValueError too.
            logger.debug(f"Semantic flattening failed for {golden.tool_name} ({e!r}); using line diff")
            differences = compare_lines(golden_normalized, current_normalized, matcher)

    disallowed = [d for d in differences if not d.allowed]
    return GoldenComparisonResult(
        tool_name=golden.tool_name,
        passed=not disallowed,
        severity=determine_severity(disallowed, mode),
        mode=mode,
        golden_captured_at=golden.captured_at,
        differences=differences,
        summary=summarize_differences(disallowed, mode),
    )


def compare_with_golden(golden: GoldenOutput, response: ToolCallResult) -> GoldenComparisonResult:
    """Compare a tool call result (its first text block) against a golden."""
    return compare_output(golden, response.text)


def tool_failure_result(
    golden: GoldenOutput, error: Exception, description: str = "Tool call failed"
) -> GoldenComparisonResult:
    """One breaking result standing in for a tool call (or its comparison) that raised."""
    return GoldenComparisonResult(
        tool_name=golden.tool_name,
        passed=False,
        severity=DriftSeverity.BREAKING,
        mode=ComparisonMode(golden.tolerance.mode),
        golden_captured_at=golden.captured_at,
        differences=[
            GoldenDifference(
                type=DifferenceType.CHANGED,
                path=ROOT_PATH,
                expected="successful response",
                actual=f"error: {error}",
                allowed=False,
                description=description,
            )
        ],
        summary=f"{description}: {error}",
    )


def compare_all_goldens(
    store: GoldenStore,
    get_tool_response: Callable[[str, Dict[str, Any]], ToolCallResult],
) -> List[GoldenComparisonResult]:
    """
    Compare every golden in a store against fresh tool responses.

    A tool call or comparison that raises is turned into a single breaking
    result; the remaining goldens are still compared.

    Args:
        store: The golden store
        get_tool_response: Calls a tool with arguments and returns its result

    Returns:
        One result per golden, in store order
    """
    results = []
    for golden in store.list_golden():
        try:
            response = get_tool_response(golden.tool_name, golden.input_args)
        except Exception as e:
            logger.warning(f"Tool call failed for {golden.tool_name}: {e}")
            results.append(tool_failure_result(golden, e))
            continue
        try:
            results.append(compare_with_golden(golden, response))
        except Exception as e:
            logger.warning(f"Comparison failed for {golden.tool_name}: {e!r}")
            results.append(tool_failure_result(golden, e, description="Comparison failed"))
    return results
