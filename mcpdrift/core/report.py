"""Result assembly: fold schema changes and output differences into one verdict.

The assembled reports are plain data for whatever renders them (console,
JSON, CI annotations). Nothing here knows about output formats.

Aggregation rule:
    breaking  any breaking schema change, or output severity breaking
    warning   output severity warning
    info      non-breaking schema changes, or output severity info
    none      nothing changed (or every output difference was allowed)
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from mcpdrift.core.comparator import GoldenComparisonResult, GoldenDifference
from mcpdrift.core.schema_diff import SchemaChange, SchemaComparisonResult, classify_schema_changes
from mcpdrift.core.severity import DriftSeverity, severity_meets_threshold


def classify_drift(
    schema_changes: Iterable[SchemaChange],
    output_severity: DriftSeverity = DriftSeverity.NONE,
) -> DriftSeverity:
    """Combined severity of schema changes and an output comparison."""
    return DriftSeverity.combine(classify_schema_changes(list(schema_changes)), output_severity)


def tally_differences(differences: Iterable[GoldenDifference]) -> Dict[str, int]:
    """Count disallowed output differences by type, in first-seen order."""
    counts: Counter = Counter(d.type.value for d in differences if not d.allowed)
    return dict(counts)


def summarize_drift(
    schema_changes: List[SchemaChange],
    differences: List[GoldenDifference],
) -> str:
    """One-line human readable summary of a tool's drift."""
    parts = []

    if schema_changes:
        breaking = sum(1 for c in schema_changes if c.breaking)
        parts.append(
            f"schema: {breaking} breaking, {len(schema_changes) - breaking} non-breaking change(s)"
        )

    tally = tally_differences(differences)
    allowed = sum(1 for d in differences if d.allowed)
    if tally or allowed:
        tally_text = ", ".join(f"{count} {kind}" for kind, count in tally.items()) or "no disallowed differences"
        if allowed:
            tally_text += f" ({allowed} allowed)"
        parts.append(f"output: {tally_text}")

    return "; ".join(parts) if parts else "No drift detected"


@dataclass
class DriftReport:
    """Schema and output drift for one tool."""

    tool_name: str
    severity: DriftSeverity
    summary: str
    schema_result: Optional[SchemaComparisonResult] = None
    golden_result: Optional[GoldenComparisonResult] = None

    @property
    def schema_changes(self) -> List[SchemaChange]:
        return self.schema_result.changes if self.schema_result else []

    @property
    def output_differences(self) -> List[GoldenDifference]:
        return self.golden_result.differences if self.golden_result else []

    @property
    def has_drift(self) -> bool:
        return self.severity > DriftSeverity.NONE


def assemble_report(
    tool_name: str,
    schema_result: Optional[SchemaComparisonResult] = None,
    golden_result: Optional[GoldenComparisonResult] = None,
) -> DriftReport:
    """
    Build the drift report for one tool.

    Args:
        tool_name: Tool the results belong to
        schema_result: Input schema comparison, if one was run
        golden_result: Golden output comparison, if one was run

    Returns:
        DriftReport with the combined severity and summary
    """
    changes = schema_result.changes if schema_result else []
    differences = golden_result.differences if golden_result else []
    output_severity = golden_result.severity if golden_result else DriftSeverity.NONE

    return DriftReport(
        tool_name=tool_name,
        severity=classify_drift(changes, output_severity),
        summary=summarize_drift(changes, differences),
        schema_result=schema_result,
        golden_result=golden_result,
    )


@dataclass
class BatchDriftReport:
    """Drift reports for every tool checked in one run."""

    reports: List[DriftReport] = field(default_factory=list)

    @property
    def severity(self) -> DriftSeverity:
        return DriftSeverity.combine(*(r.severity for r in self.reports))

    def counts(self) -> Dict[DriftSeverity, int]:
        counts = {severity: 0 for severity in DriftSeverity}
        for report in self.reports:
            counts[report.severity] += 1
        return counts

    def failed(self, threshold: DriftSeverity) -> bool:
        """Whether the run should fail CI at the given threshold.

        A run without drift never fails, whatever the threshold.
        """
        if self.severity is DriftSeverity.NONE:
            return False
        return severity_meets_threshold(self.severity, threshold)

    def summary(self) -> str:
        if not self.reports:
            return "No tools checked"
        counts = self.counts()
        parts = [
            f"{counts[s]} {s.value}"
            for s in sorted(DriftSeverity, reverse=True)
            if counts[s]
        ]
        return f"{len(self.reports)} tool(s) checked: {', '.join(parts)}"
