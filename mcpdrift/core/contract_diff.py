"""Contract diff engine for detecting MCP server interface drift.

Compares a saved contract snapshot against the current tool definitions
from an MCP server. Detects:
  - REMOVED tools (breaking)
  - ADDED tools (informational)
  - SCHEMA_CHANGED tools, classified change by change by the schema differ
  - Tool description changes (informational)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Dict, Any, Optional
import logging

from mcpdrift.core.mcp_contract import MCPContract, ToolSchema
from mcpdrift.core.normalize import MAX_SCHEMA_DEPTH
from mcpdrift.core.schema_diff import SchemaComparisonResult, compare_schemas
from mcpdrift.core.severity import DriftSeverity

logger = logging.getLogger(__name__)


class ContractDriftStatus(Enum):
    """Result of comparing current tools against a contract snapshot.

    Two states:
    - PASSED: Interface matches snapshot (no breaking changes).
    - CONTRACT_DRIFT: Breaking changes detected.
    """

    PASSED = "passed"
    CONTRACT_DRIFT = "contract_drift"


class ToolChangeKind(Enum):
    """Kind of change detected for a tool."""

    REMOVED = "removed"  # Tool no longer exists (breaking)
    ADDED = "added"  # New tool available (informational)
    SCHEMA_CHANGED = "schema_changed"  # Breaking iff any schema change is
    DESCRIPTION_CHANGED = "description_changed"  # Informational


@dataclass
class ToolChange:
    """A single change detected for one tool."""

    tool_name: str
    kind: ToolChangeKind
    detail: str
    schema_result: Optional[SchemaComparisonResult] = None

    @property
    def is_breaking(self) -> bool:
        if self.kind == ToolChangeKind.REMOVED:
            return True
        if self.kind == ToolChangeKind.SCHEMA_CHANGED and self.schema_result:
            return self.schema_result.has_breaking_changes
        return False

    @property
    def severity(self) -> DriftSeverity:
        return DriftSeverity.BREAKING if self.is_breaking else DriftSeverity.INFO


@dataclass
class ContractDiff:
    """Complete diff between a contract snapshot and current server tools."""

    server_name: str
    changes: List[ToolChange] = field(default_factory=list)
    snapshot_tool_count: int = 0
    current_tool_count: int = 0

    @property
    def has_breaking_changes(self) -> bool:
        return any(c.is_breaking for c in self.changes)

    @property
    def status(self) -> ContractDriftStatus:
        if self.has_breaking_changes:
            return ContractDriftStatus.CONTRACT_DRIFT
        return ContractDriftStatus.PASSED

    @property
    def severity(self) -> DriftSeverity:
        return DriftSeverity.combine(*(c.severity for c in self.changes))

    @property
    def breaking_changes(self) -> List[ToolChange]:
        return [c for c in self.changes if c.is_breaking]

    @property
    def informational_changes(self) -> List[ToolChange]:
        return [c for c in self.changes if not c.is_breaking]

    def schema_result(self, tool_name: str) -> Optional[SchemaComparisonResult]:
        for change in self.changes:
            if change.tool_name == tool_name and change.schema_result is not None:
                return change.schema_result
        return None

    def summary(self) -> str:
        if not self.changes:
            return "No changes"

        breaking = len(self.breaking_changes)
        info = len(self.informational_changes)
        parts = []
        if breaking:
            parts.append(f"{breaking} breaking change(s)")
        if info:
            parts.append(f"{info} informational change(s)")
        return ", ".join(parts)


def _diff_tool(
    tool_name: str,
    snapshot: ToolSchema,
    current: ToolSchema,
    max_depth: int,
) -> List[ToolChange]:
    """Compare two versions of the same tool."""
    changes: List[ToolChange] = []

    if snapshot.description != current.description:
        changes.append(ToolChange(
            tool_name=tool_name,
            kind=ToolChangeKind.DESCRIPTION_CHANGED,
            detail=(
                f"description changed from "
                f"'{snapshot.description[:60]}' to '{current.description[:60]}'"
            ),
        ))

    result = compare_schemas(snapshot.inputSchema, current.inputSchema, max_depth)
    if not result.identical:
        breaking = len(result.breaking_changes)
        changes.append(ToolChange(
            tool_name=tool_name,
            kind=ToolChangeKind.SCHEMA_CHANGED,
            detail=(
                f"input schema changed ({breaking} breaking, "
                f"{len(result.changes) - breaking} non-breaking)"
            ),
            schema_result=result,
        ))

    return changes


def diff_tool_lists(
    previous_tools: List[Dict[str, Any]],
    current_tools: List[Dict[str, Any]],
    server_name: str = "",
    max_depth: int = MAX_SCHEMA_DEPTH,
) -> ContractDiff:
    """Compare two raw tools/list responses.

    Args:
        previous_tools: Baseline tool definitions.
        current_tools: Current tool definitions.
        server_name: Label for the resulting diff.
        max_depth: Schema depth limit passed to the schema differ.

    Returns:
        ContractDiff with all detected changes.
    """
    previous = {t["name"]: ToolSchema.model_validate(t) for t in previous_tools}
    current = {t["name"]: ToolSchema.model_validate(t) for t in current_tools}
    return _diff_schemas(server_name, previous, current, max_depth)


def diff_contract(
    contract: MCPContract,
    current_tools: List[Dict[str, Any]],
    max_depth: int = MAX_SCHEMA_DEPTH,
) -> ContractDiff:
    """Compare a saved contract against current tool definitions.

    Args:
        contract: The saved contract snapshot.
        current_tools: Current tool definitions from the MCP server.
        max_depth: Schema depth limit passed to the schema differ.

    Returns:
        ContractDiff with all detected changes.
    """
    current = {t["name"]: ToolSchema.model_validate(t) for t in current_tools}
    snapshot = {t.name: t for t in contract.tools}
    return _diff_schemas(contract.metadata.server_name, snapshot, current, max_depth)


def _diff_schemas(
    server_name: str,
    snapshot: Dict[str, ToolSchema],
    current: Dict[str, ToolSchema],
    max_depth: int,
) -> ContractDiff:
    changes: List[ToolChange] = []

    for name in snapshot:
        if name not in current:
            changes.append(ToolChange(
                tool_name=name,
                kind=ToolChangeKind.REMOVED,
                detail=f"tool '{name}' no longer available",
            ))

    for name in current:
        if name not in snapshot:
            changes.append(ToolChange(
                tool_name=name,
                kind=ToolChangeKind.ADDED,
                detail=f"new tool '{name}' available",
            ))

    for name in snapshot:
        if name in current:
            changes.extend(_diff_tool(name, snapshot[name], current[name], max_depth))

    logger.debug(f"Contract diff for {server_name or 'server'}: {len(changes)} change(s)")

    return ContractDiff(
        server_name=server_name,
        changes=changes,
        snapshot_tool_count=len(snapshot),
        current_tool_count=len(current),
    )
