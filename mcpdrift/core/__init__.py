"""Contract drift engine: fingerprinting, schema diffing and golden output comparison."""

from mcpdrift.core.comparator import (
    AllowedDriftMatcher,
    DifferenceType,
    GoldenComparisonResult,
    GoldenDifference,
    compare_all_goldens,
    compare_output,
    compare_with_golden,
)
from mcpdrift.core.errors import GoldenStoreError, StoreCorruptedError, StoreVersionMismatchError
from mcpdrift.core.fingerprint import SchemaFingerprint, compute_schema_hash, fingerprint_schema
from mcpdrift.core.golden import ComparisonMode, ContentType, GoldenOutput, GoldenStore, create_golden_output
from mcpdrift.core.report import BatchDriftReport, DriftReport, assemble_report
from mcpdrift.core.schema_diff import SchemaChange, SchemaChangeType, SchemaComparisonResult, compare_schemas
from mcpdrift.core.severity import DriftSeverity
from mcpdrift.core.types import ContentBlock, ToolCallResult

__all__ = [
    "AllowedDriftMatcher",
    "BatchDriftReport",
    "ComparisonMode",
    "ContentBlock",
    "ContentType",
    "DifferenceType",
    "DriftReport",
    "DriftSeverity",
    "GoldenComparisonResult",
    "GoldenDifference",
    "GoldenOutput",
    "GoldenStore",
    "GoldenStoreError",
    "SchemaChange",
    "SchemaChangeType",
    "SchemaComparisonResult",
    "SchemaFingerprint",
    "StoreCorruptedError",
    "StoreVersionMismatchError",
    "ToolCallResult",
    "assemble_report",
    "compare_all_goldens",
    "compare_output",
    "compare_schemas",
    "compare_with_golden",
    "compute_schema_hash",
    "create_golden_output",
    "fingerprint_schema",
]
