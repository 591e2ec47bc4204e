"""Golden output storage and capture.

Golden outputs are trusted samples of a tool's response. When checking a
server, the current response for the same tool and arguments is compared
against the golden one to detect output drift that schema comparison misses
(renamed fields, changed categories, different formats).

Storage format:
  .mcpdrift/golden/golden.json
    {"version": 1, "outputs": [...], "lastUpdated": "<ISO-8601>"}

Goldens are keyed by (tool name, serialized input arguments); capturing again
for the same key replaces the entry in place.

The store is load-modify-write on a single file. Concurrent writers lose
updates, so callers running tools in parallel must serialize saves.
"""

import hashlib
import json
import logging
import re
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from mcpdrift.core.errors import StoreCorruptedError, StoreVersionMismatchError
from mcpdrift.core.types import ToolCallResult

logger = logging.getLogger(__name__)

GOLDEN_STORE_VERSION = 1
DEFAULT_GOLDEN_DIR = Path(".mcpdrift") / "golden"
DEFAULT_GOLDEN_FILE = "golden.json"

# Structure inference stops here; deeper values are recorded as "any".
MAX_STRUCTURE_DEPTH = 10

# Number of leading array elements kept when flattening for semantic mode.
KEY_VALUE_ARRAY_SAMPLE = 3

_MARKDOWN_PATTERN = re.compile(r"^#|^\*{1,3}[^*]|\[.*\]\(.*\)|^```")


class ComparisonMode(str, Enum):
    """How a current output is compared against its golden."""

    EXACT = "exact"
    STRUCTURAL = "structural"
    SEMANTIC = "semantic"


class ContentType(str, Enum):
    """Content type detected once, at capture time."""

    JSON = "json"
    MARKDOWN = "markdown"
    TEXT = "text"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GoldenOutputContent(_CamelModel):
    """The captured output plus what was derived from it."""

    raw: str
    content_type: ContentType
    content_hash: str
    structure: Optional[Dict[str, Any]] = None
    key_values: Optional[Dict[str, Any]] = None


class GoldenTolerance(_CamelModel):
    """How much drift a comparison tolerates."""

    mode: ComparisonMode = ComparisonMode.STRUCTURAL
    allowed_drift: List[str] = Field(default_factory=list)
    normalize_timestamps: bool = True
    normalize_uuids: bool = True


class GoldenOutput(_CamelModel):
    """A captured golden output for one tool call."""

    tool_name: str
    captured_at: datetime
    input_args: Dict[str, Any] = Field(default_factory=dict)
    output: GoldenOutputContent
    tolerance: GoldenTolerance = Field(default_factory=GoldenTolerance)
    description: Optional[str] = None
    version: int = GOLDEN_STORE_VERSION


class GoldenStoreFile(_CamelModel):
    """On-disk layout of the golden store."""

    version: int = GOLDEN_STORE_VERSION
    outputs: List[GoldenOutput] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def json_type(value: Any) -> str:
    """JSON type name of a parsed value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def detect_content_type(raw: str) -> ContentType:
    """Classify raw output as JSON, Markdown or plain text."""
    trimmed = raw.strip()

    if (trimmed.startswith("{") and trimmed.endswith("}")) or (
        trimmed.startswith("[") and trimmed.endswith("]")
    ):
        try:
            json.loads(trimmed)
            return ContentType.JSON
        except (ValueError, RecursionError):
            pass

    if _MARKDOWN_PATTERN.search(trimmed):
        return ContentType.MARKDOWN

    return ContentType.TEXT


def compute_content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


def infer_json_structure(value: Any, depth: int = 0) -> Dict[str, Any]:
    """Describe the types in a JSON value, ignoring the values themselves.

    Arrays are described by their first element.
    """
    if depth > MAX_STRUCTURE_DEPTH:
        return {"type": "any"}

    if isinstance(value, list):
        if not value:
            return {"type": "array", "items": {"type": "any"}}
        return {"type": "array", "items": infer_json_structure(value[0], depth + 1)}
    if isinstance(value, dict):
        return {
            "type": "object",
            "properties": {k: infer_json_structure(v, depth + 1) for k, v in value.items()},
        }
    return {"type": json_type(value)}


def extract_key_values(
    value: Any,
    prefix: str = "",
    result: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Flatten a JSON value into a path -> primitive map.

    Objects flatten to dotted paths. Arrays contribute a ``.length`` entry and
    their first few elements (``items[0].name``, ...).
    """
    if result is None:
        result = {}

    if isinstance(value, list):
        result[f"{prefix}.length" if prefix else "length"] = len(value)
        for i, item in enumerate(value[:KEY_VALUE_ARRAY_SAMPLE]):
            extract_key_values(item, f"{prefix}[{i}]" if prefix else f"[{i}]", result)
        return result

    if isinstance(value, dict):
        for key, child in value.items():
            extract_key_values(child, f"{prefix}.{key}" if prefix else key, result)
        return result

    if prefix:
        result[prefix] = value
    return result


def args_key(input_args: Dict[str, Any]) -> str:
    """Serialization of input arguments used as part of the golden key."""
    return json.dumps(input_args, sort_keys=True, default=str)


def create_golden_output(
    tool_name: str,
    input_args: Dict[str, Any],
    response: ToolCallResult,
    mode: ComparisonMode = ComparisonMode.STRUCTURAL,
    allowed_drift: Optional[List[str]] = None,
    normalize_timestamps: bool = True,
    normalize_uuids: bool = True,
    description: Optional[str] = None,
) -> GoldenOutput:
    """Capture a golden output from a tool call result.

    Args:
        tool_name: Tool that produced the response.
        input_args: Arguments the tool was called with.
        response: The tool call result; its first text block is captured.
        mode: Comparison mode to use against this golden.
        allowed_drift: Path patterns whose differences are tolerated.
        normalize_timestamps: Redact timestamps before comparing.
        normalize_uuids: Redact UUIDs before comparing.
        description: Optional note about what this golden represents.

    Returns:
        A new GoldenOutput (not yet saved).
    """
    raw = response.text
    content_type = detect_content_type(raw)

    structure = None
    key_values = None
    if content_type == ContentType.JSON:
        parsed = json.loads(raw)
        structure = infer_json_structure(parsed)
        key_values = extract_key_values(parsed)

    return GoldenOutput(
        tool_name=tool_name,
        captured_at=datetime.now(timezone.utc),
        input_args=input_args,
        output=GoldenOutputContent(
            raw=raw,
            content_type=content_type,
            content_hash=compute_content_hash(raw),
            structure=structure,
            key_values=key_values,
        ),
        tolerance=GoldenTolerance(
            mode=ComparisonMode(mode),
            allowed_drift=list(allowed_drift or []),
            normalize_timestamps=normalize_timestamps,
            normalize_uuids=normalize_uuids,
        ),
        description=description,
    )


class GoldenStore:
    """Manages the golden output store file."""

    def __init__(self, store_path: Optional[Union[str, Path]] = None):
        """
        Initialize golden store.

        Args:
            store_path: Path to the store file
                (default: .mcpdrift/golden/golden.json under the current dir)
        """
        self.store_path = Path(store_path) if store_path else DEFAULT_GOLDEN_DIR / DEFAULT_GOLDEN_FILE

    @classmethod
    def for_directory(cls, output_dir: Union[str, Path]) -> "GoldenStore":
        """Store file inside a configured output directory."""
        return cls(Path(output_dir) / "golden" / DEFAULT_GOLDEN_FILE)

    def load(self) -> GoldenStoreFile:
        """
        Load the whole store.

        A missing file is an empty store.

        Raises:
            StoreCorruptedError: If the file is not valid JSON or not a store.
            StoreVersionMismatchError: If the file was written by a newer version.
        """
        if not self.store_path.exists():
            return GoldenStoreFile()

        try:
            data = json.loads(self.store_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StoreCorruptedError(self.store_path, str(e)) from e

        if not isinstance(data, dict):
            raise StoreCorruptedError(self.store_path, "expected a JSON object")

        version = data.get("version", GOLDEN_STORE_VERSION)
        if not isinstance(version, int) or isinstance(version, bool):
            raise StoreCorruptedError(self.store_path, f"version must be an integer, got {version!r}")
        if version > GOLDEN_STORE_VERSION:
            raise StoreVersionMismatchError(self.store_path, version, GOLDEN_STORE_VERSION)

        try:
            return GoldenStoreFile.model_validate(data)
        except ValidationError as e:
            raise StoreCorruptedError(self.store_path, str(e)) from e

    def save(self, store: GoldenStoreFile) -> Path:
        """Write the whole store, stamping lastUpdated."""
        self.store_path.parent.mkdir(parents=True, exist_ok=True)
        store.last_updated = datetime.now(timezone.utc)
        self.store_path.write_text(
            store.model_dump_json(by_alias=True, indent=2, exclude_none=True),
            encoding="utf-8",
        )
        return self.store_path

    def save_golden(self, golden: GoldenOutput) -> Path:
        """Add a golden output, replacing any existing one for the same tool and args."""
        store = self.load()
        key = args_key(golden.input_args)

        for i, existing in enumerate(store.outputs):
            if existing.tool_name == golden.tool_name and args_key(existing.input_args) == key:
                store.outputs[i] = golden
                logger.info(f"Replaced golden output for {golden.tool_name}")
                break
        else:
            store.outputs.append(golden)
            logger.info(f"Saved golden output for {golden.tool_name}")

        return self.save(store)

    def get_golden(
        self,
        tool_name: str,
        input_args: Optional[Dict[str, Any]] = None,
    ) -> Optional[GoldenOutput]:
        """
        Look up a golden output.

        Args:
            tool_name: Tool name
            input_args: Exact arguments to match; without them the first
                golden for the tool is returned

        Returns:
            GoldenOutput or None if not found
        """
        key = args_key(input_args) if input_args is not None else None
        for golden in self.load().outputs:
            if golden.tool_name != tool_name:
                continue
            if key is None or args_key(golden.input_args) == key:
                return golden
        return None

    def has_golden(self, tool_name: str) -> bool:
        return self.get_golden(tool_name) is not None

    def list_golden(self) -> List[GoldenOutput]:
        """All golden outputs in the store."""
        return self.load().outputs

    def delete_golden(
        self,
        tool_name: str,
        input_args: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Delete goldens for a tool (only the matching args, if given).

        Returns:
            True if anything was deleted, False if nothing matched
        """
        store = self.load()
        key = args_key(input_args) if input_args is not None else None
        initial = len(store.outputs)

        store.outputs = [
            g
            for g in store.outputs
            if not (g.tool_name == tool_name and (key is None or args_key(g.input_args) == key))
        ]

        if len(store.outputs) < initial:
            self.save(store)
            logger.info(f"Deleted {initial - len(store.outputs)} golden output(s) for {tool_name}")
            return True
        return False
