"""MCP contract storage and management.

MCP contracts are snapshots of a server's ``tools/list`` response: every
tool's name, description and input schema. They are the schema baseline that
later runs are diffed against.

Storage format:
  .mcpdrift/contracts/
    <server-name>.contract.json    # The tool schema snapshot
"""

import hashlib
import json
from pathlib import Path
from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, ValidationError
import logging

from mcpdrift.core.errors import StoreCorruptedError
from mcpdrift.core.fingerprint import compute_schema_hash

logger = logging.getLogger(__name__)


class ToolSchema(BaseModel):
    """Schema for a single MCP tool."""

    name: str
    description: str = ""
    inputSchema: Dict[str, Any] = Field(default_factory=dict)


class ContractMetadata(BaseModel):
    """Metadata about a contract snapshot."""

    server_name: str
    endpoint: str
    snapshot_at: datetime
    tool_count: int = 0
    notes: Optional[str] = None
    schema_hash: str = ""  # Combined fingerprint of all tool schemas
    tool_hashes: Dict[str, str] = Field(default_factory=dict)


class MCPContract(BaseModel):
    """A contract snapshot from an MCP server."""

    metadata: ContractMetadata
    tools: List[ToolSchema] = Field(default_factory=list)

    @property
    def tool_names(self) -> List[str]:
        return [t.name for t in self.tools]

    def get_tool(self, name: str) -> Optional[ToolSchema]:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None


def hash_tool_schemas(tools: List[ToolSchema]) -> Dict[str, str]:
    """Per-tool schema fingerprints, keyed by tool name."""
    return {t.name: compute_schema_hash(t.inputSchema) for t in tools}


def combine_hashes(tool_hashes: Dict[str, str]) -> str:
    """Order-independent digest over all per-tool fingerprints."""
    canonical = json.dumps(sorted(tool_hashes.items()))
    return hashlib.sha256(canonical.encode()).hexdigest()[:16]


class ContractStore:
    """Manages MCP contract storage and retrieval."""

    def __init__(self, base_path: Optional[Path] = None):
        self.base_path = base_path or Path(".")
        self.contracts_dir = self.base_path / ".mcpdrift" / "contracts"

    @classmethod
    def for_directory(cls, output_dir) -> "ContractStore":
        """Store rooted at a configured output directory instead of ./.mcpdrift."""
        store = cls()
        store.contracts_dir = Path(output_dir) / "contracts"
        return store

    def _safe_name(self, server_name: str) -> str:
        return "".join(c if c.isalnum() or c in "_-" else "_" for c in server_name)

    def _get_contract_path(self, server_name: str) -> Path:
        return self.contracts_dir / f"{self._safe_name(server_name)}.contract.json"

    def save_contract(
        self,
        server_name: str,
        endpoint: str,
        tools: List[Dict[str, Any]],
        notes: Optional[str] = None,
    ) -> Path:
        """Save a tool schema snapshot as a contract.

        Args:
            server_name: Human-readable server identifier.
            endpoint: The MCP server endpoint used for discovery.
            tools: Raw tool definitions from a tools/list response.
            notes: Optional notes about this snapshot.

        Returns:
            Path to saved contract file.
        """
        self.contracts_dir.mkdir(parents=True, exist_ok=True)

        tool_schemas = [ToolSchema.model_validate(t) for t in tools]
        tool_hashes = hash_tool_schemas(tool_schemas)

        contract = MCPContract(
            metadata=ContractMetadata(
                server_name=server_name,
                endpoint=endpoint,
                snapshot_at=datetime.now(),
                tool_count=len(tool_schemas),
                notes=notes,
                schema_hash=combine_hashes(tool_hashes),
                tool_hashes=tool_hashes,
            ),
            tools=tool_schemas,
        )

        contract_path = self._get_contract_path(server_name)
        with open(contract_path, "w") as f:
            f.write(contract.model_dump_json(indent=2))

        logger.info(f"Saved contract: {contract_path}")
        return contract_path

    def load_contract(self, server_name: str) -> Optional[MCPContract]:
        """Load a contract by server name.

        Raises:
            StoreCorruptedError: If the contract file cannot be parsed.
        """
        contract_path = self._get_contract_path(server_name)
        if not contract_path.exists():
            return None

        try:
            with open(contract_path) as f:
                data = json.load(f)
            return MCPContract.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise StoreCorruptedError(contract_path, str(e)) from e

    def has_contract(self, server_name: str) -> bool:
        return self._get_contract_path(server_name).exists()

    def list_contracts(self) -> List[ContractMetadata]:
        """List all saved contracts, skipping unreadable files."""
        if not self.contracts_dir.exists():
            return []

        results = []
        for path in sorted(self.contracts_dir.glob("*.contract.json")):
            try:
                with open(path) as f:
                    data = json.load(f)
                results.append(ContractMetadata.model_validate(data["metadata"]))
            except (OSError, KeyError, json.JSONDecodeError, ValidationError) as e:
                logger.warning(f"Failed to load contract {path}: {e}")

        return results

    def delete_contract(self, server_name: str) -> bool:
        """Delete a contract."""
        contract_path = self._get_contract_path(server_name)
        if contract_path.exists():
            contract_path.unlink()
            return True
        return False
