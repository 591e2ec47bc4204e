"""Tests for MCP contract storage and contract-level diffing."""

import copy
import json
from datetime import datetime

import pytest

from mcpdrift.core.contract_diff import (
    ContractDriftStatus,
    ToolChange,
    ToolChangeKind,
    diff_contract,
    diff_tool_lists,
)
from mcpdrift.core.errors import StoreCorruptedError
from mcpdrift.core.mcp_contract import (
    ContractMetadata,
    ContractStore,
    MCPContract,
    combine_hashes,
    hash_tool_schemas,
    ToolSchema,
)
from mcpdrift.core.schema_diff import SchemaChangeType
from mcpdrift.core.severity import DriftSeverity


@pytest.fixture
def contract_store(tmp_path):
    """Create a ContractStore using a temp directory."""
    return ContractStore(base_path=tmp_path)


@pytest.fixture
def saved_contract(contract_store, sample_tools):
    """Create and save a sample contract."""
    contract_store.save_contract(
        server_name="test-server",
        endpoint="npx:@test/server",
        tools=sample_tools,
        notes="Test snapshot",
    )
    return contract_store.load_contract("test-server")


# ============================================================================
# ContractStore Tests
# ============================================================================


class TestContractStore:
    """Tests for MCP contract storage."""

    def test_save_and_load(self, contract_store, sample_tools):
        """Save a contract and load it back."""
        path = contract_store.save_contract(
            server_name="my-server",
            endpoint="http://localhost:8080",
            tools=sample_tools,
            notes="Initial snapshot",
        )

        assert path.exists()
        assert path.name == "my-server.contract.json"
        assert path.parent == contract_store.base_path / ".mcpdrift" / "contracts"

        loaded = contract_store.load_contract("my-server")
        assert loaded is not None
        assert loaded.metadata.server_name == "my-server"
        assert loaded.metadata.endpoint == "http://localhost:8080"
        assert loaded.metadata.tool_count == 3
        assert loaded.metadata.notes == "Initial snapshot"
        assert len(loaded.tools) == 3

    def test_tool_names(self, saved_contract):
        assert saved_contract.tool_names == ["create_issue", "list_issues", "read_file"]

    def test_get_tool(self, saved_contract):
        assert saved_contract.get_tool("read_file").inputSchema["required"] == ["path"]
        assert saved_contract.get_tool("missing") is None

    def test_per_tool_hashes(self, saved_contract, sample_tools):
        """Each tool's fingerprint is recorded in the metadata."""
        hashes = saved_contract.metadata.tool_hashes
        assert set(hashes) == {"create_issue", "list_issues", "read_file"}
        assert saved_contract.metadata.schema_hash == combine_hashes(hashes)

    def test_load_nonexistent(self, contract_store):
        assert contract_store.load_contract("does-not-exist") is None

    def test_load_corrupted(self, contract_store):
        contract_store.contracts_dir.mkdir(parents=True)
        (contract_store.contracts_dir / "bad.contract.json").write_text("{oops")

        with pytest.raises(StoreCorruptedError):
            contract_store.load_contract("bad")

    def test_has_contract(self, contract_store, sample_tools):
        assert not contract_store.has_contract("my-server")
        contract_store.save_contract("my-server", "http://localhost:8080", sample_tools)
        assert contract_store.has_contract("my-server")

    def test_list_contracts(self, contract_store, sample_tools):
        """List all saved contracts, skipping unreadable ones."""
        assert contract_store.list_contracts() == []

        contract_store.save_contract("server-a", "http://a", sample_tools[:1])
        contract_store.save_contract("server-b", "http://b", sample_tools[:2])
        (contract_store.contracts_dir / "broken.contract.json").write_text("not json")

        contracts = contract_store.list_contracts()
        assert [c.server_name for c in contracts] == ["server-a", "server-b"]

    def test_delete_contract(self, contract_store, sample_tools):
        contract_store.save_contract("my-server", "http://localhost", sample_tools)

        assert contract_store.delete_contract("my-server") is True
        assert not contract_store.has_contract("my-server")
        assert contract_store.delete_contract("my-server") is False

    def test_overwrite(self, contract_store, sample_tools):
        """Overwriting a contract replaces it."""
        contract_store.save_contract("my-server", "http://old", sample_tools[:1])
        contract_store.save_contract("my-server", "http://new", sample_tools[:2])

        loaded = contract_store.load_contract("my-server")
        assert loaded.metadata.endpoint == "http://new"
        assert loaded.metadata.tool_count == 2

    def test_schema_hash_changes_on_different_tools(self, contract_store, sample_tools):
        contract_store.save_contract("server-a", "http://a", sample_tools[:1])
        contract_store.save_contract("server-b", "http://b", sample_tools[:2])

        a = contract_store.load_contract("server-a")
        b = contract_store.load_contract("server-b")
        assert a.metadata.schema_hash != b.metadata.schema_hash

    def test_schema_hash_ignores_property_order(self, sample_tools):
        reordered = copy.deepcopy(sample_tools)
        props = reordered[0]["inputSchema"]["properties"]
        reordered[0]["inputSchema"]["properties"] = dict(reversed(list(props.items())))

        original = hash_tool_schemas([ToolSchema.model_validate(t) for t in sample_tools])
        shuffled = hash_tool_schemas([ToolSchema.model_validate(t) for t in reordered])
        assert combine_hashes(original) == combine_hashes(shuffled)

    def test_safe_name_sanitization(self, contract_store, sample_tools):
        """Server names with special chars are sanitized for filesystem."""
        path = contract_store.save_contract("my server/with:special chars!", "http://x", sample_tools[:1])
        assert path.name == "my_server_with_special_chars_.contract.json"
        assert contract_store.has_contract("my server/with:special chars!")

    def test_metadata_timestamp(self, contract_store, sample_tools):
        contract_store.save_contract("ts-test", "http://x", sample_tools[:1])
        loaded = contract_store.load_contract("ts-test")
        assert isinstance(loaded.metadata.snapshot_at, datetime)

    def test_for_directory(self, tmp_path):
        store = ContractStore.for_directory(tmp_path / "out")
        assert store.contracts_dir == tmp_path / "out" / "contracts"


# ============================================================================
# Contract Diff Tests
# ============================================================================


class TestContractDiff:
    """Tool-level diffing on top of the schema differ."""

    def test_no_changes(self, saved_contract, sample_tools):
        result = diff_contract(saved_contract, sample_tools)

        assert result.status == ContractDriftStatus.PASSED
        assert result.changes == []
        assert result.severity == DriftSeverity.NONE
        assert result.summary() == "No changes"

    def test_tool_removed(self, saved_contract, sample_tools):
        """Removing a tool is a breaking change."""
        current = [t for t in sample_tools if t["name"] != "read_file"]
        result = diff_contract(saved_contract, current)

        assert result.status == ContractDriftStatus.CONTRACT_DRIFT
        assert result.severity == DriftSeverity.BREAKING
        removed = [c for c in result.changes if c.kind == ToolChangeKind.REMOVED]
        assert [c.tool_name for c in removed] == ["read_file"]
        assert removed[0].is_breaking

    def test_tool_added(self, saved_contract, sample_tools):
        """Adding a tool is informational."""
        current = sample_tools + [
            {
                "name": "delete_file",
                "description": "Delete a file",
                "inputSchema": {"type": "object", "properties": {}},
            }
        ]
        result = diff_contract(saved_contract, current)

        assert result.status == ContractDriftStatus.PASSED
        assert result.severity == DriftSeverity.INFO
        assert len(result.changes) == 1
        assert result.changes[0].kind == ToolChangeKind.ADDED
        assert not result.changes[0].is_breaking

    def test_required_param_added(self, saved_contract, sample_tools):
        """A new required parameter breaks callers."""
        current = json.loads(json.dumps(sample_tools))
        current[0]["inputSchema"]["properties"]["owner"] = {"type": "string"}
        current[0]["inputSchema"]["required"].append("owner")

        result = diff_contract(saved_contract, current)

        assert result.status == ContractDriftStatus.CONTRACT_DRIFT
        schema_result = result.schema_result("create_issue")
        assert schema_result is not None
        added = [c for c in schema_result.changes if c.change_type == SchemaChangeType.PROPERTY_ADDED]
        assert added[0].path == "owner"
        assert added[0].breaking

    def test_optional_param_added(self, saved_contract, sample_tools):
        current = json.loads(json.dumps(sample_tools))
        current[0]["inputSchema"]["properties"]["labels"] = {"type": "array"}

        result = diff_contract(saved_contract, current)

        assert result.status == ContractDriftStatus.PASSED
        assert [c.kind for c in result.informational_changes] == [ToolChangeKind.SCHEMA_CHANGED]
        assert "0 breaking, 1 non-breaking" in result.changes[0].detail

    def test_param_removed(self, saved_contract, sample_tools):
        current = json.loads(json.dumps(sample_tools))
        del current[0]["inputSchema"]["properties"]["body"]

        result = diff_contract(saved_contract, current)

        assert result.status == ContractDriftStatus.CONTRACT_DRIFT
        changes = result.schema_result("create_issue").changes
        assert [(c.path, c.change_type) for c in changes] == [("body", SchemaChangeType.PROPERTY_REMOVED)]

    def test_enum_value_removed(self, saved_contract, sample_tools):
        current = json.loads(json.dumps(sample_tools))
        current[1]["inputSchema"]["properties"]["state"]["enum"] = ["open"]

        result = diff_contract(saved_contract, current)

        assert result.has_breaking_changes
        change = result.schema_result("list_issues").changes[0]
        assert change.path == "state"
        assert change.change_type == SchemaChangeType.ENUM_CHANGED

    def test_description_changed(self, saved_contract, sample_tools):
        """Tool description change is informational."""
        current = json.loads(json.dumps(sample_tools))
        current[0]["description"] = "Updated description for create_issue"

        result = diff_contract(saved_contract, current)

        assert result.status == ContractDriftStatus.PASSED
        assert [c.kind for c in result.changes] == [ToolChangeKind.DESCRIPTION_CHANGED]

    def test_multiple_changes(self, saved_contract, sample_tools):
        current = json.loads(json.dumps(sample_tools))
        current = [t for t in current if t["name"] != "read_file"]
        current[1]["inputSchema"]["required"].append("state")
        current.append(
            {
                "name": "merge_pr",
                "description": "Merge a pull request",
                "inputSchema": {"type": "object", "properties": {}},
            }
        )

        result = diff_contract(saved_contract, current)

        assert result.snapshot_tool_count == 3
        assert result.current_tool_count == 3
        kinds = {c.kind for c in result.changes}
        assert kinds == {ToolChangeKind.REMOVED, ToolChangeKind.ADDED, ToolChangeKind.SCHEMA_CHANGED}
        assert result.summary() == "2 breaking change(s), 1 informational change(s)"

    def test_duplicate_tool_names_in_current(self, saved_contract, sample_tools):
        """Duplicate tool names in current tools collapse to one entry."""
        result = diff_contract(saved_contract, sample_tools + [sample_tools[0]])
        assert result.status == ContractDriftStatus.PASSED

    def test_empty_snapshot_vs_tools(self, sample_tools):
        contract = MCPContract(
            metadata=ContractMetadata(server_name="empty", endpoint="http://x", snapshot_at=datetime.now()),
            tools=[],
        )
        result = diff_contract(contract, sample_tools)

        assert result.status == ContractDriftStatus.PASSED
        assert all(c.kind == ToolChangeKind.ADDED for c in result.changes)
        assert len(result.changes) == 3

    def test_all_tools_removed(self, saved_contract):
        result = diff_contract(saved_contract, [])

        assert result.status == ContractDriftStatus.CONTRACT_DRIFT
        assert len(result.changes) == 3

    def test_diff_tool_lists_without_contract(self, sample_tools):
        current = json.loads(json.dumps(sample_tools))
        current[2]["inputSchema"]["properties"]["path"]["type"] = "integer"

        result = diff_tool_lists(sample_tools, current, server_name="files")

        assert result.server_name == "files"
        assert result.has_breaking_changes
        change = result.schema_result("read_file").changes[0]
        assert change.path == "path"
        assert change.change_type == SchemaChangeType.TYPE_CHANGED

    def test_tool_change_severity(self):
        assert ToolChange("t", ToolChangeKind.REMOVED, "gone").severity == DriftSeverity.BREAKING
        assert ToolChange("t", ToolChangeKind.ADDED, "new").severity == DriftSeverity.INFO
