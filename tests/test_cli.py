"""CLI tests: exit codes and store wiring, driven through CliRunner."""

import json

import pytest
import yaml
from click.testing import CliRunner

from mcpdrift.cli import main
from mcpdrift.core.golden import GoldenStore
from mcpdrift.core.mcp_contract import ContractStore


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "drift"


@pytest.fixture
def config_file(tmp_path, output_dir):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"output_dir": str(output_dir), "ci": {"fail_on": "breaking"}}))
    return path


@pytest.fixture
def run(config_file):
    runner = CliRunner()

    def invoke(*args):
        return runner.invoke(main, ["--config", str(config_file), *args])

    return invoke


def write_json(path, data):
    path.write_text(json.dumps(data))
    return path


def tool_result(payload):
    return {"content": [{"type": "text", "text": json.dumps(payload)}]}


class TestSchemaCommands:
    def test_hash(self, run, tmp_path, sample_schema):
        schema_file = write_json(tmp_path / "schema.json", sample_schema)

        result = run("schema", "hash", str(schema_file))

        assert result.exit_code == 0, result.output
        assert len(result.output.strip()) == 16

    def test_diff_identical(self, run, tmp_path, sample_schema):
        a = write_json(tmp_path / "a.json", sample_schema)
        b = write_json(tmp_path / "b.json", sample_schema)

        result = run("schema", "diff", str(a), str(b))

        assert result.exit_code == 0, result.output
        assert "identical" in result.output

    def test_diff_breaking_exits_1(self, run, tmp_path):
        a = write_json(tmp_path / "a.json", {"required": ["a"]})
        b = write_json(tmp_path / "b.json", {"required": ["a", "b"]})

        result = run("schema", "diff", str(a), str(b))

        assert result.exit_code == 1
        assert "[BREAKING]" in result.output

    def test_diff_non_breaking_exits_0(self, run, tmp_path):
        a = write_json(tmp_path / "a.json", {"minimum": 10})
        b = write_json(tmp_path / "b.json", {"minimum": 5})

        result = run("schema", "diff", str(a), str(b))

        assert result.exit_code == 0, result.output
        assert "info" in result.output

    def test_diff_tool_lists(self, run, tmp_path, sample_tools):
        a = write_json(tmp_path / "a.json", {"tools": sample_tools})
        b = write_json(tmp_path / "b.json", sample_tools[:2])

        result = run("schema", "diff", "--tools", str(a), str(b))

        assert result.exit_code == 1
        assert "read_file" in result.output

    def test_invalid_json_exits_2(self, run, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{nope")

        result = run("schema", "hash", str(bad))

        assert result.exit_code == 2


class TestContractCommands:
    def test_save_and_diff(self, run, tmp_path, output_dir, sample_tools):
        tools_file = write_json(tmp_path / "tools.json", sample_tools)

        result = run("contract", "save", "github", str(tools_file), "--endpoint", "npx:@test/server")
        assert result.exit_code == 0, result.output
        assert ContractStore.for_directory(output_dir).has_contract("github")

        result = run("contract", "diff", "github", str(tools_file))
        assert result.exit_code == 0, result.output
        assert "No interface changes" in result.output

        changed = json.loads(json.dumps(sample_tools))
        changed[0]["inputSchema"]["properties"]["repo"]["type"] = "integer"
        changed_file = write_json(tmp_path / "changed.json", changed)

        result = run("contract", "diff", "github", str(changed_file))
        assert result.exit_code == 1

    def test_diff_without_contract_exits_2(self, run, tmp_path, sample_tools):
        tools_file = write_json(tmp_path / "tools.json", sample_tools)
        result = run("contract", "diff", "unknown", str(tools_file))
        assert result.exit_code == 2

    def test_list(self, run, tmp_path, sample_tools):
        result = run("contract", "list")
        assert result.exit_code == 0
        assert "No contracts saved" in result.output

        tools_file = write_json(tmp_path / "tools.json", sample_tools)
        run("contract", "save", "github", str(tools_file))
        result = run("contract", "list")
        assert "github" in result.output


class TestGoldenCommands:
    def test_save_compare_cycle(self, run, tmp_path, output_dir):
        golden_file = write_json(tmp_path / "golden.json", tool_result({"a": 1}))
        result = run("golden", "save", "--tool", "search", "--response", str(golden_file), "--args", '{"q": "x"}')
        assert result.exit_code == 0, result.output

        store = GoldenStore.for_directory(output_dir)
        assert store.get_golden("search", {"q": "x"}) is not None

        same_shape = write_json(tmp_path / "same.json", tool_result({"a": 2}))
        result = run("golden", "compare", "--tool", "search", "--response", str(same_shape))
        assert result.exit_code == 0, result.output

        removed = write_json(tmp_path / "removed.json", tool_result({}))
        result = run("golden", "compare", "--tool", "search", "--response", str(removed))
        assert result.exit_code == 1

    def test_warning_passes_at_breaking_threshold(self, run, tmp_path):
        golden_file = write_json(tmp_path / "golden.json", tool_result({"a": 1}))
        run("golden", "save", "--tool", "search", "--response", str(golden_file))

        added = write_json(tmp_path / "added.json", tool_result({"a": 1, "b": 2}))
        result = run("golden", "compare", "--tool", "search", "--response", str(added))

        assert result.exit_code == 0, result.output
        assert "warning" in result.output

    def test_warning_fails_at_warning_threshold(self, tmp_path, output_dir):
        config = tmp_path / "strict.yaml"
        config.write_text(yaml.safe_dump({"output_dir": str(output_dir), "ci": {"fail_on": "warning"}}))
        runner = CliRunner()

        golden_file = write_json(tmp_path / "golden.json", tool_result({"a": 1}))
        runner.invoke(main, ["--config", str(config), "golden", "save", "--tool", "t", "--response", str(golden_file)])
        added = write_json(tmp_path / "added.json", tool_result({"a": 1, "b": 2}))
        result = runner.invoke(main, ["--config", str(config), "golden", "compare", "--tool", "t", "--response", str(added)])

        assert result.exit_code == 1

    def test_none_threshold_fails_only_on_drift(self, tmp_path, output_dir):
        config = tmp_path / "any.yaml"
        config.write_text(yaml.safe_dump({"output_dir": str(output_dir), "ci": {"fail_on": "none"}}))
        runner = CliRunner()

        def invoke(*args):
            return runner.invoke(main, ["--config", str(config), *args])

        golden_file = write_json(tmp_path / "golden.json", tool_result({"a": 1}))
        invoke("golden", "save", "--tool", "t", "--response", str(golden_file))
        same = write_json(tmp_path / "same.json", tool_result({"a": 2}))
        assert invoke("golden", "compare", "--tool", "t", "--response", str(same)).exit_code == 0

        moved = write_json(tmp_path / "moved.json", tool_result({"a": 1.5, "b": 2}))
        assert invoke("golden", "compare", "--tool", "t", "--response", str(moved)).exit_code == 1

    def test_save_options(self, run, tmp_path, output_dir):
        raw = tmp_path / "out.txt"
        raw.write_text("# Report\n\nok")

        result = run(
            "golden", "save", "--tool", "report", "--response", str(raw),
            "--mode", "semantic", "--allowed-drift", "$.a, $.b", "--no-normalize-uuids",
        )

        assert result.exit_code == 0, result.output
        golden = GoldenStore.for_directory(output_dir).get_golden("report")
        assert golden.output.content_type.value == "markdown"
        assert golden.tolerance.mode.value == "semantic"
        assert golden.tolerance.allowed_drift == ["$.a", "$.b"]
        assert golden.tolerance.normalize_uuids is False

    def test_save_error_response_exits_2(self, run, tmp_path):
        error = write_json(tmp_path / "err.json", {"content": [{"type": "text", "text": "boom"}], "isError": True})
        result = run("golden", "save", "--tool", "t", "--response", str(error))
        assert result.exit_code == 2

    def test_compare_without_golden_exits_2(self, run, tmp_path):
        current = write_json(tmp_path / "current.json", tool_result({}))
        result = run("golden", "compare", "--tool", "missing", "--response", str(current))
        assert result.exit_code == 2

    def test_corrupted_store_exits_2(self, run, tmp_path, output_dir):
        store_path = output_dir / "golden" / "golden.json"
        store_path.parent.mkdir(parents=True)
        store_path.write_text("{broken")

        result = run("golden", "list")

        assert result.exit_code == 2
        assert "Invalid store file" in result.output

    def test_list_and_delete(self, run, tmp_path):
        result = run("golden", "list")
        assert "No golden outputs saved" in result.output

        golden_file = write_json(tmp_path / "golden.json", tool_result({"a": 1}))
        run("golden", "save", "--tool", "search", "--response", str(golden_file))
        assert "search" in run("golden", "list").output

        result = run("golden", "delete", "--tool", "search")
        assert result.exit_code == 0
        assert "Deleted" in result.output
        assert "No golden output found" in run("golden", "delete", "--tool", "search").output


class TestCheckCommand:
    def test_check_combines_schema_and_output(self, run, tmp_path, sample_tools):
        tools_file = write_json(tmp_path / "tools.json", sample_tools)
        run("contract", "save", "github", str(tools_file))
        golden_file = write_json(tmp_path / "golden.json", tool_result({"items": []}))
        run("golden", "save", "--tool", "list_issues", "--response", str(golden_file), "--args", '{"repo": "x"}')

        responses = write_json(
            tmp_path / "responses.json",
            [{"tool": "list_issues", "args": {"repo": "x"}, "result": tool_result({"items": []})}],
        )

        result = run("check", "--server", "github", "--tools", str(tools_file), "--responses", str(responses))

        assert result.exit_code == 0, result.output
        assert "tool(s) checked" in result.output

    def test_missing_recording_is_a_breaking_failure(self, run, tmp_path):
        golden_file = write_json(tmp_path / "golden.json", tool_result({"a": 1}))
        run("golden", "save", "--tool", "search", "--response", str(golden_file))
        responses = write_json(tmp_path / "responses.json", [])

        result = run("check", "--responses", str(responses))

        assert result.exit_code == 1
        assert "Tool call failed" in result.output

    def test_invalid_config_exits_2(self, tmp_path):
        config = tmp_path / "config.yaml"
        config.write_text("ci:\n  fail_on: sometimes\n")

        result = CliRunner().invoke(main, ["--config", str(config), "golden", "list"])

        assert result.exit_code == 2

    @pytest.mark.parametrize(
        "recording",
        [
            [{"args": {}}],
            [{"tool": "search", "args": {}}],
            ["search"],
            [{"tool": "search", "result": {"content": "not a list"}}],
        ],
    )
    def test_malformed_recording_exits_2(self, run, tmp_path, recording):
        responses = write_json(tmp_path / "responses.json", recording)

        result = run("check", "--responses", str(responses))

        assert result.exit_code == 2
        assert isinstance(result.exception, SystemExit)
