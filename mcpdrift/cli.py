"""CLI entry point for mcpdrift.

Tool calls are made by an external MCP client; the commands here work from
recorded ``tools/list`` and ``tools/call`` results saved as JSON files.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from mcpdrift import __version__
from mcpdrift.core.comparator import compare_all_goldens, compare_with_golden
from mcpdrift.core.config import DriftConfig, load_config
from mcpdrift.core.contract_diff import ContractDiff, diff_contract, diff_tool_lists
from mcpdrift.core.errors import GoldenStoreError
from mcpdrift.core.fingerprint import fingerprint_schema
from mcpdrift.core.golden import ComparisonMode, GoldenStore, args_key, create_golden_output
from mcpdrift.core.mcp_contract import ContractStore
from mcpdrift.core.report import BatchDriftReport, DriftReport, assemble_report
from mcpdrift.core.schema_diff import compare_schemas
from mcpdrift.core.severity import DriftSeverity, severity_meets_threshold
from mcpdrift.core.types import ToolCallResult

console = Console()

EXIT_DRIFT = 1
EXIT_ERROR = 2

SEVERITY_STYLES = {
    DriftSeverity.NONE: "green",
    DriftSeverity.INFO: "blue",
    DriftSeverity.WARNING: "yellow",
    DriftSeverity.BREAKING: "bold red",
}


def _fail(message: str) -> None:
    console.print(f"[red]❌ {message}[/red]")
    raise SystemExit(EXIT_ERROR)


def _read_json(path: str) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        _fail(f"Invalid JSON in {path}: {e}")


def _load_response(path: str) -> ToolCallResult:
    """Read a recorded tool call result, or plain output text."""
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return ToolCallResult.from_text(text)
    if isinstance(data, dict) and "content" in data:
        return ToolCallResult.from_dict(data)
    return ToolCallResult.from_text(text)


def _load_tools(path: str) -> List[Dict[str, Any]]:
    """Read a tools/list response (either the list or {"tools": [...]})."""
    data = _read_json(path)
    if isinstance(data, dict):
        data = data.get("tools", [])
    if not isinstance(data, list):
        _fail(f"{path} does not contain a list of tools")
    return data


def _parse_args(args_json: Optional[str], default: Dict[str, Any]) -> Dict[str, Any]:
    if args_json is None:
        return dict(default)
    try:
        parsed = json.loads(args_json)
    except json.JSONDecodeError as e:
        _fail(f"Invalid JSON for --args: {e}")
    if not isinstance(parsed, dict):
        _fail("--args must be a JSON object")
    return parsed


def _severity_text(severity: DriftSeverity) -> str:
    style = SEVERITY_STYLES[severity]
    return f"[{style}]{severity.value}[/{style}]"


def _exit_for(config: DriftConfig, severity: DriftSeverity) -> None:
    fail_on = config.get_ci_config().fail_on
    if severity is not DriftSeverity.NONE and severity_meets_threshold(severity, fail_on):
        raise SystemExit(EXIT_DRIFT)


def _print_contract_diff(diff: ContractDiff) -> None:
    if not diff.changes:
        console.print("[green]✅ No interface changes[/green]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Tool", style="white")
    table.add_column("Change")
    table.add_column("Severity")
    table.add_column("Detail", style="dim")
    for change in diff.changes:
        table.add_row(change.tool_name, change.kind.value, _severity_text(change.severity), change.detail)
    console.print(table)

    for change in diff.changes:
        if change.schema_result and change.schema_result.visual_diff:
            console.print(f"\n[bold]{change.tool_name}[/bold]")
            console.print(change.schema_result.visual_diff, markup=False, highlight=False)

    console.print(f"\n{diff.summary()}")


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to config file (default: .mcpdrift/config.yaml)",
)
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[str], verbose: bool):
    """mcpdrift - Detect contract and output drift in MCP tool servers."""
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")
    if verbose:
        logging.getLogger("mcpdrift").setLevel(logging.DEBUG)

    try:
        config = load_config(Path(config_path) if config_path else None)
    except ValueError as e:
        _fail(f"Invalid config: {e}")
    ctx.obj = config


# ============================================================================
# schema
# ============================================================================


@main.group()
def schema():
    """Fingerprint and diff tool input schemas."""


@schema.command("hash")
@click.argument("schema_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--canonical", is_flag=True, help="Also print the canonical form")
@click.pass_obj
def schema_hash(config: DriftConfig, schema_file: str, canonical: bool):
    """Print the fingerprint of a schema file."""
    fingerprint = fingerprint_schema(_read_json(schema_file), config.get_schema_config().max_depth)
    console.print(fingerprint.digest)
    if canonical:
        console.print_json(data=fingerprint.canonical)


@schema.command("diff")
@click.argument("before", type=click.Path(exists=True, dir_okay=False))
@click.argument("after", type=click.Path(exists=True, dir_okay=False))
@click.option("--tools", is_flag=True, help="Inputs are tools/list responses, not single schemas")
@click.pass_obj
def schema_diff(config: DriftConfig, before: str, after: str, tools: bool):
    """Diff two schemas (or two tool lists) and classify the changes."""
    max_depth = config.get_schema_config().max_depth

    if tools:
        diff = diff_tool_lists(_load_tools(before), _load_tools(after), max_depth=max_depth)
        _print_contract_diff(diff)
        _exit_for(config, diff.severity)
        return

    result = compare_schemas(_read_json(before), _read_json(after), max_depth)
    if result.identical:
        console.print(f"[green]✅ Schemas identical ({result.current_hash})[/green]")
        return

    console.print(f"[dim]{result.previous_hash} → {result.current_hash}[/dim]\n")
    console.print(result.visual_diff, markup=False, highlight=False)
    console.print(f"\nSeverity: {_severity_text(result.severity)}")
    _exit_for(config, result.severity)


# ============================================================================
# contract
# ============================================================================


@main.group()
def contract():
    """Manage tools/list contract snapshots."""


@contract.command("save")
@click.argument("server")
@click.argument("tools_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--endpoint", default="", help="Endpoint the tools were discovered from")
@click.option("--notes", default=None, help="Notes about this snapshot")
@click.pass_obj
def contract_save(config: DriftConfig, server: str, tools_file: str, endpoint: str, notes: Optional[str]):
    """Save a tools/list response as the contract for SERVER."""
    store = ContractStore.for_directory(config.output_dir)
    path = store.save_contract(server, endpoint, _load_tools(tools_file), notes=notes)
    console.print(f"[green]✅ Contract saved: {path}[/green]")


@contract.command("diff")
@click.argument("server")
@click.argument("tools_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def contract_diff(config: DriftConfig, server: str, tools_file: str):
    """Diff a current tools/list response against SERVER's contract."""
    store = ContractStore.for_directory(config.output_dir)
    try:
        snapshot = store.load_contract(server)
    except GoldenStoreError as e:
        _fail(str(e))
    if snapshot is None:
        _fail(f"No contract saved for server: {server}")

    diff = diff_contract(snapshot, _load_tools(tools_file), config.get_schema_config().max_depth)
    _print_contract_diff(diff)
    _exit_for(config, diff.severity)


@contract.command("list")
@click.pass_obj
def contract_list(config: DriftConfig):
    """List saved contracts."""
    contracts = ContractStore.for_directory(config.output_dir).list_contracts()
    if not contracts:
        console.print("[yellow]⚠️  No contracts saved.[/yellow]")
        return

    table = Table(title="MCP Contracts", show_header=True, header_style="bold cyan")
    table.add_column("Server", style="white")
    table.add_column("Tools", justify="right")
    table.add_column("Schema hash", style="dim")
    table.add_column("Snapshot", style="dim")
    for meta in contracts:
        table.add_row(meta.server_name, str(meta.tool_count), meta.schema_hash, meta.snapshot_at.isoformat()[:19])
    console.print(table)


# ============================================================================
# golden
# ============================================================================


@main.group()
def golden():
    """Manage golden outputs for tool validation."""


@golden.command("save")
@click.option("--tool", required=True, help="Tool name the output belongs to")
@click.option("--response", "response_file", required=True, type=click.Path(exists=True, dir_okay=False),
              help="Recorded tool call result (JSON) or raw output text")
@click.option("--args", "args_json", default=None, help="JSON arguments the tool was called with")
@click.option("--mode", type=click.Choice([m.value for m in ComparisonMode]), default=None,
              help="Comparison mode")
@click.option("--allowed-drift", default=None, help="Comma-separated path patterns allowed to change")
@click.option("--normalize-timestamps/--no-normalize-timestamps", default=None)
@click.option("--normalize-uuids/--no-normalize-uuids", default=None)
@click.option("--description", default=None, help="Description of this golden output")
@click.pass_obj
def golden_save(
    config: DriftConfig,
    tool: str,
    response_file: str,
    args_json: Optional[str],
    mode: Optional[str],
    allowed_drift: Optional[str],
    normalize_timestamps: Optional[bool],
    normalize_uuids: Optional[bool],
    description: Optional[str],
):
    """Capture a tool output as its golden reference."""
    defaults = config.get_golden_config()
    response = _load_response(response_file)
    if response.is_error:
        _fail(f"Tool returned an error: {response.text}")

    golden_output = create_golden_output(
        tool,
        _parse_args(args_json, defaults.default_args),
        response,
        mode=ComparisonMode(mode) if mode else defaults.mode,
        allowed_drift=(
            [p.strip() for p in allowed_drift.split(",") if p.strip()]
            if allowed_drift is not None
            else defaults.allowed_drift
        ),
        normalize_timestamps=defaults.normalize_timestamps if normalize_timestamps is None else normalize_timestamps,
        normalize_uuids=defaults.normalize_uuids if normalize_uuids is None else normalize_uuids,
        description=description,
    )

    store = GoldenStore.for_directory(config.output_dir)
    try:
        path = store.save_golden(golden_output)
    except GoldenStoreError as e:
        _fail(str(e))

    console.print(f"[green]✅ Golden output saved: {path}[/green]")
    console.print(f"  Content type: {golden_output.output.content_type.value}")
    console.print(f"  Content hash: {golden_output.output.content_hash}")
    console.print(f"  Mode: {golden_output.tolerance.mode.value}")


@golden.command("compare")
@click.option("--tool", required=True, help="Tool name to compare")
@click.option("--response", "response_file", required=True, type=click.Path(exists=True, dir_okay=False),
              help="Current tool call result (JSON) or raw output text")
@click.option("--args", "args_json", default=None, help="JSON arguments identifying the golden")
@click.pass_obj
def golden_compare(config: DriftConfig, tool: str, response_file: str, args_json: Optional[str]):
    """Compare a current tool output against its golden."""
    store = GoldenStore.for_directory(config.output_dir)
    input_args = _parse_args(args_json, {}) if args_json is not None else None
    try:
        golden_output = store.get_golden(tool, input_args)
    except GoldenStoreError as e:
        _fail(str(e))
    if golden_output is None:
        _fail(f"No golden output for tool: {tool}")

    result = compare_with_golden(golden_output, _load_response(response_file))
    report = assemble_report(tool, golden_result=result)
    _print_report(report)
    _exit_for(config, report.severity)


@golden.command("list")
@click.pass_obj
def golden_list(config: DriftConfig):
    """List saved golden outputs."""
    try:
        outputs = GoldenStore.for_directory(config.output_dir).list_golden()
    except GoldenStoreError as e:
        _fail(str(e))

    if not outputs:
        console.print("[yellow]⚠️  No golden outputs saved. Run 'mcpdrift golden save' first.[/yellow]")
        return

    table = Table(title="Golden Outputs", show_header=True, header_style="bold cyan")
    table.add_column("Tool", style="white")
    table.add_column("Args", style="dim")
    table.add_column("Type")
    table.add_column("Mode")
    table.add_column("Captured", style="dim")
    for g in outputs:
        table.add_row(
            g.tool_name,
            args_key(g.input_args),
            g.output.content_type.value,
            g.tolerance.mode.value,
            g.captured_at.isoformat()[:19],
        )
    console.print(table)


@golden.command("delete")
@click.option("--tool", required=True, help="Tool name to delete goldens for")
@click.option("--args", "args_json", default=None, help="Only delete the golden for these JSON arguments")
@click.pass_obj
def golden_delete(config: DriftConfig, tool: str, args_json: Optional[str]):
    """Delete golden outputs for a tool."""
    input_args = _parse_args(args_json, {}) if args_json is not None else None
    try:
        deleted = GoldenStore.for_directory(config.output_dir).delete_golden(tool, input_args)
    except GoldenStoreError as e:
        _fail(str(e))

    if deleted:
        console.print(f"[green]✅ Deleted golden output(s) for {tool}[/green]")
    else:
        console.print(f"[yellow]⚠️  No golden output found for {tool}[/yellow]")


# ============================================================================
# check
# ============================================================================


def _index_responses(path: str) -> Dict[Tuple[str, str], ToolCallResult]:
    """Index recorded calls: [{"tool": ..., "args": {...}, "result": {...}}]."""
    data = _read_json(path)
    if not isinstance(data, list):
        _fail(f"{path} must contain a list of recorded calls")

    responses = {}
    for i, entry in enumerate(data):
        if not isinstance(entry, dict) or "tool" not in entry or "result" not in entry:
            _fail(f"{path}: recorded call {i} needs 'tool' and 'result'")
        try:
            result = ToolCallResult.from_dict(entry["result"])
        except ValidationError as e:
            _fail(f"{path}: recorded call {i} has an invalid result: {escape(str(e))}")
        responses[(entry["tool"], args_key(entry.get("args") or {}))] = result
    return responses


def _print_report(report: DriftReport) -> None:
    console.print(f"[bold]{report.tool_name}[/bold]: {_severity_text(report.severity)} - {report.summary}")
    if report.golden_result:
        for diff in report.golden_result.differences:
            marker = "[dim]allowed[/dim]" if diff.allowed else diff.type.value
            console.print(f"  {marker} {diff.path}: {diff.description}", highlight=False)


@main.command()
@click.option("--server", default=None, help="Contract to diff the current tools against")
@click.option("--tools", "tools_file", default=None, type=click.Path(exists=True, dir_okay=False),
              help="Current tools/list response")
@click.option("--responses", "responses_file", default=None, type=click.Path(exists=True, dir_okay=False),
              help="Recorded tool calls to compare against the golden store")
@click.pass_obj
def check(config: DriftConfig, server: Optional[str], tools_file: Optional[str], responses_file: Optional[str]):
    """Check schema and output drift for every known tool."""
    schema_results = {}
    if server and tools_file:
        try:
            snapshot = ContractStore.for_directory(config.output_dir).load_contract(server)
        except GoldenStoreError as e:
            _fail(str(e))
        if snapshot is None:
            _fail(f"No contract saved for server: {server}")
        diff = diff_contract(snapshot, _load_tools(tools_file), config.get_schema_config().max_depth)
        _print_contract_diff(diff)
        schema_results = {name: diff.schema_result(name) for name in snapshot.tool_names}
        tool_severity = diff.severity
    else:
        tool_severity = DriftSeverity.NONE

    golden_results = {}
    if responses_file:
        recorded = _index_responses(responses_file)

        def get_tool_response(tool_name: str, input_args: Dict[str, Any]) -> ToolCallResult:
            return recorded[(tool_name, args_key(input_args))]

        try:
            for result in compare_all_goldens(GoldenStore.for_directory(config.output_dir), get_tool_response):
                golden_results.setdefault(result.tool_name, []).append(result)
        except GoldenStoreError as e:
            _fail(str(e))

    batch = BatchDriftReport()
    for name in sorted(set(schema_results) | set(golden_results)):
        results = golden_results.get(name) or [None]
        for golden_result in results:
            batch.reports.append(assemble_report(name, schema_results.get(name), golden_result))

    console.print()
    for report in batch.reports:
        _print_report(report)

    overall = DriftSeverity.combine(batch.severity, tool_severity)
    console.print(f"\n{batch.summary()} - overall {_severity_text(overall)}")
    _exit_for(config, overall)


if __name__ == "__main__":
    main()
