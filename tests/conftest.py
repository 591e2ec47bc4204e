"""Pytest configuration and shared fixtures for mcpdrift tests."""

from typing import Any, Dict, List
import pytest

from mcpdrift.core.golden import GoldenStore


# ============================================================================
# Test Data Fixtures
# ============================================================================


@pytest.fixture
def sample_schema() -> Dict[str, Any]:
    """A representative tool input schema."""
    return {
        "type": "object",
        "properties": {
            "query": {"type": "string", "minLength": 1, "description": "Search text"},
            "limit": {"type": "integer", "minimum": 1, "maximum": 100},
            "sort": {"type": "string", "enum": ["asc", "desc"]},
            "tags": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["query"],
    }


@pytest.fixture
def sample_tools() -> List[Dict[str, Any]]:
    """A tools/list response with three tools."""
    return [
        {
            "name": "create_issue",
            "description": "Create a new issue in a GitHub repository",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "repo": {"type": "string"},
                    "title": {"type": "string"},
                    "body": {"type": "string"},
                },
                "required": ["repo", "title"],
            },
        },
        {
            "name": "list_issues",
            "description": "List issues in a repository",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "repo": {"type": "string"},
                    "state": {"type": "string", "enum": ["open", "closed"]},
                },
                "required": ["repo"],
            },
        },
        {
            "name": "read_file",
            "description": "Read a file from the filesystem",
            "inputSchema": {
                "type": "object",
                "properties": {"path": {"type": "string"}},
                "required": ["path"],
            },
        },
    ]


@pytest.fixture
def golden_store(tmp_path) -> GoldenStore:
    """A GoldenStore backed by a temp file."""
    return GoldenStore(tmp_path / "golden" / "golden.json")
