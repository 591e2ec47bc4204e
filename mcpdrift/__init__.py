"""mcpdrift - contract and output drift detection for MCP tool servers."""

__version__ = "0.1.0"
