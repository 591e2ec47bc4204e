"""Configuration models for mcpdrift (loaded from .mcpdrift/config.yaml)."""

from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

import yaml
from pydantic import BaseModel, Field, field_validator

from mcpdrift.core.golden import ComparisonMode
from mcpdrift.core.normalize import MAX_SCHEMA_DEPTH
from mcpdrift.core.severity import DriftSeverity

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(".mcpdrift") / "config.yaml"


class GoldenConfig(BaseModel):
    """Defaults applied when capturing golden outputs.

    Example in config.yaml:
        golden:
          mode: semantic
          allowed_drift: ["$.meta.*"]
          normalize_timestamps: true
    """

    mode: ComparisonMode = ComparisonMode.STRUCTURAL
    allowed_drift: List[str] = Field(default_factory=list)
    normalize_timestamps: bool = True
    normalize_uuids: bool = True
    default_args: Dict[str, Any] = Field(default_factory=dict)


class SchemaConfig(BaseModel):
    """Schema fingerprinting and diffing limits."""

    max_depth: int = Field(
        default=MAX_SCHEMA_DEPTH,
        ge=1,
        le=1000,
        description="Nesting depth beyond which schemas are truncated",
    )


class CIConfig(BaseModel):
    """CI/CD exit code configuration.

    Example in config.yaml:
        ci:
          fail_on: warning
    """

    fail_on: DriftSeverity = Field(
        default=DriftSeverity.BREAKING,
        description="Lowest severity that causes exit code 1",
    )

    @field_validator("fail_on", mode="before")
    @classmethod
    def parse_severity(cls, value):
        if isinstance(value, str):
            return DriftSeverity.parse(value)
        return value


class DriftConfig(BaseModel):
    """Complete mcpdrift configuration."""

    output_dir: str = ".mcpdrift"
    golden: Optional[GoldenConfig] = None
    schema_limits: Optional[SchemaConfig] = Field(default=None, alias="schema")
    ci: Optional[CIConfig] = None

    model_config = {"populate_by_name": True}

    def get_golden_config(self) -> GoldenConfig:
        """Get golden config with defaults."""
        if self.golden:
            return self.golden
        return GoldenConfig()

    def get_schema_config(self) -> SchemaConfig:
        """Get schema config with defaults."""
        if self.schema_limits:
            return self.schema_limits
        return SchemaConfig()

    def get_ci_config(self) -> CIConfig:
        """Get CI config with defaults."""
        if self.ci:
            return self.ci
        return CIConfig()


def load_config(config_path: Optional[Path] = None) -> DriftConfig:
    """Load config from YAML.

    Args:
        config_path: Path to config file. Defaults to .mcpdrift/config.yaml.

    Returns:
        Parsed DriftConfig, or defaults if the file does not exist.

    Raises:
        ValueError: If the file is not a YAML mapping or fails validation.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    if not path.exists():
        logger.debug(f"No config at {path}, using defaults")
        return DriftConfig()

    with open(path) as f:
        data = yaml.safe_load(f)

    if data is None:
        return DriftConfig()
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")

    return DriftConfig.model_validate(data)
