"""Types exchanged with the MCP transport.

The transport itself lives outside this package. It hands us the result of a
``tools/call`` request, and the comparator only ever looks at the first
``text`` content block.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ContentBlock(BaseModel):
    """One content block of a tool call result."""

    model_config = ConfigDict(extra="allow")

    type: str
    text: Optional[str] = None


class ToolCallResult(BaseModel):
    """Structured result of an MCP tool call."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    content: List[ContentBlock] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    @property
    def text(self) -> str:
        """Text of the first ``text`` block, or "" when there is none."""
        for block in self.content:
            if block.type == "text":
                return block.text or ""
        return ""

    @classmethod
    def from_text(cls, text: str) -> "ToolCallResult":
        return cls(content=[ContentBlock(type="text", text=text)])

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCallResult":
        return cls.model_validate(data)
