"""Canonical tool models: descriptors, registrations and execution results."""

from pydantic import BaseModel, Field
from typing import Dict, Any, List, Optional


TOOL_EXECUTED_PLACEHOLDER = "Tool executed"


class ToolDescriptor(BaseModel):
    """Tool declaration as supplied by its owner."""
    name: str = Field(..., description="Globally unique tool name, e.g. 'nav.click'")
    label: str = Field(default="", description="Human readable label")
    description: str = Field(default="", description="Tool description shown to the model")
    parameters: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON Schema for parameters",
    )
    domain_aware: Optional[bool] = Field(
        None,
        alias="domainAware",
        description="Whether permission decisions for this tool are scoped per site",
    )

    model_config = {"populate_by_name": True, "frozen": True}


class ToolRegistration(BaseModel):
    """Registry entry: which owner executes a tool."""
    owner_id: str = Field(..., alias="extensionId")
    descriptor: ToolDescriptor

    model_config = {"populate_by_name": True, "frozen": True}


class AITool(BaseModel):
    """Tool catalog entry handed to a provider adapter."""
    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=dict)


class ToolExecutionResult(BaseModel):
    """Result produced by a tool owner (or synthesized by the orchestrator)."""
    content: List[Dict[str, Any]] = Field(default_factory=list, description="Ordered content blocks")
    details: Optional[Any] = None
    error: Optional[str] = None

    @classmethod
    def from_error(cls, text: str, error: str) -> "ToolExecutionResult":
        return cls(content=[{"type": "text", "text": text}], error=error)

    def text(self) -> str:
        """Space-joined text of all text blocks, or the placeholder."""
        texts = [
            block.get("text")
            for block in self.content
            if isinstance(block, dict) and block.get("type", "text") == "text" and block.get("text")
        ]
        return " ".join(texts) or TOOL_EXECUTED_PLACEHOLDER
