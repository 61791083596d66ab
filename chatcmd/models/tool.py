"""Tool contract models: parameter schema and chain steps."""

from pydantic import BaseModel, Field
from typing import Dict, Any, List, Optional, Literal


ParameterType = Literal["string", "number", "boolean", "array", "object"]


class ParameterItems(BaseModel):
    """Element constraint for array parameters."""
    type: Literal["string", "number", "boolean"] = Field(..., description="Primitive element type")
    enum: Optional[List[str]] = Field(default=None, description="Allowed element values")


class ToolParameter(BaseModel):
    """A single declared tool parameter."""
    name: str = Field(..., description="Parameter name, unique within a tool")
    type: ParameterType = Field(..., description="JSON type of the parameter")
    description: str = Field(default="", description="Description shown to the upstream planner")
    required: bool = Field(default=False)
    default: Optional[Any] = Field(default=None, description="Value used when the parameter is omitted")
    items: Optional[ParameterItems] = Field(default=None, description="Constraint for array elements")

    def to_json_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {"type": self.type, "description": self.description}
        if self.items is not None:
            schema["items"] = self.items.model_dump(exclude_none=True)
        if self.default is not None:
            schema["default"] = self.default
        return schema


class ToolCall(BaseModel):
    """One step of a tool chain produced by the upstream planner."""
    tool: str = Field(..., description="Registered tool name")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Parameters for the tool")
