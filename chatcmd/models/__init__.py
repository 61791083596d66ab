from .tool import ToolParameter, ParameterItems, ToolCall
from .context import AppContext, ToolContext, ClarificationResponse
from .result import ToolResult, ClarificationData, ClarificationOption

__all__ = [
    "ToolParameter",
    "ParameterItems",
    "ToolCall",
    "AppContext",
    "ToolContext",
    "ClarificationResponse",
    "ToolResult",
    "ClarificationData",
    "ClarificationOption",
]
