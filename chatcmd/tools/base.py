"""Base class and shared helpers for chat command tools."""

import logging
from datetime import datetime
from typing import Dict, Any, List, Optional

from chatcmd.infra.error_handler import ToolError, ToolValidationError, classify_error
from chatcmd.models import ToolParameter, ToolResult, ToolContext

logger = logging.getLogger(__name__)


class BaseTool:
    """
    A named, parameterized capability invoked by the chain executor.

    Subclasses declare ``name``, ``description`` and ``parameters`` as class
    attributes and implement ``run``. ``execute`` checks required parameters
    before calling ``run`` and converts anything it raises into a failed
    result, so callers always get a ``ToolResult`` back.

    ``user_context_params`` lists the parameters that must always carry the
    authenticated user id; the executor overwrites whatever the planner
    supplied for them.
    """

    name: str = ""
    description: str = ""
    parameters: List[ToolParameter] = []
    user_context_params: List[str] = []

    def __init__(self):
        names = [param.name for param in self.parameters]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Tool {self.name} declares duplicate parameters: {duplicates}")

    async def execute(self, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        try:
            params = self.with_defaults(params)
            for param in self.parameters:
                if param.required and params.get(param.name) is None:
                    raise ToolValidationError(f"Missing required parameter: {param.name}")
            return await self.run(params, context)
        except Exception as e:
            return self.failure(e, next_action="error")

    async def run(self, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        raise NotImplementedError

    def get_parameter(self, name: str) -> Optional[ToolParameter]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def with_defaults(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of params with declared defaults filled in for omitted keys."""
        filled = dict(params)
        for param in self.parameters:
            if param.default is not None and filled.get(param.name) is None:
                default = param.default
                filled[param.name] = list(default) if isinstance(default, list) else default
        return filled

    def failure(
        self,
        error: Exception,
        next_action: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> ToolResult:
        """Convert an exception into a failed result, logging unexpected ones."""
        if isinstance(error, ToolError):
            message = error.message
        else:
            message = str(error) or type(error).__name__
            logger.error(
                f"Tool {self.name} failed: {type(error).__name__}: {error}",
                exc_info=True,
                extra={"tool_name": self.name, "error_category": classify_error(error).value},
            )
        return ToolResult(
            success=False,
            error=message,
            next_action=next_action,
            data=data or {},
        )

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {param.name: param.to_json_schema() for param in self.parameters},
                "required": [param.name for param in self.parameters if param.required],
            },
            "user_context_params": list(self.user_context_params),
        }


def format_timestamp(timestamp_ms: Optional[int]) -> str:
    """Render an epoch-millisecond timestamp as a short local date and time."""
    if not timestamp_ms:
        return "unknown time"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M")


def format_relative_time(timestamp_ms: Optional[int], now_ms: int) -> str:
    """'Just now', 'Xm ago', 'Xh ago', 'Xd ago', or a date for anything older than a week."""
    if not timestamp_ms:
        return "Unknown"
    diff_minutes = int((now_ms - timestamp_ms) / 60000)
    if diff_minutes < 1:
        return "Just now"
    if diff_minutes < 60:
        return f"{diff_minutes}m ago"
    diff_hours = diff_minutes // 60
    if diff_hours < 24:
        return f"{diff_hours}h ago"
    diff_days = diff_hours // 24
    if diff_days < 7:
        return f"{diff_days}d ago"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d")


def truncate_text(value: str, length: int) -> str:
    if len(value) <= length:
        return value
    return value[:length] + "..."


def is_participant(conversation: Optional[Dict[str, Any]], user_id: str) -> bool:
    return bool(conversation) and user_id in conversation.get("participants", [])


def participant_name(conversation: Dict[str, Any], user_id: str, default: str = "Unknown") -> str:
    details = conversation.get("participant_details", {}).get(user_id) or {}
    return details.get("displayName") or details.get("email") or default
