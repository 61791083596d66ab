"""Caller-facing command flow: validate, execute, and shape the response."""

import uuid
import logging
from typing import Dict, Any, List, Optional

from chatcmd.models import AppContext, ToolCall, ToolContext, ToolResult
from chatcmd.services.chain_executor import ToolChainExecutor
from chatcmd.services.chain_validator import ToolChainValidator
from chatcmd.services.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


NAVIGATE_TOOLS = ["send_message", "resolve_conversation"]
SUMMARY_TOOLS = [
    "get_conversations",
    "lookup_contacts",
    "get_messages",
    "get_conversation_info",
    "summarize_conversation",
    "analyze_conversation",
    "analyze_conversations_multi",
    "search_conversations",
]


def generate_chain_response(results: List[ToolResult], chain: List[ToolCall]) -> str:
    """User-facing message for a chain that finished without error or clarification."""
    tools_used = [step.tool for step in chain]

    if "summarize_conversation" in tools_used:
        summary = _data_from(results, "summarize_conversation").get("summary")
        if summary:
            return f"Here's a summary of your conversation:\n\n{summary}"

    for analysis_tool in ("analyze_conversation", "analyze_conversations_multi"):
        if analysis_tool in tools_used:
            answer = _data_from(results, analysis_tool).get("answer")
            if answer:
                return answer

    if "send_message" in tools_used:
        return "Message sent successfully!"
    if "lookup_contacts" in tools_used and "get_conversations" in tools_used:
        return "Found conversations and contacts as requested."
    if "get_messages" in tools_used:
        return "Retrieved messages as requested."
    return "Command executed successfully."


def determine_action(chain: List[ToolCall]) -> str:
    """Client action for the last tool of the chain."""
    if not chain:
        return "no_action"
    last_tool = chain[-1].tool
    if last_tool in NAVIGATE_TOOLS:
        return "navigate_to_conversation"
    if last_tool in SUMMARY_TOOLS:
        return "show_summary"
    if last_tool == "request_clarification":
        return "request_clarification"
    return "no_action"


def _data_from(results: List[ToolResult], tool_name: str) -> Dict[str, Any]:
    for result in reversed(results):
        if result.tool_name == tool_name:
            return result.data
    return {}


def _error_response(command: str, message: str, error: Optional[str] = None, **extra) -> Dict[str, Any]:
    response = {
        "success": False,
        "result": None,
        "response": message,
        "action": "show_error",
        "error": error or message,
        "requires_clarification": False,
        "clarification_data": None,
        "original_command": command,
        "tool_chain": None,
        "warnings": [],
        "suggestions": [],
    }
    response.update(extra)
    return response


class CommandProcessor:
    """Runs pre-flight checks, chain validation and execution for one command."""

    def __init__(
        self,
        registry: ToolRegistry,
        executor: ToolChainExecutor,
        validator: ToolChainValidator,
    ):
        self.registry = registry
        self.executor = executor
        self.validator = validator

    async def process(
        self,
        command: str,
        current_user_id: str,
        tool_chain: List[ToolCall],
        app_context: Optional[AppContext] = None,
        max_chain_length: Optional[int] = None,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Process a command with its planner-produced tool chain.

        Returns:
            CommandResponse-shaped dict
        """
        app_context = app_context or AppContext()
        request_id = request_id or str(uuid.uuid4())

        pre_flight = self.validator.validate_pre_flight(command, app_context, current_user_id)
        if not pre_flight.valid:
            logger.error(
                f"Pre-flight validation failed: {pre_flight.errors}",
                extra={"request_id": request_id, "command": (command or "")[:100]},
            )
            errors = ", ".join(pre_flight.errors)
            return _error_response(command, f"Invalid command: {errors}", errors)
        if pre_flight.warnings:
            logger.warning(
                f"Pre-flight validation warnings: {pre_flight.warnings}",
                extra={"request_id": request_id, "suggestions": pre_flight.suggestions},
            )

        if not tool_chain:
            return _error_response(
                command,
                "No appropriate tools found for this command.",
                "No tools available",
                warnings=pre_flight.warnings,
                suggestions=pre_flight.suggestions,
            )

        chain_report = self.validator.validate_chain(tool_chain)
        pattern = self.validator.get_chain_pattern(tool_chain)
        logger.info(
            f"Tool chain validation: valid={chain_report.valid} pattern={pattern}",
            extra={"request_id": request_id, "tools": [step.tool for step in tool_chain]},
        )
        if not chain_report.valid:
            message = f"Invalid tool sequence: {', '.join(chain_report.errors)}"
            return _error_response(command, message, message)

        context = ToolContext(
            current_user_id=current_user_id,
            request_id=request_id,
            app_context=app_context,
        )
        results = await self.executor.execute_chain(tool_chain, context, max_chain_length)

        response = self.process_results(results, tool_chain)
        response["original_command"] = command
        response["tool_chain"]["pattern"] = pattern
        response["warnings"] = pre_flight.warnings + chain_report.warnings
        response["suggestions"] = list(pre_flight.suggestions)
        return response

    def process_results(self, results: List[ToolResult], chain: List[ToolCall]) -> Dict[str, Any]:
        """Collapse per-step results into one response."""
        executed_chain = chain[:len(results)]
        tool_chain_info = {
            "tools_used": [step.tool for step in executed_chain],
            "results": [result.model_dump() for result in results],
            "total_execution_time_ms": sum(r.metadata.get("execution_time_ms", 0) for r in results),
            "pattern": None,
        }

        failed = next((r for r in results if not r.success), None)
        if failed is not None:
            response = _error_response("", failed.error, failed.error)
            response["tool_chain"] = tool_chain_info
            return response

        clarifying = next((r for r in results if r.needs_clarification), None)
        if clarifying is not None:
            return {
                "success": True,
                "result": clarifying.data,
                "response": clarifying.clarification.question,
                "action": "request_clarification",
                "error": None,
                "requires_clarification": True,
                "clarification_data": clarifying.clarification.model_dump(),
                "original_command": "",
                "tool_chain": tool_chain_info,
                "warnings": [],
                "suggestions": [],
            }

        return {
            "success": True,
            "result": results[-1].data if results else None,
            "response": generate_chain_response(results, executed_chain),
            "action": determine_action(executed_chain),
            "error": None,
            "requires_clarification": False,
            "clarification_data": None,
            "original_command": "",
            "tool_chain": tool_chain_info,
            "warnings": [],
            "suggestions": [],
        }
