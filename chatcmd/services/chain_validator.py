"""Structural validation of tool chains, commands and tool parameters."""

import re
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from chatcmd.infra.config import config
from chatcmd.models import AppContext, ToolCall
from chatcmd.services.parameter_mapper import is_placeholder
from chatcmd.services.tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


@dataclass
class ValidationReport:
    """Outcome of a validation pass. Warnings and suggestions never block."""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "suggestions": list(self.suggestions),
        }


CHAIN_PATTERNS = {
    "lookup_contacts → send_message": "Send message to contact by name",
    "lookup_contacts → resolve_conversation": "Find conversation with contact",
    "lookup_contacts → resolve_conversation → get_messages": "Get messages from contact",
    "resolve_conversation → send_message": "Send message to existing conversation",
    "get_conversations": "List conversations",
    "lookup_contacts": "Search for contacts",
}

# Questions that need a conversation to answer
INFO_EXTRACTION_PATTERNS = [
    r"\bwho\s+(is|are|was|were|confirmed|said|mentioned)\b",
    r"\bwhat\s+(did|does|is|was|were|about)\b",
    r"\bwhen\s+(is|was|did|does|are|were)\b",
    r"\bwhere\s+(is|was|did|does|are|were)\b",
    r"\bhow\s+many\b",
    r"\blist\s+all\b",
]

VAGUE_PRONOUN_PATTERN = re.compile(r"\b(tell|message|text|ask|remind)\s+(him|her|them)\b", re.IGNORECASE)
VAGUE_RECIPIENT_PATTERN = re.compile(r"\b(someone|somebody|that\s+person|the\s+guy)\b", re.IGNORECASE)

POSITIVE_NUMBER_PARAMS = ["max_messages", "limit", "max_results", "max_conversations"]
ID_PARAMS = ["recipient_id", "conversation_id"]
CONTEXT_TOOLS = ["lookup_contacts", "resolve_conversation"]

TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, list),
    "object": lambda v: isinstance(v, dict),
}


class ToolChainValidator:
    """Checks chains before execution. Never mutates its inputs."""

    def __init__(self, registry: Optional[ToolRegistry] = None, max_chain_length: Optional[int] = None):
        self.registry = registry
        self.max_chain_length = max_chain_length or config.MAX_CHAIN_LENGTH

    def validate_chain(self, chain: List[ToolCall]) -> ValidationReport:
        """
        Validate tool order and required context.

        Errors: empty chain, unknown tools (with a registry), consecutive
        duplicates, repeated lookup_contacts, send_message with no way to
        obtain a target. Warnings: placeholder recipients that mapping will
        fill, chains that will be truncated.
        """
        report = ValidationReport()
        if not chain:
            report.errors.append("Tool chain is empty")
            return report

        if self.registry is not None:
            for step in chain:
                if self.registry.get_tool(step.tool) is None:
                    report.errors.append(f"Unknown tool: {step.tool}")

        for i in range(1, len(chain)):
            if chain[i].tool == chain[i - 1].tool:
                report.errors.append(
                    f"Duplicate consecutive tool: {chain[i].tool} at positions {i - 1} and {i}"
                )

        lookup_count = sum(1 for step in chain if step.tool == "lookup_contacts")
        if lookup_count > 1:
            report.errors.append(
                f"lookup_contacts appears {lookup_count} times; it should be called once per request"
            )

        for i, step in enumerate(chain):
            if step.tool != "send_message":
                continue
            has_target = bool(step.parameters.get("conversation_id") or step.parameters.get("recipient_id"))
            has_context_step = any(earlier.tool in CONTEXT_TOOLS for earlier in chain[:i])
            if not has_target and not has_context_step:
                report.errors.append(
                    "send_message requires conversation_id or recipient_id, "
                    "or a preceding lookup_contacts/resolve_conversation step"
                )
            if (
                i > 0
                and chain[i - 1].tool == "lookup_contacts"
                and is_placeholder(step.parameters.get("recipient_id"))
            ):
                report.warnings.append(
                    "send_message recipient_id is a placeholder; it will be filled from lookup_contacts"
                )

        if len(chain) > self.max_chain_length:
            report.warnings.append(
                f"Tool chain has {len(chain)} steps; only the first {self.max_chain_length} will run"
            )

        return report

    def get_chain_pattern(self, chain: List[ToolCall]) -> str:
        key = " → ".join(step.tool for step in chain)
        return CHAIN_PATTERNS.get(key, "Unknown pattern")

    def validate_pre_flight(
        self,
        command: Optional[str],
        app_context: Optional[AppContext],
        current_user_id: Optional[str],
    ) -> ValidationReport:
        """Check the free-text command before any tool runs."""
        report = ValidationReport()
        app_context = app_context or AppContext()

        if not command or not command.strip():
            report.errors.append("Command is empty")
        if not current_user_id:
            report.errors.append("Missing current user id")
        if not report.valid:
            return report

        lowered = command.lower()
        if not app_context.in_conversation:
            if any(re.search(pattern, lowered) for pattern in INFO_EXTRACTION_PATTERNS):
                report.warnings.append("Information question asked outside a conversation")
                report.suggestions.append(
                    "Open the relevant conversation first, or search across conversations "
                    "with analyze_conversations_multi"
                )

        if VAGUE_PRONOUN_PATTERN.search(command) and app_context.clarification_response is None:
            report.warnings.append("Command refers to a person by pronoun; the recipient may be ambiguous")

        if VAGUE_RECIPIENT_PATTERN.search(command):
            report.warnings.append("Command does not name a specific recipient")

        return report

    def validate_tool_parameters(
        self,
        tool_name: str,
        params: Dict[str, Any],
        app_context: Optional[AppContext] = None,
    ) -> ValidationReport:
        """Schema and value checks for one tool invocation."""
        report = ValidationReport()

        tool = self.registry.get_tool(tool_name) if self.registry is not None else None
        if tool is not None:
            for param in tool.parameters:
                value = params.get(param.name)
                if value is None:
                    if param.required:
                        report.errors.append(f"Missing required parameter: {param.name}")
                    continue
                if not TYPE_CHECKS[param.type](value):
                    report.errors.append(f"Parameter {param.name} must be of type {param.type}")

        if "query" in params:
            query = params["query"]
            if not isinstance(query, str) or not query.strip():
                report.errors.append("query must be a non-empty string")

        for name in POSITIVE_NUMBER_PARAMS:
            if name in params and params[name] is not None:
                value = params[name]
                if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                    report.errors.append(f"{name} must be a positive number")

        for name in ID_PARAMS:
            value = params.get(name)
            if isinstance(value, str) and ("[" in value or "]" in value):
                report.errors.append(f"{name} looks like a placeholder: {value}")

        if (
            tool_name == "analyze_conversation"
            and app_context is not None
            and app_context.in_conversation
            and params.get("conversation_id")
            and params["conversation_id"] != app_context.current_conversation_id
        ):
            report.warnings.append("Analyzing a conversation other than the one currently open")

        return report
