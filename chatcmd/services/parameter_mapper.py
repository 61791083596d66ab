"""Threads outputs of earlier chain steps into the parameters of later ones."""

import re
import logging
from typing import Dict, Any, Callable, Tuple, Optional

from chatcmd.models import ToolResult

logger = logging.getLogger(__name__)


PLACEHOLDER_BRACKETS = re.compile(r"^\[.*\]$")
PLACEHOLDER_FROM = re.compile(r"\bfrom\b", re.IGNORECASE)


def is_placeholder(value: Any) -> bool:
    """
    True for values a planner emits when it does not know the real one.

    Covers empty values, bracketed names like "[recipient_id]" and phrases
    like "id from lookup_contacts".
    """
    if value is None:
        return True
    if not isinstance(value, str):
        return False
    stripped = value.strip()
    if not stripped:
        return True
    return bool(PLACEHOLDER_BRACKETS.match(stripped) or PLACEHOLDER_FROM.search(stripped))


def _best_contact(contacts) -> Optional[Dict[str, Any]]:
    if not contacts:
        return None
    if len(contacts) == 1:
        return contacts[0]
    best = contacts[0]
    for contact in contacts[1:]:
        if contact.get("confidence", 0) > best.get("confidence", 0):
            best = contact
    return best


def _lookup_to_send(result: ToolResult, params: Dict[str, Any]) -> Dict[str, Any]:
    if not is_placeholder(params.get("recipient_id")):
        return params
    contact = _best_contact(result.data.get("contacts"))
    if contact:
        params["recipient_id"] = contact["id"]
    return params


def _resolve_to_send(result: ToolResult, params: Dict[str, Any]) -> Dict[str, Any]:
    conversation_id = result.data.get("conversation_id")
    if conversation_id and is_placeholder(params.get("conversation_id")):
        params["conversation_id"] = conversation_id
    return params


def _messages_to_summarize(result: ToolResult, params: Dict[str, Any]) -> Dict[str, Any]:
    conversation_id = result.data.get("conversation_id")
    if conversation_id and is_placeholder(params.get("conversation_id")):
        params["conversation_id"] = conversation_id
    return params


def _lookup_to_resolve(result: ToolResult, params: Dict[str, Any]) -> Dict[str, Any]:
    if not is_placeholder(params.get("contact_identifier")):
        return params
    contacts = result.data.get("contacts") or []
    if contacts:
        contact = contacts[0]
        params["contact_identifier"] = contact.get("email") or contact["id"]
    return params


def _conversations_to_summarize(result: ToolResult, params: Dict[str, Any]) -> Dict[str, Any]:
    conversations = result.data.get("conversations") or []
    if conversations and is_placeholder(params.get("conversation_id")):
        params["conversation_id"] = conversations[0]["id"]
    return params


def _search_to_analyze(result: ToolResult, params: Dict[str, Any]) -> Dict[str, Any]:
    conversations = result.data.get("conversations") or []
    if len(conversations) == 1 and is_placeholder(params.get("conversation_id")):
        params["conversation_id"] = conversations[0]["conversation_id"]
    return params


# (from_tool, to_tool) -> mapping function
PARAMETER_MAPPINGS: Dict[Tuple[str, str], Callable[[ToolResult, Dict[str, Any]], Dict[str, Any]]] = {
    ("lookup_contacts", "send_message"): _lookup_to_send,
    ("resolve_conversation", "send_message"): _resolve_to_send,
    ("get_messages", "summarize_conversation"): _messages_to_summarize,
    ("lookup_contacts", "resolve_conversation"): _lookup_to_resolve,
    ("get_conversations", "summarize_conversation"): _conversations_to_summarize,
    ("search_conversations", "analyze_conversation"): _search_to_analyze,
}


class ParameterMapper:
    """Applies the mapping table. Stateless."""

    def map(
        self,
        from_tool: str,
        from_result: ToolResult,
        to_tool: str,
        to_params: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Map parameters from an earlier result into a later step.

        Fills ``to_params`` in place and returns it. Failed source results
        and unmapped pairs leave the parameters unchanged. Concrete values
        are never overwritten.
        """
        mapping = PARAMETER_MAPPINGS.get((from_tool, to_tool))
        if mapping is None or not from_result.success:
            return to_params
        before = dict(to_params)
        mapping(from_result, to_params)
        changed = [key for key in to_params if to_params.get(key) != before.get(key)]
        if changed:
            logger.debug(f"Mapped {from_tool} -> {to_tool}: {changed}")
        return to_params
