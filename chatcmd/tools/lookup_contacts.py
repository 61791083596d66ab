"""Contact search with confidence scoring and clarification on ambiguity."""

import logging
from typing import Dict, Any, List, Optional

from chatcmd.adapters.conversation_store import ConversationStore
from chatcmd.models import ToolParameter, ParameterItems, ToolResult, ToolContext, ClarificationData
from chatcmd.services.contact_matching import calculate_contact_confidence, decide_clarification, matches_query
from chatcmd.tools.base import BaseTool, format_timestamp

logger = logging.getLogger(__name__)


RECENT_CONVERSATION_LIMIT = 20


class LookupContactsTool(BaseTool):
    name = "lookup_contacts"
    description = (
        "Search for contacts/users with flexible matching. Supports name, email, phone search "
        "with confidence scoring and recent contacts prioritization."
    )
    parameters = [
        ToolParameter(name="user_id", type="string", required=True,
                      description="The current user ID for context"),
        ToolParameter(name="query", type="string", required=True,
                      description="Search query (name, email, or phone)"),
        ToolParameter(name="limit", type="number", default=10,
                      description="Maximum number of results to return"),
        ToolParameter(name="include_recent", type="boolean", default=True,
                      description="Prioritize recently contacted users"),
        ToolParameter(name="search_fields", type="array", default=["displayName", "email"],
                      description="Fields to search in (displayName, email, phoneNumber)",
                      items=ParameterItems(type="string", enum=["displayName", "email", "phoneNumber"])),
        ToolParameter(name="min_confidence", type="number", default=0.3,
                      description="Minimum confidence score (0-1)"),
        ToolParameter(name="exclude_self", type="boolean", default=True,
                      description="Exclude the current user from results"),
    ]
    user_context_params = ["user_id"]

    def __init__(self, store: ConversationStore):
        super().__init__()
        self.store = store

    async def run(self, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        user_id = params["user_id"]
        query = params["query"]
        limit = int(params["limit"])
        include_recent = params["include_recent"]
        search_fields = params["search_fields"]
        min_confidence = params["min_confidence"]

        logger.info(
            "Looking up contacts",
            extra={"query": query[:50], "limit": limit, "search_fields": search_fields},
        )

        try:
            recent_conversations = (
                self.store.list_conversations_for_user(user_id, limit=RECENT_CONVERSATION_LIMIT)
                if include_recent else []
            )
            recent_contacts = self._recent_contacts(recent_conversations, user_id)
            candidates = self._search(query, search_fields, user_id if params["exclude_self"] else None)
        except Exception as e:
            return self.failure(e, next_action="error")

        scored = []
        for user in candidates:
            confidence = calculate_contact_confidence(user, query, search_fields, recent_contacts)
            if confidence >= min_confidence:
                scored.append((confidence, user))
        scored.sort(key=lambda item: item[0], reverse=True)
        scored = scored[:limit]

        contacts = [
            {
                "id": user["id"],
                "name": user.get("displayName") or user.get("email") or "Unknown",
                "email": user.get("email"),
                "photo_url": user.get("photoURL"),
                "identifiers": [v for v in (user.get("displayName"), user.get("email"), user.get("phoneNumber")) if v],
                "confidence": confidence,
                "is_recent": user["id"] in recent_contacts,
                "last_contact": self._last_contact(recent_conversations, user_id, user["id"]),
            }
            for confidence, user in scored
        ]
        search_criteria = {
            "fields_searched": search_fields,
            "min_confidence": min_confidence,
            "include_recent": include_recent,
        }
        metadata = {
            "contacts_found": len(contacts),
            "recent_contacts_included": len(recent_contacts),
            "search_fields_used": search_fields,
        }

        if not contacts:
            return ToolResult(
                success=False,
                data={"query": query, "contacts": [], "total_found": 0},
                error=f'No contacts found matching "{query}"',
                next_action="error",
                instruction_for_ai="Inform user no contacts were found.",
                confidence=0.0,
                metadata=metadata,
            )

        decision = decide_clarification(contacts)
        logger.info(
            f"Contact clarification decision: {decision.reason}",
            extra={"contacts_found": len(contacts), "needed": decision.needed},
        )
        top_confidence = contacts[0]["confidence"]

        if decision.needed:
            return ToolResult(
                success=True,
                data={
                    "query": query,
                    "contacts": contacts,
                    "total_found": len(contacts),
                    "search_criteria": search_criteria,
                },
                next_action="clarification_needed",
                clarification=ClarificationData.build(
                    clarification_type="contact_selection",
                    question=f'I found {len(contacts)} contacts named "{query}". Which one did you mean?',
                    options=decision.options,
                ),
                instruction_for_ai=(
                    "STOP: Present these options to user and wait for their selection. "
                    "Do NOT call any more tools."
                ),
                confidence=top_confidence,
                metadata=metadata,
            )

        best = contacts[0]
        return ToolResult(
            success=True,
            data={
                "query": query,
                "contacts": contacts,
                "total_found": len(contacts),
                "contact_id": best["id"],
                "contact_name": best["name"],
                "search_criteria": search_criteria,
            },
            next_action="continue",
            instruction_for_ai=f'Use contact_id "{best["id"]}" for the next tool call.',
            confidence=top_confidence,
            metadata=metadata,
        )

    def _search(self, query: str, search_fields: List[str], exclude_user_id: Optional[str]) -> List[Dict[str, Any]]:
        normalized = query.lower().strip()
        return [
            user for user in self.store.list_users()
            if user["id"] != exclude_user_id
            and any(matches_query(user.get(field_name), normalized) for field_name in search_fields)
        ]

    @staticmethod
    def _recent_contacts(conversations: List[Dict[str, Any]], user_id: str) -> List[str]:
        recent: List[str] = []
        for conversation in conversations:
            for participant in conversation["participants"]:
                if participant != user_id and participant not in recent:
                    recent.append(participant)
        return recent

    @staticmethod
    def _last_contact(conversations: List[Dict[str, Any]], user_id: str, contact_id: str) -> Optional[str]:
        for conversation in conversations:
            if conversation["type"] == "direct" and sorted(conversation["participants"]) == sorted([user_id, contact_id]):
                if conversation.get("last_message_at"):
                    return format_timestamp(conversation["last_message_at"])
                return None
        return None
