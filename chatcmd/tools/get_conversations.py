"""List the current user's conversations."""

import logging
from typing import Dict, Any, List

from chatcmd.adapters.conversation_store import ConversationStore
from chatcmd.models import ToolParameter, ToolResult, ToolContext
from chatcmd.tools.base import BaseTool, format_timestamp, truncate_text

logger = logging.getLogger(__name__)


SORT_KEYS = {
    "last_message": lambda c: c.get("last_message_at") or c.get("created_at") or 0,
    "created": lambda c: c.get("created_at") or 0,
    "updated": lambda c: c.get("updated_at") or 0,
}


class GetConversationsTool(BaseTool):
    name = "get_conversations"
    description = "List the user's conversations with participants, last message preview and unread counts."
    parameters = [
        ToolParameter(name="user_id", type="string", required=True,
                      description="The current user ID"),
        ToolParameter(name="limit", type="number", default=10,
                      description="Maximum number of conversations to return"),
        ToolParameter(name="include_preview", type="boolean", default=True,
                      description="Include a preview of the last message"),
        ToolParameter(name="conversation_type", type="string", default="all",
                      description="Filter by type: 'direct', 'group' or 'all'"),
        ToolParameter(name="unread_only", type="boolean", default=False,
                      description="Only return conversations with unread messages"),
        ToolParameter(name="sort_by", type="string", default="last_message",
                      description="Sort conversations by (last_message, created, updated)"),
    ]
    user_context_params = ["user_id"]

    def __init__(self, store: ConversationStore):
        super().__init__()
        self.store = store

    async def run(self, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        user_id = params["user_id"]
        limit = int(params["limit"])
        conversation_type = params["conversation_type"]
        unread_only = params["unread_only"]
        sort_by = params["sort_by"]

        try:
            records = self.store.list_conversations_for_user(user_id)
            if conversation_type != "all":
                records = [c for c in records if c["type"] == conversation_type]
            records.sort(key=SORT_KEYS.get(sort_by, SORT_KEYS["last_message"]), reverse=True)
            records = records[:limit]

            conversations = []
            for record in records:
                unread = record["unread_count"].get(user_id, 0)
                if unread_only and unread <= 0:
                    continue
                conversations.append(self._build(record, user_id, params["include_preview"]))
        except Exception as e:
            return self.failure(e)

        if unread_only:
            conversations.sort(key=lambda c: c["unread_count"], reverse=True)

        filters_applied = {
            "conversation_type": conversation_type,
            "unread_only": unread_only,
            "sort_by": sort_by,
        }
        if not conversations:
            next_action = "complete"
            instruction = "No conversations found. Inform the user."
        elif len(conversations) == 1:
            next_action = "continue"
            instruction = (
                f'Use conversation_id "{conversations[0]["id"]}" for the next tool call '
                "(e.g., summarize_conversation, get_messages)."
            )
        else:
            next_action = "continue"
            instruction = (
                f"Found {len(conversations)} conversations. If user wants to summarize the most recent, "
                f'use conversation_id "{conversations[0]["id"]}". Otherwise, present the list to the user.'
            )

        return ToolResult(
            success=True,
            data={
                "conversations": conversations,
                "total_count": len(conversations),
                "has_more": len(conversations) == limit,
                "user_id": user_id,
                "filters_applied": filters_applied,
            },
            next_action=next_action,
            instruction_for_ai=instruction,
            confidence=0.95,
            metadata={"conversations_returned": len(conversations), "filters_applied": filters_applied},
        )

    def _build(self, record: Dict[str, Any], user_id: str, include_preview: bool) -> Dict[str, Any]:
        users = self.store.get_users(record["participants"])
        participants: List[Dict[str, Any]] = [
            {
                "id": uid,
                "displayName": user.get("displayName"),
                "email": user.get("email"),
                "photoURL": user.get("photoURL"),
            }
            for uid, user in users.items()
        ]
        conversation = {
            "id": record["id"],
            "type": record["type"],
            "name": record.get("name"),
            "participants": participants,
            "created_date": format_timestamp(record.get("created_at")),
            "last_message_at": format_timestamp(record.get("last_message_at")),
            "unread_count": record["unread_count"].get(user_id, 0),
            "message_count": self.store.count_messages(record["id"]),
            "is_group": record["type"] == "group",
            "other_participants": [p for p in participants if p["id"] != user_id],
        }
        last_message = record.get("last_message")
        if include_preview and last_message:
            sender = users.get(last_message.get("sender_id")) or {}
            conversation["last_message_preview"] = {
                "text": truncate_text(last_message.get("text") or "", 100),
                "sender_id": last_message.get("sender_id"),
                "sender_name": sender.get("displayName") or sender.get("email") or "Unknown",
                "timestamp": format_timestamp(last_message.get("timestamp")),
            }
        return conversation
