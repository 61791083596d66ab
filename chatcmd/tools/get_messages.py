"""Fetch messages from one conversation with filters and cursor pagination."""

import logging
from datetime import datetime
from typing import Dict, Any, Optional

from chatcmd.adapters.conversation_store import ConversationStore
from chatcmd.infra.error_handler import NotFoundError, AccessDeniedError, ToolValidationError
from chatcmd.models import ToolParameter, ToolResult, ToolContext
from chatcmd.tools.base import BaseTool, format_timestamp, is_participant

logger = logging.getLogger(__name__)


def parse_date(value: Optional[str], name: str) -> Optional[int]:
    """ISO-8601 date or datetime to epoch milliseconds."""
    if not value:
        return None
    try:
        return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp() * 1000)
    except ValueError:
        raise ToolValidationError(f"{name} must be an ISO-8601 date, got {value!r}")


def matches_search_text(message: Dict[str, Any], search_text: str) -> bool:
    needle = search_text.lower()
    return needle in (message.get("text") or "").lower() or needle in (message.get("caption") or "").lower()


class GetMessagesTool(BaseTool):
    name = "get_messages"
    description = (
        "Retrieve messages from a conversation with optional filtering by sender, type, date range "
        "or text, and cursor pagination."
    )
    parameters = [
        ToolParameter(name="conversation_id", type="string", required=True,
                      description="The conversation ID to get messages from"),
        ToolParameter(name="limit", type="number", default=50,
                      description="Maximum number of messages to return"),
        ToolParameter(name="before_id", type="string",
                      description="Return messages older than this message ID"),
        ToolParameter(name="after_id", type="string",
                      description="Return messages newer than this message ID"),
        ToolParameter(name="sender_id", type="string",
                      description="Only messages from this sender"),
        ToolParameter(name="message_type", type="string",
                      description="Only messages of this type (text, image, file)"),
        ToolParameter(name="date_from", type="string",
                      description="Only messages on or after this ISO date"),
        ToolParameter(name="date_to", type="string",
                      description="Only messages on or before this ISO date"),
        ToolParameter(name="search_text", type="string",
                      description="Only messages containing this text"),
        ToolParameter(name="include_metadata", type="boolean", default=True,
                      description="Include read and delivery metadata"),
    ]

    def __init__(self, store: ConversationStore):
        super().__init__()
        self.store = store

    async def run(self, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        conversation_id = params["conversation_id"]
        limit = int(params["limit"])
        search_text = params.get("search_text")

        logger.info(
            "Getting messages",
            extra={"conversation_id": conversation_id, "limit": limit, "sender_id": params.get("sender_id")},
        )

        try:
            conversation = self.store.get_conversation(conversation_id)
            if conversation is None:
                raise NotFoundError("Conversation not found")
            if not is_participant(conversation, context.current_user_id):
                raise AccessDeniedError("Conversation")

            before_ts = self._cursor_timestamp(params.get("before_id"))
            after_ts = self._cursor_timestamp(params.get("after_id"))
            records = self.store.list_messages(
                conversation_id,
                limit=limit,
                newest_first=after_ts is None,
                sender_id=params.get("sender_id"),
                content_type=params.get("message_type"),
                since=parse_date(params.get("date_from"), "date_from"),
                until=parse_date(params.get("date_to"), "date_to"),
                before_ts=before_ts,
                after_ts=after_ts,
            )
        except Exception as e:
            return self.failure(e)

        if search_text:
            records = [m for m in records if matches_search_text(m, search_text)]
        records.sort(key=lambda m: m["timestamp"])

        sender_names = {
            uid: user.get("displayName") or user.get("email") or "Unknown"
            for uid, user in self.store.get_users(m["sender_id"] for m in records).items()
        }
        messages = [self._build(m, sender_names, params["include_metadata"]) for m in records]

        filters_applied = {
            "sender_id": params.get("sender_id"),
            "message_type": params.get("message_type"),
            "date_from": params.get("date_from"),
            "date_to": params.get("date_to"),
            "search_text": search_text,
        }
        return ToolResult(
            success=True,
            data={
                "messages": messages,
                "conversation_id": conversation_id,
                "total_returned": len(messages),
                "has_more": len(messages) == limit,
                "pagination": {
                    "before_id": params.get("before_id"),
                    "after_id": params.get("after_id"),
                    "limit": limit,
                },
                "filters_applied": filters_applied,
            },
            next_action="continue" if messages else "complete",
            confidence=0.95,
            metadata={
                "messages_returned": len(messages),
                "filters_applied": [k for k, v in filters_applied.items() if v is not None],
            },
        )

    def _cursor_timestamp(self, message_id: Optional[str]) -> Optional[int]:
        if not message_id:
            return None
        message = self.store.get_message(message_id)
        return message["timestamp"] if message else None

    @staticmethod
    def _build(message: Dict[str, Any], sender_names: Dict[str, str], include_metadata: bool) -> Dict[str, Any]:
        built = {
            "id": message["id"],
            "sender_id": message["sender_id"],
            "sender_name": sender_names.get(message["sender_id"]) or message.get("sender_name") or "Unknown",
            "content": {
                "type": message.get("type", "text"),
                "text": message.get("text") or "",
                "caption": message.get("caption"),
                "media_url": message.get("media_url"),
            },
            "timestamp": format_timestamp(message["timestamp"]),
            "timestamp_ms": message["timestamp"],
            "status": message.get("status") or "sent",
        }
        if include_metadata:
            built["metadata"] = {
                "read_by": message.get("read_by", []),
                "delivered_to": message.get("delivered_to", []),
                "read_count": len(message.get("read_by", [])),
                "delivery_count": len(message.get("delivered_to", [])),
            }
        return built
