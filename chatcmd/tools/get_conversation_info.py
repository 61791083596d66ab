"""Conversation details, participants, statistics and recent activity."""

import time
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Any, List

from chatcmd.adapters.conversation_store import ConversationStore
from chatcmd.infra.error_handler import NotFoundError, AccessDeniedError
from chatcmd.models import ToolParameter, ToolResult, ToolContext
from chatcmd.tools.base import BaseTool, format_timestamp, is_participant, participant_name

logger = logging.getLogger(__name__)


RECENT_DAYS = 7
RECENT_ACTIVITY_MESSAGES = 10


def compute_statistics(messages: List[Dict[str, Any]], now_ms: int) -> Dict[str, Any]:
    """Message statistics for a conversation from its full message list."""
    by_sender = Counter(m["sender_id"] for m in messages)
    by_type = Counter(m.get("type") or "text" for m in messages)
    daily = Counter(
        datetime.fromtimestamp(m["timestamp"] / 1000, tz=timezone.utc).strftime("%Y-%m-%d")
        for m in messages if m.get("timestamp")
    )
    recent_cutoff = now_ms - RECENT_DAYS * 24 * 3600 * 1000
    total = len(messages)
    return {
        "total_messages": total,
        "recent_messages": sum(1 for m in messages if (m.get("timestamp") or 0) >= recent_cutoff),
        "message_counts_by_sender": dict(by_sender),
        "message_types": dict(by_type),
        "daily_activity": dict(sorted(daily.items())),
        "average_messages_per_day": round(total / max(len(daily), 1)) if total else 0,
        "most_active_sender": by_sender.most_common(1)[0][0] if by_sender else None,
        "most_common_message_type": by_type.most_common(1)[0][0] if by_type else "text",
    }


def activity_summary(participant_activity: Dict[str, int]) -> str:
    if not participant_activity:
        return "No recent activity"
    if len(participant_activity) == 1:
        name = next(iter(participant_activity))
        return f"Only {name} has been active recently"
    if len(participant_activity) == 2:
        return "Two participants have been active recently"
    return f"{len(participant_activity)} participants have been active recently"


class GetConversationInfoTool(BaseTool):
    name = "get_conversation_info"
    description = "Get details about a conversation: participants, message statistics and recent activity."
    parameters = [
        ToolParameter(name="conversation_id", type="string", required=True,
                      description="The conversation ID"),
        ToolParameter(name="user_id", type="string", required=True,
                      description="The current user ID"),
        ToolParameter(name="include_participants", type="boolean", default=True,
                      description="Include participant details"),
        ToolParameter(name="include_statistics", type="boolean", default=True,
                      description="Include message statistics"),
        ToolParameter(name="include_recent_activity", type="boolean", default=False,
                      description="Include a summary of the latest messages"),
    ]
    user_context_params = ["user_id"]

    def __init__(self, store: ConversationStore):
        super().__init__()
        self.store = store

    async def run(self, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        conversation_id = params["conversation_id"]
        user_id = params["user_id"]

        try:
            conversation = self.store.get_conversation(conversation_id)
            if conversation is None:
                raise NotFoundError("Conversation not found")
            if not is_participant(conversation, user_id):
                raise AccessDeniedError("Conversation")

            participants = conversation["participants"]
            info: Dict[str, Any] = {
                "id": conversation_id,
                "type": conversation["type"],
                "name": conversation.get("name"),
                "created_date": format_timestamp(conversation.get("created_at")),
                "last_message_at": format_timestamp(conversation.get("last_message_at")),
                "updated_at": format_timestamp(conversation.get("updated_at")),
                "participant_count": len(participants),
                "is_group": conversation["type"] == "group",
            }

            if params["include_participants"]:
                users = self.store.get_users(participants)
                info["participants"] = [
                    {
                        "id": uid,
                        "displayName": user.get("displayName"),
                        "email": user.get("email"),
                        "photoURL": user.get("photoURL"),
                        "lastActive": format_timestamp(user.get("lastActive")),
                    }
                    for uid, user in users.items()
                ]
                info["other_participants"] = [p for p in info["participants"] if p["id"] != user_id]

            if params["include_statistics"]:
                messages = self.store.list_messages(conversation_id)
                info["statistics"] = compute_statistics(messages, int(time.time() * 1000))

            if params["include_recent_activity"]:
                info["recent_activity"] = self._recent_activity(conversation)
        except Exception as e:
            return self.failure(e)

        info["user_context"] = {
            "unread_count": conversation["unread_count"].get(user_id, 0),
            "is_participant": True,
            "joined_at": format_timestamp(conversation.get("created_at")),
        }

        return ToolResult(
            success=True,
            data=info,
            next_action="complete",
            confidence=0.95,
            metadata={
                "include_participants": params["include_participants"],
                "include_statistics": params["include_statistics"],
                "include_recent_activity": params["include_recent_activity"],
                "participant_count": len(participants),
            },
        )

    def _recent_activity(self, conversation: Dict[str, Any]) -> Dict[str, Any]:
        recent = self.store.list_messages(conversation["id"], limit=RECENT_ACTIVITY_MESSAGES)
        activity = Counter(participant_name(conversation, m["sender_id"]) for m in recent)
        return {
            "recent_messages": [
                {
                    "id": m["id"],
                    "sender_id": m["sender_id"],
                    "content": m.get("text") or "",
                    "type": m.get("type") or "text",
                    "timestamp": format_timestamp(m["timestamp"]),
                }
                for m in recent
            ],
            "participant_activity": dict(activity),
            "last_activity": format_timestamp(recent[0]["timestamp"]) if recent else None,
            "activity_summary": activity_summary(dict(activity)),
        }
