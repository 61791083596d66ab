"""Resolve a contact to the direct conversation with them."""

import logging
from typing import Dict, Any, Optional

from chatcmd.adapters.conversation_store import ConversationStore
from chatcmd.infra.error_handler import NotFoundError
from chatcmd.models import ToolParameter, ToolResult, ToolContext
from chatcmd.tools.base import BaseTool, format_timestamp

logger = logging.getLogger(__name__)


class ResolveConversationTool(BaseTool):
    name = "resolve_conversation"
    description = (
        "Find the conversation between the current user and a contact, identified by email, "
        "name or user id. Optionally creates the conversation if it does not exist."
    )
    parameters = [
        ToolParameter(name="user_id", type="string", required=True,
                      description="The current user ID"),
        ToolParameter(name="contact_identifier", type="string", required=True,
                      description="Contact email, display name, or user ID"),
        ToolParameter(name="create_if_missing", type="boolean", default=False,
                      description="Create the conversation if none exists"),
        ToolParameter(name="conversation_type", type="string", default="direct",
                      description="Conversation type: 'direct' or 'group'"),
    ]
    user_context_params = ["user_id"]

    def __init__(self, store: ConversationStore):
        super().__init__()
        self.store = store

    async def run(self, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        user_id = params["user_id"]
        identifier = params["contact_identifier"]

        logger.info(
            "Resolving conversation",
            extra={"contact_identifier": identifier[:50], "create_if_missing": params["create_if_missing"]},
        )

        try:
            contact = self.find_contact(identifier)
            if contact is None:
                raise NotFoundError(f'Contact "{identifier}" not found')

            conversation = self.store.find_direct_conversation(user_id, contact["id"])
            was_created = False
            if conversation is None and params["create_if_missing"]:
                conversation = self.store.create_conversation(
                    [user_id, contact["id"]],
                    conversation_type=params["conversation_type"],
                    created_by=user_id,
                )
                was_created = True

            if conversation is None:
                raise NotFoundError(f"No conversation found with {contact.get('displayName') or contact.get('email')}")

            participants = self.store.get_users(conversation["participants"])
        except Exception as e:
            return self.failure(e, next_action="error")

        return ToolResult(
            success=True,
            data={
                "conversation_id": conversation["id"],
                "participants": [
                    {
                        "id": uid,
                        "displayName": user.get("displayName"),
                        "email": user.get("email"),
                        "photoURL": user.get("photoURL"),
                    }
                    for uid, user in participants.items()
                ],
                "was_created": was_created,
                "conversation_type": conversation["type"],
                "created_at": format_timestamp(conversation.get("created_at")),
                "last_message_at": format_timestamp(conversation.get("last_message_at")),
            },
            next_action="continue",
            instruction_for_ai=f'Use conversation_id "{conversation["id"]}" for the next tool call.',
            confidence=0.9,
            metadata={
                "contact_found": True,
                "conversation_exists": not was_created,
                "participant_count": len(participants),
            },
        )

    def find_contact(self, identifier: str) -> Optional[Dict[str, Any]]:
        """Email first, then user id, then exact display name, then partial name match."""
        identifier = identifier.strip()
        if "@" in identifier:
            contact = self.store.find_user_by_email(identifier)
            if contact:
                return contact

        contact = self.store.get_user(identifier)
        if contact:
            return contact

        normalized = identifier.lower()
        users = self.store.list_users()
        for user in users:
            if (user.get("displayName") or "").lower() == normalized:
                return user
        for user in users:
            display_name = (user.get("displayName") or "").lower()
            if display_name and (normalized in display_name or display_name in normalized):
                return user
        return None
