"""Per-request context passed down a tool chain."""

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional


@dataclass
class ClarificationResponse:
    """The user's answer to a previous clarification request."""
    selected_option: Dict[str, Any]
    original_clarification: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AppContext:
    """Where the user is in the app when issuing the command."""
    current_screen: str = "chats"  # "chats" | "conversation" | "profile" | "settings"
    current_conversation_id: Optional[str] = None
    recent_conversations: List[str] = field(default_factory=list)
    clarification_response: Optional[ClarificationResponse] = None

    @property
    def in_conversation(self) -> bool:
        return self.current_screen == "conversation" and bool(self.current_conversation_id)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "AppContext":
        if not data:
            return cls()
        clarification = data.get("clarification_response")
        if isinstance(clarification, dict):
            clarification = ClarificationResponse(
                selected_option=clarification.get("selected_option") or {},
                original_clarification=clarification.get("original_clarification") or {},
            )
        return cls(
            current_screen=data.get("current_screen") or "chats",
            current_conversation_id=data.get("current_conversation_id"),
            recent_conversations=list(data.get("recent_conversations") or []),
            clarification_response=clarification,
        )


@dataclass
class ToolContext:
    """Runtime context for one command invocation.

    The executor derives a copy per step with the 1-indexed chain position;
    tools treat it as read-only.
    """
    current_user_id: str
    request_id: str
    app_context: AppContext = field(default_factory=AppContext)
    current_chain_length: int = 0
