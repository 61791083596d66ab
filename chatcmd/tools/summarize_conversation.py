"""Summarize a conversation with a completion model."""

import re
import time
import logging
from collections import Counter
from typing import Dict, Any, List, Optional

from chatcmd.adapters.completion_client import CompletionClient
from chatcmd.adapters.conversation_store import ConversationStore
from chatcmd.infra.error_handler import NotFoundError, AccessDeniedError
from chatcmd.models import ToolParameter, ToolResult, ToolContext
from chatcmd.tools.base import BaseTool, format_timestamp, is_participant

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are a helpful assistant that summarizes conversations concisely and accurately. "
    "Focus on the most important information and maintain context."
)

LENGTH_INSTRUCTIONS = {
    "short": "in 2-3 sentences",
    "medium": "in 4-6 sentences",
    "long": "in 8-10 sentences",
}

LENGTH_TOKENS = {"short": 150, "medium": 300, "long": 500}

TIME_FILTER_HOURS = {"1day": 24, "1week": 7 * 24, "1month": 30 * 24}

TIME_RANGE_LABELS = {
    "1day": "Last 24 hours",
    "1week": "Last week",
    "1month": "Last month",
    "all": "All time",
}

STOPWORDS = {
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    "is", "are", "was", "were", "be", "been", "have", "has", "had", "do", "does", "did",
    "will", "would", "could", "should", "may", "might", "can", "i", "you", "he", "she", "it",
    "we", "they", "me", "him", "her", "us", "them",
}


def time_filter_start(time_filter: str, now_ms: int) -> Optional[int]:
    hours = TIME_FILTER_HOURS.get(time_filter)
    if hours is None:
        return None
    return now_ms - hours * 3600 * 1000


def extract_key_topics(messages: List[Dict[str, Any]], top_n: int = 5) -> List[str]:
    """Most frequent non-stopword words longer than three characters."""
    counts: Counter = Counter()
    for message in messages:
        for word in re.split(r"\W+", (message.get("text") or "").lower()):
            if len(word) > 3 and word not in STOPWORDS:
                counts[word] += 1
    return [word for word, _ in counts.most_common(top_n)]


class SummarizeConversationTool(BaseTool):
    name = "summarize_conversation"
    description = "Summarize a conversation, optionally limited to a recent time window."
    parameters = [
        ToolParameter(name="conversation_id", type="string", required=True,
                      description="The conversation ID to summarize"),
        ToolParameter(name="current_user_id", type="string", required=True,
                      description="The current user ID"),
        ToolParameter(name="time_filter", type="string", default="all",
                      description="Time window: 1day, 1week, 1month or all"),
        ToolParameter(name="max_messages", type="number", default=50,
                      description="Maximum number of messages to summarize"),
        ToolParameter(name="summary_length", type="string", default="medium",
                      description="Summary length: short, medium or long"),
    ]
    user_context_params = ["current_user_id"]

    def __init__(self, store: ConversationStore, completion: CompletionClient):
        super().__init__()
        self.store = store
        self.completion = completion

    async def run(self, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        conversation_id = params["conversation_id"]
        user_id = params["current_user_id"]
        time_filter = params["time_filter"]
        summary_length = params["summary_length"] if params["summary_length"] in LENGTH_INSTRUCTIONS else "medium"

        logger.info(
            "Summarizing conversation",
            extra={"conversation_id": conversation_id, "time_filter": time_filter, "summary_length": summary_length},
        )

        try:
            conversation = self.store.get_conversation(conversation_id)
            if conversation is None:
                raise NotFoundError("Conversation not found")
            if not is_participant(conversation, user_id):
                raise AccessDeniedError("Conversation")

            messages = self.store.list_messages(
                conversation_id,
                limit=int(params["max_messages"]),
                since=time_filter_start(time_filter, int(time.time() * 1000)),
            )
            if not messages:
                return ToolResult(
                    success=False,
                    error="No messages found in the specified time range",
                    next_action="complete",
                    confidence=0.0,
                )

            messages.reverse()
            summary = await self._generate_summary(messages, summary_length, user_id, conversation)
        except Exception as e:
            return self.failure(e)

        participants = []
        for message in messages:
            name = message.get("sender_name")
            if name and name not in participants:
                participants.append(name)

        return ToolResult(
            success=True,
            data={
                "summary": summary,
                "message_count": len(messages),
                "time_range": TIME_RANGE_LABELS.get(time_filter, "All time"),
                "conversation_id": conversation_id,
                "summary_length": summary_length,
                "participants": participants,
                "key_topics": extract_key_topics(messages),
            },
            next_action="complete",
            instruction_for_ai=f"Summary: {summary}",
            confidence=0.9,
            metadata={
                "messages_processed": len(messages),
                "time_filter": time_filter,
                "summary_length": summary_length,
            },
        )

    async def _generate_summary(
        self,
        messages: List[Dict[str, Any]],
        summary_length: str,
        user_id: str,
        conversation: Dict[str, Any],
    ) -> str:
        details = conversation.get("participant_details", {})
        lines = []
        for message in messages:
            sender_id = message["sender_id"]
            if sender_id == user_id:
                sender = "You"
            else:
                sender = (details.get(sender_id) or {}).get("displayName") or message.get("sender_name") or "Other"
            lines.append(f"{sender} ({format_timestamp(message['timestamp'])}): {message.get('text') or '[Media message]'}")

        prompt = (
            f"Please summarize the following conversation {LENGTH_INSTRUCTIONS[summary_length]}. "
            "Focus on key topics, decisions made, and important information shared.\n\n"
            f"Conversation:\n{chr(10).join(lines)}\n\nSummary:"
        )
        summary = await self.completion.complete(
            [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=0.3,
            max_tokens=LENGTH_TOKENS[summary_length],
        )
        return summary or "Unable to generate summary"
