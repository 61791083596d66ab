"""Find the conversations that best match a free-text query."""

import logging
from typing import Dict, Any, List

from chatcmd.adapters.conversation_store import ConversationStore
from chatcmd.adapters.semantic_search import SemanticSearchService
from chatcmd.models import ToolParameter, ToolResult, ToolContext, ClarificationData, ClarificationOption
from chatcmd.tools.analyze_conversations_multi import conversation_title
from chatcmd.tools.base import BaseTool, is_participant

logger = logging.getLogger(__name__)


CANDIDATE_MULTIPLIER = 3


def rank_conversations(hits: List[Dict[str, Any]], min_confidence: float) -> List[Dict[str, Any]]:
    """
    Group hits by conversation, dropping those below ``min_confidence``.

    Conversations are ordered by number of matching messages, then by
    average score.
    """
    grouped: Dict[str, Dict[str, Any]] = {}
    for hit in hits:
        conversation_id = hit.get("conversation_id")
        if not conversation_id:
            continue
        score = hit.get("score") or 0.0
        if score < min_confidence:
            continue
        entry = grouped.setdefault(
            conversation_id,
            {"conversation_id": conversation_id, "messages": [], "total_score": 0.0, "most_recent": None},
        )
        entry["messages"].append(hit)
        entry["total_score"] += score
        if entry["most_recent"] is None or (hit.get("timestamp") or 0) > (entry["most_recent"].get("timestamp") or 0):
            entry["most_recent"] = hit

    ranked = []
    for entry in grouped.values():
        entry["message_count"] = len(entry["messages"])
        entry["avg_score"] = entry["total_score"] / entry["message_count"]
        ranked.append(entry)
    ranked.sort(key=lambda e: (-e["message_count"], -e["avg_score"]))
    return ranked


class SearchConversationsTool(BaseTool):
    name = "search_conversations"
    description = (
        "Find which of the user's conversations discuss a topic. Returns the best match, or asks "
        "the user to choose when several conversations match."
    )
    parameters = [
        ToolParameter(name="query", type="string", required=True,
                      description="What to search for"),
        ToolParameter(name="user_id", type="string", required=True,
                      description="The current user ID"),
        ToolParameter(name="max_results", type="number", default=5,
                      description="Maximum number of conversations to return"),
        ToolParameter(name="min_confidence", type="number", default=0.3,
                      description="Minimum relevance score (0.0-1.0) for a matching message"),
    ]
    user_context_params = ["user_id"]

    def __init__(self, store: ConversationStore, search: SemanticSearchService):
        super().__init__()
        self.store = store
        self.search = search

    async def run(self, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        query = params["query"]
        user_id = params["user_id"]
        max_results = int(params["max_results"])
        min_confidence = float(params["min_confidence"])

        logger.info(
            "Searching conversations",
            extra={"query": query[:100], "max_results": max_results},
        )

        try:
            hits = await self.search.search(query, user_id, max_results * CANDIDATE_MULTIPLIER)
            ranked = rank_conversations(hits, min_confidence)[:max_results]
            results = self._with_details(ranked, user_id)
        except Exception as e:
            return self.failure(e, next_action="error")

        if not results:
            return ToolResult(
                success=False,
                error=f'No conversations found matching "{query}"',
                next_action="complete",
                instruction_for_ai=(
                    f'No conversations found matching "{query}". Inform user no relevant conversations were found.'
                ),
                confidence=0.0,
            )

        clarification = None
        if len(results) == 1:
            next_action = "continue"
            instruction = (
                f'Found conversation "{results[0]["title"]}" (ID: {results[0]["conversation_id"]}). '
                "Use this conversation_id for analysis."
            )
        else:
            next_action = "clarification_needed"
            clarification = self._clarification(results, query)
            instruction = f"Found {len(results)} relevant conversations. User needs to select which one."

        logger.info(
            "Conversation search completed",
            extra={"results_found": len(results), "next_action": next_action},
        )

        return ToolResult(
            success=True,
            data={
                "conversations": results,
                "search_query": query,
                "result_count": len(results),
            },
            next_action=next_action,
            clarification=clarification,
            instruction_for_ai=instruction,
            confidence=min(results[0]["relevance_score"], 1.0),
            metadata={"conversations_found": len(results), "search_query": query},
        )

    def _with_details(self, ranked: List[Dict[str, Any]], user_id: str) -> List[Dict[str, Any]]:
        results = []
        for entry in ranked:
            conversation = self.store.get_conversation(entry["conversation_id"])
            if not is_participant(conversation, user_id):
                continue
            preview = (entry["most_recent"] or entry["messages"][0]).get("content") or "No preview available"
            last_message = conversation.get("last_message") or {}
            results.append({
                "conversation_id": entry["conversation_id"],
                "title": conversation_title(conversation, user_id),
                "participants": conversation["participants"],
                "participant_details": conversation["participant_details"],
                "relevance_score": entry["avg_score"],
                "matching_messages_count": entry["message_count"],
                "most_relevant_message": preview,
                "last_message_timestamp": last_message.get("timestamp") or entry["most_recent"].get("timestamp"),
            })
        return results

    @staticmethod
    def _clarification(results: List[Dict[str, Any]], query: str) -> ClarificationData:
        options = [
            ClarificationOption(
                id=conv["conversation_id"],
                title=conv["title"],
                subtitle=conv["most_relevant_message"][:100] + "...",
                confidence=min(conv["relevance_score"], 1.0),
                metadata={
                    "participants": conv["participants"],
                    "matching_messages_count": conv["matching_messages_count"],
                    "last_message_timestamp": conv["last_message_timestamp"],
                },
                display_text=f'{index + 1}. {conv["title"]} - "{conv["most_relevant_message"][:50]}..."',
            )
            for index, conv in enumerate(results)
        ]
        return ClarificationData.build(
            clarification_type="select_conversation",
            question=(
                f'I found {len(results)} conversations about "{query}". '
                "Which one would you like to know about?"
            ),
            options=options,
        )
