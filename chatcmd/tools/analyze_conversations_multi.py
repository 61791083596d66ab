"""Find and answer questions across several conversations.

Relevant messages are found with semantic search, grouped per conversation
and ranked by relevance and recency. One match is analyzed directly; a few
matches for a "who/everyone" style question are analyzed concurrently and
merged; anything else asks the user which conversation they meant.
"""

import time
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from chatcmd.adapters.conversation_store import ConversationStore
from chatcmd.adapters.semantic_search import SemanticSearchService
from chatcmd.infra.config import config
from chatcmd.models import ToolParameter, ToolResult, ToolContext, ClarificationData, ClarificationOption
from chatcmd.tools.analyze_conversation import AnalyzeConversationTool
from chatcmd.tools.base import BaseTool, format_relative_time, truncate_text, is_participant, participant_name

logger = logging.getLogger(__name__)


AGGREGATION_KEYWORDS = [
    "who is", "who are", "who's", "who all",
    "everyone", "everybody", "all who",
    "list everyone", "list all",
    "how many people", "how many are",
]

DEFAULT_MESSAGE_SCORE = 0.5
RELEVANCE_WEIGHT = 0.7
RECENCY_WEIGHT = 0.3
SNIPPET_LENGTH = 60
AGGREGATED_CONFIDENCE = 0.85


@dataclass
class ConversationGroup:
    """Search hits for one conversation, built per request."""
    conversation_id: str
    messages: List[Dict[str, Any]] = field(default_factory=list)
    last_active: int = 0
    relevance_score: float = 0.0
    title: Optional[str] = None
    participant_details: Optional[Dict[str, Any]] = None

    @property
    def display_title(self) -> str:
        return self.title or f"Conversation {self.conversation_id[:8]}"


def should_aggregate(query: str) -> bool:
    lowered = query.lower()
    return any(keyword in lowered for keyword in AGGREGATION_KEYWORDS)


def group_and_score(
    hits: List[Dict[str, Any]],
    time_window_hours: float,
    now_ms: int,
) -> List[ConversationGroup]:
    """
    Group hits by conversation and rank by 0.7 * relevance + 0.3 * recency.

    Hits older than the time window are dropped (a window of 0 keeps all).
    Hits without a timestamp are always kept.
    """
    cutoff = now_ms - int(time_window_hours * 3600 * 1000) if time_window_hours > 0 else 0
    groups: Dict[str, ConversationGroup] = {}

    for hit in hits:
        conversation_id = hit.get("conversation_id")
        if not conversation_id:
            logger.warning(f"Search hit {hit.get('id')} has no conversation id")
            continue
        timestamp = hit.get("timestamp") or 0
        if cutoff and timestamp and timestamp < cutoff:
            continue

        group = groups.get(conversation_id)
        if group is None:
            group = groups[conversation_id] = ConversationGroup(conversation_id=conversation_id, last_active=timestamp)
        group.messages.append(hit)
        score = hit.get("score")
        group.relevance_score += score if score is not None else DEFAULT_MESSAGE_SCORE
        group.last_active = max(group.last_active, timestamp)

    def combined_score(group: ConversationGroup) -> float:
        return group.relevance_score * RELEVANCE_WEIGHT + (group.last_active / now_ms) * RECENCY_WEIGHT

    return sorted(groups.values(), key=combined_score, reverse=True)


def conversation_title(conversation: Dict[str, Any], user_id: str) -> str:
    if conversation.get("name"):
        return conversation["name"]
    if conversation.get("title"):
        return conversation["title"]
    participants = conversation.get("participants", [])
    if conversation.get("type") == "direct" and conversation.get("participant_details"):
        other = next((p for p in participants if p != user_id), None)
        if other:
            return participant_name(conversation, other)
    return f"Group Chat ({len(participants)} people)"


def aggregate_answers(analyses: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Merge per-conversation answers into one attributed answer.

    A single answer is returned as is, so merging one conversation gives the
    same text as analyzing it directly. Attribution stays in ``sources``.
    """
    sources = []
    answers = []
    for index, analysis in enumerate(analyses):
        answer = analysis["result"].data.get("answer")
        if not answer:
            continue
        sources.append(analysis["title"] or f"Conversation {index + 1}")
        answers.append(answer)

    if len(answers) == 1:
        return {"answer": answers[0], "sources": sources}

    sections = [f"**From {source}:**\n{answer}" for source, answer in zip(sources, answers)]
    combined = f"I found information in {len(sources)} conversations:\n\n" + "\n\n".join(sections)
    combined += f"\n\n*Sources: {', '.join(sources)}*"
    return {"answer": combined, "sources": sources}


class AnalyzeConversationsMultiTool(BaseTool):
    name = "analyze_conversations_multi"
    description = (
        "Search across all of the user's conversations to answer a question when no conversation "
        "is open, e.g. 'Who is coming to the party?' from the chats list."
    )
    parameters = [
        ToolParameter(name="query", type="string", required=True,
                      description="The question to answer"),
        ToolParameter(name="current_user_id", type="string", required=True,
                      description="The current user ID"),
        ToolParameter(name="max_conversations", type="number", default=5,
                      description="Maximum number of conversations to consider"),
        ToolParameter(name="time_window_hours", type="number", default=config.DEFAULT_TIME_WINDOW_HOURS,
                      description="Only consider messages from the last N hours (0 for no limit)"),
    ]
    user_context_params = ["current_user_id"]

    def __init__(
        self,
        store: ConversationStore,
        search: SemanticSearchService,
        analyzer: AnalyzeConversationTool,
        search_candidates: Optional[int] = None,
        auto_aggregate_max: Optional[int] = None,
    ):
        super().__init__()
        self.store = store
        self.search = search
        self.analyzer = analyzer
        self.search_candidates = search_candidates or config.MULTI_SEARCH_CANDIDATES
        self.auto_aggregate_max = auto_aggregate_max or config.AUTO_AGGREGATE_MAX_CONVERSATIONS

    async def run(self, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        query = params["query"]
        user_id = params["current_user_id"]
        max_conversations = int(params["max_conversations"])
        time_window_hours = params["time_window_hours"]

        logger.info(
            "Analyzing multiple conversations for query",
            extra={"query": query[:100], "max_conversations": max_conversations},
        )

        try:
            hits = await self.search.search(query, user_id, self.search_candidates)
        except Exception as e:
            return self.failure(e, next_action="error")

        if not hits:
            return self._no_results(query)

        now_ms = int(time.time() * 1000)
        groups = self._visible_groups(group_and_score(hits, time_window_hours, now_ms), user_id)
        if not groups:
            logger.warning(
                "No accessible conversations after grouping",
                extra={"hit_count": len(hits), "time_window_hours": time_window_hours},
            )
            return self._no_results(query)

        top = groups[:max_conversations]

        if len(groups) == 1:
            return await self._analyze_single(groups[0], query, user_id, context)

        if should_aggregate(query) and len(groups) <= self.auto_aggregate_max:
            logger.info(
                "Auto-aggregating results across conversations",
                extra={"query": query[:100], "conversation_count": len(groups)},
            )
            return await self._analyze_many(top, query, user_id, context)

        return self._request_clarification(top, query, now_ms)

    def _visible_groups(self, groups: List[ConversationGroup], user_id: str) -> List[ConversationGroup]:
        """Drop conversations the user no longer belongs to and fill in titles for the rest."""
        visible = []
        for group in groups:
            conversation = self.store.get_conversation(group.conversation_id)
            if not is_participant(conversation, user_id):
                logger.warning(
                    "Skipping search hits from an inaccessible conversation",
                    extra={"conversation_id": group.conversation_id, "hit_count": len(group.messages)},
                )
                continue
            group.title = conversation_title(conversation, user_id)
            group.participant_details = conversation.get("participant_details")
            visible.append(group)
        return visible

    def _analyzer_params(self, group: ConversationGroup, query: str, user_id: str) -> Dict[str, Any]:
        return {
            "conversation_id": group.conversation_id,
            "current_user_id": user_id,
            "query": query,
            "max_messages": 50,
            "use_rag": True,
        }

    async def _analyze_single(
        self,
        group: ConversationGroup,
        query: str,
        user_id: str,
        context: ToolContext,
    ) -> ToolResult:
        logger.info(
            "Single relevant conversation found, analyzing directly",
            extra={"conversation_id": group.conversation_id, "message_count": len(group.messages)},
        )
        result = await self.analyzer.execute(self._analyzer_params(group, query, user_id), context)
        result.metadata["searched_multiple_conversations"] = True
        result.metadata["conversations_found"] = 1
        return result

    async def _analyze_many(
        self,
        groups: List[ConversationGroup],
        query: str,
        user_id: str,
        context: ToolContext,
    ) -> ToolResult:
        outcomes = await asyncio.gather(
            *[self.analyzer.execute(self._analyzer_params(g, query, user_id), context) for g in groups],
            return_exceptions=True,
        )

        analyses = []
        for group, outcome in zip(groups, outcomes):
            if isinstance(outcome, Exception):
                logger.error(
                    f"Error analyzing conversation {group.conversation_id}: {outcome}",
                    exc_info=outcome,
                )
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            if outcome.success:
                analyses.append({"group": group, "title": group.title, "result": outcome})

        if not analyses:
            return ToolResult(
                success=False,
                error="Failed to analyze conversations",
                next_action="error",
                instruction_for_ai="Unable to analyze the conversations. Please try again.",
                confidence=0.0,
            )

        merged = aggregate_answers(analyses)
        relevant_messages = []
        for analysis in analyses:
            relevant_messages.extend(analysis["result"].data.get("relevant_messages") or [])

        return ToolResult(
            success=True,
            data={
                "answer": merged["answer"],
                "confidence": AGGREGATED_CONFIDENCE,
                "relevant_messages": relevant_messages,
                "message_count_analyzed": sum(
                    a["result"].data.get("message_count_analyzed", 0) for a in analyses
                ),
                "conversation_id": "multiple",
                "query": query,
                "used_rag": True,
                "sources": merged["sources"],
                "conversation_count": len(analyses),
                "aggregated": True,
            },
            next_action="complete",
            instruction_for_ai=merged["answer"],
            confidence=AGGREGATED_CONFIDENCE,
            metadata={"conversations_analyzed": len(analyses), "aggregated": True},
        )

    def _request_clarification(
        self,
        groups: List[ConversationGroup],
        query: str,
        now_ms: int,
    ) -> ToolResult:
        logger.info(
            "Multiple relevant conversations found, requesting clarification",
            extra={"conversation_count": len(groups), "query": query[:50]},
        )
        options = []
        for group in groups:
            snippet = truncate_text(group.messages[0].get("content") or "[Media message]", SNIPPET_LENGTH)
            options.append(ClarificationOption(
                id=group.conversation_id,
                title=group.display_title,
                subtitle=f'{format_relative_time(group.last_active, now_ms)} - "{snippet}"',
                confidence=min(group.relevance_score / len(group.messages), 1.0),
                metadata={
                    "conversation_id": group.conversation_id,
                    "message_count": len(group.messages),
                    "last_active": group.last_active,
                    "snippet": snippet,
                },
            ))

        return ToolResult(
            success=True,
            data={
                "conversations": [
                    {
                        "conversation_id": g.conversation_id,
                        "title": g.display_title,
                        "message_count": len(g.messages),
                        "relevance_score": g.relevance_score,
                        "last_active": g.last_active,
                    }
                    for g in groups
                ],
                "query": query,
            },
            next_action="clarification_needed",
            clarification=ClarificationData.build(
                clarification_type="select_conversation",
                question=(
                    f'I found information about "{query}" in {len(groups)} conversations. '
                    "Which one would you like to know about?"
                ),
                options=options,
            ),
            instruction_for_ai=(
                f"Found {len(groups)} relevant conversations. User needs to select which one to analyze."
            ),
            confidence=0.8,
            metadata={"conversations_found": len(groups)},
        )

    def _no_results(self, query: str) -> ToolResult:
        return ToolResult(
            success=False,
            error="No relevant conversations found",
            next_action="complete",
            instruction_for_ai=(
                f'No relevant conversations found for "{query}". Inform user that no recent '
                "conversations discuss this topic."
            ),
            confidence=0.0,
            metadata={"conversations_found": 0},
        )
