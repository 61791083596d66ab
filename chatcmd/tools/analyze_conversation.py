"""Answer a question from one conversation using retrieval and a completion model."""

import re
import logging
from typing import Dict, Any, List, Optional

from chatcmd.adapters.completion_client import CompletionClient
from chatcmd.adapters.conversation_store import ConversationStore
from chatcmd.adapters.semantic_search import SemanticSearchService
from chatcmd.infra.error_handler import NotFoundError, AccessDeniedError, CollaboratorError
from chatcmd.models import ToolParameter, ToolResult, ToolContext
from chatcmd.tools.base import BaseTool, format_timestamp, is_participant

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are a helpful assistant that extracts specific information from conversations. "
    "Be precise and cite relevant messages when answering."
)

ANALYSIS_SCHEMA = {
    "type": "object",
    "properties": {
        "answer": {"type": "string"},
        "confidence": {"type": "integer", "description": "0-100"},
        "relevant_messages": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["answer", "confidence", "relevant_messages"],
    "additionalProperties": False,
}

ANSWER_PATTERN = re.compile(r"ANSWER:\s*([\s\S]+?)(?=\nCONFIDENCE:|$)")
CONFIDENCE_PATTERN = re.compile(r"CONFIDENCE:\s*(\d+)")
RELEVANT_PATTERN = re.compile(r"RELEVANT_MESSAGES:\s*([\s\S]+?)$")

DEFAULT_CONFIDENCE = 0.7
MIN_RAG_HITS = 5
MIN_SUPPLEMENT_MESSAGES = 20


def parse_analysis_text(response: str) -> Dict[str, Any]:
    """Parse an ANSWER/CONFIDENCE/RELEVANT_MESSAGES response; raw text on a miss."""
    answer_match = ANSWER_PATTERN.search(response)
    confidence_match = CONFIDENCE_PATTERN.search(response)
    relevant_match = RELEVANT_PATTERN.search(response)
    confidence = int(confidence_match.group(1)) / 100 if confidence_match else DEFAULT_CONFIDENCE
    return {
        "answer": answer_match.group(1).strip() if answer_match else response,
        "confidence": min(max(confidence, 0.0), 1.0),
        "relevant_messages": [relevant_match.group(1).strip()] if relevant_match else [],
    }


def message_content(message: Dict[str, Any]) -> str:
    message_type = message.get("type", "text")
    if message_type == "text":
        return message.get("text") or "[Empty message]"
    if message_type == "image":
        return f"[Image: {message.get('caption') or 'No caption'}]"
    return message.get("text") or "[Media message]"


class AnalyzeConversationTool(BaseTool):
    name = "analyze_conversation"
    description = (
        "Extract specific information from conversation messages. Use for queries like "
        "'Who confirmed?', 'What did John say about X?', 'When is the deadline?', 'Who is coming?'"
    )
    parameters = [
        ToolParameter(name="conversation_id", type="string", required=True,
                      description="The conversation ID to analyze"),
        ToolParameter(name="current_user_id", type="string", required=True,
                      description="The current user ID for context"),
        ToolParameter(name="query", type="string", required=True,
                      description="The specific question to answer from the conversation"),
        ToolParameter(name="max_messages", type="number", default=50,
                      description="Maximum number of recent messages to analyze"),
        ToolParameter(name="use_rag", type="boolean", default=True,
                      description="Whether to use semantic search (recommended for large conversations)"),
    ]
    user_context_params = ["current_user_id"]

    def __init__(
        self,
        store: ConversationStore,
        search: SemanticSearchService,
        completion: CompletionClient,
    ):
        super().__init__()
        self.store = store
        self.search = search
        self.completion = completion

    async def run(self, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        conversation_id = params["conversation_id"]
        user_id = params["current_user_id"]
        query = params["query"]
        max_messages = int(params["max_messages"])
        use_rag = params["use_rag"]

        logger.info(
            "Analyzing conversation for specific query",
            extra={"conversation_id": conversation_id, "query": query[:100], "use_rag": use_rag},
        )

        try:
            conversation = self._get_accessible_conversation(conversation_id, user_id)
            if use_rag:
                messages = await self._get_messages_with_rag(conversation_id, user_id, query, max_messages)
            else:
                messages = self.store.list_messages(conversation_id, limit=max_messages)

            if not messages:
                return ToolResult(
                    success=False,
                    error="No messages found in conversation",
                    next_action="error",
                    instruction_for_ai="Inform user that no messages were found.",
                    confidence=0.0,
                )

            analysis = await self._analyze(messages, query, user_id, conversation)
        except Exception as e:
            return self.failure(e, next_action="error")

        return ToolResult(
            success=True,
            data={
                "answer": analysis["answer"],
                "confidence": analysis["confidence"],
                "relevant_messages": analysis["relevant_messages"],
                "message_count_analyzed": len(messages),
                "conversation_id": conversation_id,
                "query": query,
                "used_rag": use_rag,
            },
            next_action="complete",
            instruction_for_ai=f"Answer: {analysis['answer']}",
            confidence=analysis["confidence"],
            metadata={
                "messages_analyzed": len(messages),
                "relevant_messages_found": len(analysis["relevant_messages"]),
                "used_rag": use_rag,
            },
        )

    def _get_accessible_conversation(self, conversation_id: str, user_id: str) -> Dict[str, Any]:
        conversation = self.store.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        if not is_participant(conversation, user_id):
            raise AccessDeniedError("Conversation")
        return conversation

    async def _get_messages_with_rag(
        self,
        conversation_id: str,
        user_id: str,
        query: str,
        max_messages: int,
    ) -> List[Dict[str, Any]]:
        try:
            hits = await self.search.search(query, user_id, max_messages)
        except CollaboratorError as e:
            logger.warning(f"Semantic search failed, falling back to recent messages: {e}")
            return self.store.list_messages(conversation_id, limit=max_messages)

        matched = [
            {
                "id": hit["id"],
                "sender_id": hit.get("sender_id"),
                "sender_name": hit.get("sender_name"),
                "type": "text",
                "text": hit.get("content", ""),
                "timestamp": hit.get("timestamp"),
            }
            for hit in hits
            if hit.get("conversation_id") == conversation_id
        ]
        logger.info(
            "Semantic search completed",
            extra={"total_results": len(hits), "conversation_results": len(matched)},
        )
        if len(matched) >= MIN_RAG_HITS:
            return matched

        recent = self.store.list_messages(conversation_id, limit=max(MIN_SUPPLEMENT_MESSAGES, max_messages))
        merged: Dict[str, Dict[str, Any]] = {}
        for message in matched + recent:
            merged[message["id"]] = message
        return list(merged.values())

    def _format_transcript(
        self,
        messages: List[Dict[str, Any]],
        user_id: str,
        conversation: Dict[str, Any],
    ) -> str:
        details = conversation.get("participant_details", {})

        def sender_label(message: Dict[str, Any]) -> str:
            sender_id = message.get("sender_id")
            if sender_id == user_id:
                return "You"
            sender = details.get(sender_id) or {}
            return sender.get("displayName") or sender.get("email") or message.get("sender_name") or "Other"

        ordered = sorted(messages, key=lambda m: m.get("timestamp") or 0)
        return "\n".join(
            f"{sender_label(m)} ({format_timestamp(m.get('timestamp'))}): {message_content(m)}"
            for m in ordered
        )

    async def _analyze(
        self,
        messages: List[Dict[str, Any]],
        query: str,
        user_id: str,
        conversation: Dict[str, Any],
    ) -> Dict[str, Any]:
        transcript = self._format_transcript(messages, user_id, conversation)
        prompt = f"""You are analyzing a conversation to answer a specific question.

Conversation:
{transcript}

Question: {query}

Instructions:
1. Read through the conversation carefully
2. Identify relevant information that answers the question
3. Provide a clear, concise answer
4. If multiple people are involved, list them clearly
5. If the answer is unclear or not found, say so honestly

Answer the question directly and specifically. Format your response as:

ANSWER: [Your clear answer here]
CONFIDENCE: [0-100, how confident you are in this answer]
RELEVANT_MESSAGES: [List any specific messages that support your answer]"""
        chat = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

        structured = await self.completion.complete_json(
            chat, "conversation_analysis", ANALYSIS_SCHEMA, temperature=0.3, max_tokens=500
        )
        if structured and structured.get("answer"):
            confidence = structured.get("confidence")
            return {
                "answer": str(structured["answer"]).strip(),
                "confidence": min(max(confidence / 100, 0.0), 1.0)
                if isinstance(confidence, (int, float)) else DEFAULT_CONFIDENCE,
                "relevant_messages": [str(m) for m in structured.get("relevant_messages") or []],
            }

        response = await self.completion.complete(chat, temperature=0.3, max_tokens=500)
        return parse_analysis_text(response)
