"""Present a set of options to the user and halt the chain until they choose."""

import logging
from typing import Dict, Any

from chatcmd.models import ToolParameter, ToolResult, ToolContext, ClarificationData, ClarificationOption
from chatcmd.tools.base import BaseTool

logger = logging.getLogger(__name__)


class RequestClarificationTool(BaseTool):
    name = "request_clarification"
    description = (
        "Ask the user to choose between several matches or low-confidence results. "
        "Presents options and waits for the user's selection."
    )
    parameters = [
        ToolParameter(name="clarification_type", type="string", required=True,
                      description="Type of clarification (contact_selection, conversation_selection, message_selection)"),
        ToolParameter(name="options", type="array", required=True,
                      description="Options for the user to choose from"),
        ToolParameter(name="question", type="string", required=True,
                      description="Question to ask the user"),
        ToolParameter(name="context", type="string",
                      description="Why clarification is needed"),
        ToolParameter(name="allow_cancel", type="boolean", default=True,
                      description="Whether the user may cancel the operation"),
    ]

    async def run(self, params: Dict[str, Any], context: ToolContext) -> ToolResult:
        raw_options = params.get("options") or []
        question = params["question"]

        logger.info(
            "Requesting clarification",
            extra={
                "clarification_type": params["clarification_type"],
                "options_count": len(raw_options),
                "question": question[:100],
            },
        )

        if not raw_options:
            return ToolResult(
                success=False,
                error="No options provided for clarification",
                next_action="error",
                confidence=0.0,
            )

        try:
            options = [
                ClarificationOption(
                    id=str(option.get("id") or f"option_{index}"),
                    title=option.get("title") or "Unknown",
                    subtitle=option.get("subtitle") or "",
                    confidence=option.get("confidence") or 0.0,
                    metadata=option.get("metadata") or {},
                )
                for index, option in enumerate(raw_options)
            ]
            clarification = ClarificationData.build(
                clarification_type=params["clarification_type"],
                question=question,
                options=options,
                allow_cancel=params["allow_cancel"],
                context=params.get("context"),
            )
        except (ValueError, AttributeError) as e:
            return self.failure(e, next_action="error")

        return ToolResult(
            success=True,
            data={
                "clarification_type": clarification.clarification_type,
                "question": question,
                "context": clarification.context,
                "options": [option.model_dump() for option in options],
                "best_option": clarification.best_option.model_dump(),
                "allow_cancel": clarification.allow_cancel,
                "requires_user_input": True,
            },
            next_action="clarification_needed",
            clarification=clarification,
            instruction_for_ai=question,
            confidence=0.8,
            metadata={
                "clarification_type": clarification.clarification_type,
                "options_count": len(options),
                "best_option_confidence": clarification.best_option.confidence,
            },
        )
