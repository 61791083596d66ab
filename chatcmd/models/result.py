"""Universal tool result contract and clarification payloads."""

from typing import Dict, Any, List, Optional, Literal
from pydantic import BaseModel, Field, model_validator


NextAction = Literal["continue", "clarification_needed", "complete", "error"]


class ClarificationOption(BaseModel):
    """One choice presented to the user."""
    id: str
    title: str = "Unknown"
    subtitle: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    display_text: str = ""

    @model_validator(mode="after")
    def _fill_display_text(self):
        if not self.display_text:
            text = self.title
            if self.subtitle:
                text += f" - {self.subtitle}"
            if self.confidence:
                text += f" ({round(self.confidence * 100)}% match)"
            self.display_text = text
        return self


class ClarificationData(BaseModel):
    """A ranked set of options that halts the chain until the user picks one."""
    clarification_type: str = Field(..., description="e.g. 'contact_selection', 'select_conversation'")
    question: str
    options: List[ClarificationOption]
    best_option: ClarificationOption
    allow_cancel: bool = True
    context: Optional[str] = None

    @model_validator(mode="after")
    def _check_options(self):
        if not self.options:
            raise ValueError("clarification requires at least one option")
        if not any(option.id == self.best_option.id for option in self.options):
            raise ValueError("best_option must be one of options")
        return self

    @classmethod
    def build(
        cls,
        clarification_type: str,
        question: str,
        options: List[ClarificationOption],
        allow_cancel: bool = True,
        context: Optional[str] = None,
    ) -> "ClarificationData":
        """Build a clarification, picking the highest-confidence option (first wins ties)."""
        if not options:
            raise ValueError("clarification requires at least one option")
        best = options[0]
        for option in options[1:]:
            if option.confidence > best.confidence:
                best = option
        return cls(
            clarification_type=clarification_type,
            question=question,
            options=options,
            best_option=best,
            allow_cancel=allow_cancel,
            context=context,
        )


class ToolResult(BaseModel):
    """Result returned by every tool and by the chain executor for each step."""
    success: bool
    data: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    next_action: Optional[NextAction] = None
    clarification: Optional[ClarificationData] = None
    instruction_for_ai: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_contract(self):
        if self.next_action == "clarification_needed" and self.clarification is None:
            raise ValueError("clarification_needed results must carry a clarification")
        if not self.success and not self.error:
            raise ValueError("failed results must carry an error message")
        return self

    @property
    def needs_clarification(self) -> bool:
        return self.next_action == "clarification_needed"

    @property
    def tool_name(self) -> Optional[str]:
        return self.metadata.get("tool_name")
