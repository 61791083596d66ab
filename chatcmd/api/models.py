"""API request/response models."""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field

from chatcmd.models import ToolCall


# ============================================================================
# Command Models
# ============================================================================

class ExecuteCommandRequest(BaseModel):
    """Request model for executing a planner-produced tool chain."""
    command: str = Field(..., description="The user's free-text command", example="Tell John I'm running late")
    current_user_id: str = Field(..., description="Authenticated user issuing the command")
    tool_chain: List[ToolCall] = Field(default_factory=list, description="Ordered tool calls to execute")
    app_context: Optional[Dict[str, Any]] = Field(
        default=None,
        description="current_screen, current_conversation_id, recent_conversations, clarification_response",
    )
    max_chain_length: Optional[int] = Field(default=None, ge=1, description="Override the chain length ceiling")


class ToolChainInfo(BaseModel):
    """Execution trace of a tool chain."""
    tools_used: List[str]
    results: List[Dict[str, Any]]
    total_execution_time_ms: int = 0
    pattern: Optional[str] = None


class CommandResponse(BaseModel):
    """Response model for command execution."""
    success: bool
    result: Optional[Dict[str, Any]] = None
    response: str = Field(..., description="User-facing message")
    action: str = Field(..., example="navigate_to_conversation")
    error: Optional[str] = None
    requires_clarification: bool = False
    clarification_data: Optional[Dict[str, Any]] = None
    original_command: str = ""
    tool_chain: Optional[ToolChainInfo] = None
    warnings: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


class ValidationReportResponse(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


class ValidateResponse(BaseModel):
    """Response model for dry-run validation of a command and its chain."""
    pre_flight: ValidationReportResponse
    chain: ValidationReportResponse
    pattern: str


# ============================================================================
# Tool Models
# ============================================================================

class ToolDescription(BaseModel):
    """A registered tool as shown to the upstream planner."""
    name: str
    description: str
    parameters: Dict[str, Any] = Field(..., description="JSON schema of the tool parameters")
    user_context_params: List[str] = Field(default_factory=list)


class ToolListResponse(BaseModel):
    items: List[ToolDescription]
    count: int
