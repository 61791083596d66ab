"""Error taxonomy for tool execution.

Tools raise these internally and convert them into failed ``ToolResult``
objects at their ``execute`` boundary. Nothing here is retried: a failed
tool step is terminal for that step.
"""

from typing import Optional
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories of errors surfaced by tools."""
    NOT_FOUND = "not_found"  # Unknown tool, contact or conversation
    ACCESS_DENIED = "access_denied"  # Requester is not a participant
    VALIDATION = "validation"  # Malformed or missing parameters
    AMBIGUITY = "ambiguity"  # Routed through clarification, never an error result
    COLLABORATOR = "collaborator"  # Search, store or completion call failed
    UNKNOWN = "unknown"


class ToolError(Exception):
    """Base exception for errors raised inside a tool."""
    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN):
        self.message = message
        self.category = category
        super().__init__(message)


class NotFoundError(ToolError):
    """A referenced entity does not exist."""
    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.NOT_FOUND)


class AccessDeniedError(ToolError):
    """The requesting user cannot see the referenced conversation.

    The public message is deliberately the same as for a missing
    conversation so callers cannot probe for conversations they are not in.
    """
    def __init__(self, entity: str = "Conversation"):
        super().__init__(f"{entity} not found", ErrorCategory.ACCESS_DENIED)


class ToolValidationError(ToolError):
    """Tool parameters are malformed."""
    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.VALIDATION)


class CollaboratorError(ToolError):
    """An external collaborator (search, completion, store) failed."""
    def __init__(self, message: str, service: Optional[str] = None):
        self.service = service
        super().__init__(message, ErrorCategory.COLLABORATOR)


def classify_error(error: Exception) -> ErrorCategory:
    """
    Classify an exception into an error category.

    Args:
        error: The exception to classify

    Returns:
        ErrorCategory for logging and metrics labels
    """
    if isinstance(error, ToolError):
        return error.category

    error_str = str(error).lower()

    if "not found" in error_str:
        return ErrorCategory.NOT_FOUND

    if any(keyword in error_str for keyword in ["access denied", "forbidden", "not a participant"]):
        return ErrorCategory.ACCESS_DENIED

    if isinstance(error, (ValueError, TypeError, KeyError)):
        return ErrorCategory.VALIDATION

    if any(keyword in error_str for keyword in ["connection", "timeout", "network", "rate limit", "429"]):
        return ErrorCategory.COLLABORATOR

    return ErrorCategory.UNKNOWN


def wrap_llm_error(error: Exception, provider: str) -> CollaboratorError:
    """
    Wrap LLM/embedding API errors into a CollaboratorError.

    Args:
        error: Original exception
        provider: Provider name (e.g. 'openai')

    Returns:
        CollaboratorError with a message that is safe to surface to users
    """
    error_str = str(error)
    error_lower = error_str.lower()

    if "rate limit" in error_lower or "429" in error_str:
        return CollaboratorError(f"{provider} rate limit exceeded", service=provider)

    if "401" in error_str or "unauthorized" in error_lower or "authentication" in error_lower:
        return CollaboratorError(f"{provider} authentication failed", service=provider)

    if any(keyword in error_lower for keyword in ["connection", "timeout", "network"]):
        return CollaboratorError(f"{provider} network error: {error_str}", service=provider)

    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        return CollaboratorError(f"{provider} API error ({status_code})", service=provider)

    return CollaboratorError(f"{provider} error: {error_str}", service=provider)
