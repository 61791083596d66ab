"""Process-wide service instances for the HTTP layer.

Each getter builds its instance on first use so importing the app does not
touch the database or the OpenAI client. Tests override these with
``app.dependency_overrides``.
"""

from typing import Optional

from chatcmd.adapters.completion_client import CompletionClient
from chatcmd.adapters.conversation_store import ConversationStore
from chatcmd.adapters.semantic_search import SemanticSearchService
from chatcmd.infra.database import get_engine
from chatcmd.services.chain_executor import ToolChainExecutor
from chatcmd.services.chain_validator import ToolChainValidator
from chatcmd.services.command_processor import CommandProcessor
from chatcmd.services.tool_registry import ToolRegistry
from chatcmd.tools import build_tool_registry


_store: Optional[ConversationStore] = None
_registry: Optional[ToolRegistry] = None
_processor: Optional[CommandProcessor] = None


def get_store() -> ConversationStore:
    global _store
    if _store is None:
        _store = ConversationStore(get_engine())
    return _store


def get_registry() -> ToolRegistry:
    global _registry
    if _registry is None:
        store = get_store()
        _registry = build_tool_registry(store, SemanticSearchService(store), CompletionClient())
    return _registry


def get_validator() -> ToolChainValidator:
    return ToolChainValidator(get_registry())


def get_processor() -> CommandProcessor:
    global _processor
    if _processor is None:
        registry = get_registry()
        validator = ToolChainValidator(registry)
        _processor = CommandProcessor(registry, ToolChainExecutor(registry, validator=validator), validator)
    return _processor


def reset() -> None:
    """Drop cached instances (used on shutdown)."""
    global _store, _registry, _processor
    _store = None
    _registry = None
    _processor = None
