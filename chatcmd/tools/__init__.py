from typing import TYPE_CHECKING, Optional

from chatcmd.adapters.completion_client import CompletionClient
from chatcmd.adapters.conversation_store import ConversationStore
from chatcmd.adapters.semantic_search import SemanticSearchService
from chatcmd.tools.analyze_conversation import AnalyzeConversationTool
from chatcmd.tools.analyze_conversations_multi import AnalyzeConversationsMultiTool
from chatcmd.tools.base import BaseTool
from chatcmd.tools.get_conversation_info import GetConversationInfoTool
from chatcmd.tools.get_conversations import GetConversationsTool
from chatcmd.tools.get_messages import GetMessagesTool
from chatcmd.tools.lookup_contacts import LookupContactsTool
from chatcmd.tools.request_clarification import RequestClarificationTool
from chatcmd.tools.resolve_conversation import ResolveConversationTool
from chatcmd.tools.search_conversations import SearchConversationsTool
from chatcmd.tools.send_message import SendMessageTool
from chatcmd.tools.summarize_conversation import SummarizeConversationTool

if TYPE_CHECKING:
    from chatcmd.services.tool_registry import ToolRegistry


def build_tool_registry(
    store: ConversationStore,
    search: SemanticSearchService,
    completion: CompletionClient,
    registry: Optional["ToolRegistry"] = None,
) -> "ToolRegistry":
    """Register every chat command tool against the given collaborators."""
    from chatcmd.services.tool_registry import ToolRegistry

    registry = registry or ToolRegistry()
    analyzer = AnalyzeConversationTool(store, search, completion)
    for tool in [
        LookupContactsTool(store),
        ResolveConversationTool(store),
        GetConversationsTool(store),
        GetMessagesTool(store),
        GetConversationInfoTool(store),
        SendMessageTool(store, search),
        SummarizeConversationTool(store, completion),
        SearchConversationsTool(store, search),
        RequestClarificationTool(),
        analyzer,
        AnalyzeConversationsMultiTool(store, search, analyzer),
    ]:
        registry.register(tool)
    return registry


__all__ = [
    "BaseTool",
    "build_tool_registry",
    "AnalyzeConversationTool",
    "AnalyzeConversationsMultiTool",
    "GetConversationInfoTool",
    "GetConversationsTool",
    "GetMessagesTool",
    "LookupContactsTool",
    "RequestClarificationTool",
    "ResolveConversationTool",
    "SearchConversationsTool",
    "SendMessageTool",
    "SummarizeConversationTool",
]
