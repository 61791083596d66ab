"""Tests for sequential chain execution."""

import pytest

from chatcmd.models import ToolCall, ToolParameter, ToolResult
from chatcmd.services.chain_executor import ToolChainExecutor, override_user_scoped_parameters
from chatcmd.services.chain_validator import ToolChainValidator
from chatcmd.services.tool_registry import ToolRegistry
from chatcmd.tools.base import BaseTool


class RecordingTool(BaseTool):
    name = "record"
    description = "Records the context it was called with"
    parameters = [ToolParameter(name="owner_id", type="string", description="Owner")]
    user_context_params = ["owner_id"]

    def __init__(self):
        super().__init__()
        self.calls = []

    async def execute(self, params, context):
        self.calls.append((params, context.current_chain_length))
        return ToolResult(success=True, data={"owner_id": params["owner_id"]}, next_action="continue")


class ExplodingTool(BaseTool):
    name = "explode"
    description = "Always raises"

    async def execute(self, params, context):
        raise RuntimeError("boom")


class DecliningTool(BaseTool):
    name = "decline"
    description = "Always reports failure without raising"

    async def run(self, params, context):
        return ToolResult(success=False, error="nothing to do", next_action="error")


class OfflineDirectoryTool(BaseTool):
    name = "lookup_contacts"
    description = "Contact lookup whose backing store is down"

    async def run(self, params, context):
        raise ConnectionError("directory offline")


def steps(*items):
    return [ToolCall(tool=tool, parameters=params) for tool, params in items]


@pytest.fixture
def executor(registry):
    return ToolChainExecutor(registry, validator=ToolChainValidator(registry))


class TestOverrideUserScopedParameters:

    def test_planner_value_replaced(self, context):
        tool = RecordingTool()
        params = {"owner_id": "u_attacker"}
        overridden = override_user_scoped_parameters(tool, params, context)
        assert overridden["owner_id"] == "u_me"
        assert params["owner_id"] == "u_attacker"

    def test_missing_value_filled(self, context):
        assert override_user_scoped_parameters(RecordingTool(), {}, context) == {"owner_id": "u_me"}

    def test_tool_without_user_params(self, context):
        params = {"x": 1}
        assert override_user_scoped_parameters(ExplodingTool(), params, context) is params


class TestExecuteChain:

    @pytest.mark.asyncio
    async def test_lookup_then_send(self, executor, store, context):
        results = await executor.execute_chain(steps(
            ("lookup_contacts", {"query": "Sarah", "user_id": "u_john_doe"}),
            ("send_message", {"content": "Running late", "recipient_id": "[recipient_id]", "sender_id": "u_sarah"}),
        ), context)

        assert [r.success for r in results] == [True, True]
        assert results[0].data["contact_id"] == "u_sarah"
        assert results[1].data["conversation_id"] == "c_sarah"

        latest = store.list_messages("c_sarah", limit=1)[0]
        assert latest["text"] == "Running late"
        assert latest["sender_id"] == "u_me"

    @pytest.mark.asyncio
    async def test_clarification_stops_chain(self, executor, store, context):
        before = store.count_messages("c_john")
        results = await executor.execute_chain(steps(
            ("lookup_contacts", {"query": "John"}),
            ("send_message", {"content": "hi", "recipient_id": "[recipient_id]"}),
        ), context)

        assert len(results) == 1
        assert results[0].needs_clarification
        assert store.count_messages("c_john") == before

    @pytest.mark.asyncio
    async def test_critical_failure_stops_chain(self, executor, context):
        results = await executor.execute_chain(steps(
            ("lookup_contacts", {"query": "Nobody"}),
            ("send_message", {"content": "hi", "recipient_id": "[recipient_id]"}),
        ), context)

        assert len(results) == 1
        assert not results[0].success
        assert results[0].error == 'No contacts found matching "Nobody"'

    @pytest.mark.asyncio
    async def test_unknown_tool_does_not_stop_chain(self, executor, context):
        results = await executor.execute_chain(steps(("teleport", {}), ("get_conversations", {})), context)

        assert len(results) == 2
        assert results[0].error == "Tool 'teleport' not found"
        assert results[0].next_action == "error"
        assert results[1].success

    @pytest.mark.asyncio
    async def test_truncated_at_ceiling(self, executor, context):
        results = await executor.execute_chain(steps(
            ("get_conversations", {}),
            ("get_conversation_info", {"conversation_id": "c_sarah"}),
            ("get_messages", {"conversation_id": "c_sarah"}),
        ), context, max_chain_length=2)

        assert len(results) == 2
        assert results[1].tool_name == "get_conversation_info"

    @pytest.mark.asyncio
    async def test_invalid_parameters(self, executor, context):
        results = await executor.execute_chain(steps(("get_messages", {"conversation_id": "c_sarah", "limit": -1})), context)

        assert not results[0].success
        assert results[0].error == "Invalid parameters: limit must be a positive number"
        assert results[0].next_action == "error"

    @pytest.mark.asyncio
    async def test_step_metadata(self, executor, context):
        results = await executor.execute_chain(steps(
            ("get_conversations", {}),
            ("get_conversation_info", {"conversation_id": "c_sarah"}),
        ), context)

        for position, result in enumerate(results, start=1):
            assert result.metadata["chain_position"] == position
            assert result.metadata["execution_time_ms"] >= 0
        assert results[0].tool_name == "get_conversations"

    @pytest.mark.asyncio
    async def test_tool_exception_becomes_failed_result(self, context):
        recorder = RecordingTool()
        executor = ToolChainExecutor(ToolRegistry([ExplodingTool(), recorder]))

        results = await executor.execute_chain(steps(("explode", {}), ("record", {"owner_id": "u_other"})), context)

        assert results[0].success is False
        assert results[0].error == "boom"
        assert results[1].data == {"owner_id": "u_me"}

    @pytest.mark.asyncio
    async def test_per_step_chain_length(self, context):
        recorder = RecordingTool()
        executor = ToolChainExecutor(ToolRegistry([ExplodingTool(), recorder]))

        await executor.execute_chain(steps(("explode", {}), ("record", {})), context)

        assert recorder.calls[0][1] == 2
        assert context.current_chain_length == 0

    @pytest.mark.asyncio
    async def test_non_critical_failure_continues(self, context):
        recorder = RecordingTool()
        executor = ToolChainExecutor(ToolRegistry([DecliningTool(), recorder]))

        results = await executor.execute_chain(steps(("decline", {}), ("record", {})), context)

        assert len(results) == 2
        assert results[0].error == "nothing to do"
        assert results[1].success
        assert len(recorder.calls) == 1

    @pytest.mark.asyncio
    async def test_critical_tool_raising_stops_chain(self, context):
        recorder = RecordingTool()
        executor = ToolChainExecutor(ToolRegistry([OfflineDirectoryTool(), recorder]))

        results = await executor.execute_chain(steps(("lookup_contacts", {}), ("record", {})), context)

        assert len(results) == 1
        assert results[0].success is False
        assert results[0].error == "directory offline"
        assert results[0].metadata["chain_position"] == 1
        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_position_matches_step_context(self, context):
        recorder = RecordingTool()
        executor = ToolChainExecutor(ToolRegistry([DecliningTool(), recorder]))

        results = await executor.execute_chain(steps(("decline", {}), ("record", {})), context)

        assert results[1].metadata["chain_position"] == recorder.calls[0][1] == 2
