"""Tests for the end-to-end command flow."""

import pytest

from chatcmd.models import AppContext, ToolCall, ToolResult
from chatcmd.services.chain_executor import ToolChainExecutor
from chatcmd.services.chain_validator import ToolChainValidator
from chatcmd.services.command_processor import CommandProcessor, determine_action, generate_chain_response


def steps(*items):
    return [ToolCall(tool=tool, parameters=params) for tool, params in items]


@pytest.fixture
def processor(registry):
    validator = ToolChainValidator(registry)
    return CommandProcessor(registry, ToolChainExecutor(registry, validator=validator), validator)


class TestResponseHelpers:

    def test_determine_action(self):
        assert determine_action(steps(("lookup_contacts", {}), ("send_message", {}))) == "navigate_to_conversation"
        assert determine_action(steps(("summarize_conversation", {}))) == "show_summary"
        assert determine_action(steps(("request_clarification", {}))) == "request_clarification"
        assert determine_action(steps(("teleport", {}))) == "no_action"
        assert determine_action([]) == "no_action"

    def test_generate_chain_response(self):
        summary = ToolResult(success=True, data={"summary": "They met."}, metadata={"tool_name": "summarize_conversation"})
        assert generate_chain_response([summary], steps(("summarize_conversation", {}))) == (
            "Here's a summary of your conversation:\n\nThey met."
        )
        answer = ToolResult(success=True, data={"answer": "Olivia"}, metadata={"tool_name": "analyze_conversation"})
        assert generate_chain_response([answer], steps(("analyze_conversation", {}))) == "Olivia"
        assert generate_chain_response([], steps(("get_messages", {}))) == "Retrieved messages as requested."
        assert generate_chain_response([], steps(("get_conversation_info", {}))) == "Command executed successfully."


class TestCommandProcessor:

    @pytest.mark.asyncio
    async def test_send_to_contact_by_name(self, processor, store):
        response = await processor.process(
            "Tell Sarah I'm running late",
            "u_me",
            steps(
                ("lookup_contacts", {"query": "Sarah"}),
                ("send_message", {"content": "I'm running late", "recipient_id": "[recipient_id]"}),
            ),
            request_id="req-1",
        )

        assert response["success"] is True
        assert response["action"] == "navigate_to_conversation"
        assert response["response"] == "Message sent successfully!"
        assert response["result"]["conversation_id"] == "c_sarah"
        assert response["tool_chain"]["tools_used"] == ["lookup_contacts", "send_message"]
        assert response["tool_chain"]["pattern"] == "Send message to contact by name"
        assert response["original_command"] == "Tell Sarah I'm running late"
        assert "send_message recipient_id is a placeholder; it will be filled from lookup_contacts" in response["warnings"]
        assert store.list_messages("c_sarah", limit=1)[0]["text"] == "I'm running late"

    @pytest.mark.asyncio
    async def test_ambiguous_contact(self, processor):
        response = await processor.process(
            "Tell John I'm running late",
            "u_me",
            steps(
                ("lookup_contacts", {"query": "John"}),
                ("send_message", {"content": "I'm running late"}),
            ),
        )

        assert response["success"] is True
        assert response["requires_clarification"] is True
        assert response["action"] == "request_clarification"
        assert response["response"] == 'I found 3 contacts named "John". Which one did you mean?'
        assert response["clarification_data"]["best_option"]["id"] == "u_john_smith"
        assert response["tool_chain"]["tools_used"] == ["lookup_contacts"]

    @pytest.mark.asyncio
    async def test_summarize_most_recent(self, processor, completion):
        completion.complete.return_value = "Olivia booked the venue."

        response = await processor.process(
            "Summarize my latest chat",
            "u_me",
            steps(("get_conversations", {"limit": 1}), ("summarize_conversation", {})),
        )

        assert response["success"] is True
        assert response["action"] == "show_summary"
        assert response["response"] == "Here's a summary of your conversation:\n\nOlivia booked the venue."
        assert response["result"]["conversation_id"] == "c_group"

    @pytest.mark.asyncio
    async def test_failed_step(self, processor):
        response = await processor.process(
            "Message Nobody",
            "u_me",
            steps(("lookup_contacts", {"query": "Nobody"}), ("send_message", {"content": "hi"})),
        )

        assert response["success"] is False
        assert response["action"] == "show_error"
        assert response["error"] == 'No contacts found matching "Nobody"'
        assert response["original_command"] == "Message Nobody"

    @pytest.mark.asyncio
    async def test_empty_command(self, processor):
        response = await processor.process("", "u_me", steps(("get_conversations", {})))

        assert response["success"] is False
        assert response["response"] == "Invalid command: Command is empty"

    @pytest.mark.asyncio
    async def test_empty_chain(self, processor):
        response = await processor.process("Do the thing", "u_me", [])

        assert response["response"] == "No appropriate tools found for this command."
        assert response["error"] == "No tools available"

    @pytest.mark.asyncio
    async def test_invalid_chain(self, processor):
        response = await processor.process(
            "List chats", "u_me", steps(("get_conversations", {}), ("get_conversations", {}))
        )

        assert response["success"] is False
        assert response["response"].startswith("Invalid tool sequence: Duplicate consecutive tool")

    @pytest.mark.asyncio
    async def test_info_question_outside_conversation_warns(self, processor, search):
        response = await processor.process(
            "Who is coming to the party?",
            "u_me",
            steps(("analyze_conversations_multi", {"query": "Who is coming to the party?"})),
            app_context=AppContext(),
        )

        assert response["warnings"]
        assert response["suggestions"]
        # no search hits
        assert response["error"] == "No relevant conversations found"
