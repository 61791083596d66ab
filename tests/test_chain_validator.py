"""Tests for tool chain, pre-flight and parameter validation."""

import pytest

from chatcmd.models import AppContext, ToolCall, ClarificationResponse
from chatcmd.services.chain_validator import ToolChainValidator


def chain(*steps):
    return [ToolCall(tool=tool, parameters=params) for tool, params in steps]


@pytest.fixture
def validator(registry):
    return ToolChainValidator(registry, max_chain_length=5)


class TestValidateChain:

    def test_empty_chain(self, validator):
        report = validator.validate_chain([])
        assert not report.valid
        assert report.errors == ["Tool chain is empty"]

    def test_lookup_then_send_with_placeholder_warns(self, validator):
        report = validator.validate_chain(chain(
            ("lookup_contacts", {"query": "Sarah"}),
            ("send_message", {"content": "hi", "recipient_id": "[recipient_id]"}),
        ))
        assert report.valid
        assert "send_message recipient_id is a placeholder; it will be filled from lookup_contacts" in report.warnings

    def test_unknown_tool(self, validator):
        report = validator.validate_chain(chain(("teleport", {})))
        assert "Unknown tool: teleport" in report.errors

    def test_unknown_tool_ignored_without_registry(self):
        report = ToolChainValidator().validate_chain(chain(("teleport", {})))
        assert report.valid

    def test_consecutive_duplicates(self, validator):
        report = validator.validate_chain(chain(("get_conversations", {}), ("get_conversations", {})))
        assert "Duplicate consecutive tool: get_conversations at positions 0 and 1" in report.errors

    def test_repeated_lookup(self, validator):
        report = validator.validate_chain(chain(
            ("lookup_contacts", {"query": "a"}),
            ("resolve_conversation", {}),
            ("lookup_contacts", {"query": "b"}),
        ))
        assert "lookup_contacts appears 2 times; it should be called once per request" in report.errors

    def test_send_without_target(self, validator):
        report = validator.validate_chain(chain(("send_message", {"content": "hi"})))
        assert not report.valid
        assert report.errors[0].startswith("send_message requires conversation_id or recipient_id")

    def test_send_with_conversation_id(self, validator):
        report = validator.validate_chain(chain(("send_message", {"content": "hi", "conversation_id": "c_1"})))
        assert report.valid
        assert report.warnings == []

    def test_overlong_chain_warns(self, registry):
        validator = ToolChainValidator(registry, max_chain_length=2)
        report = validator.validate_chain(chain(
            ("get_conversations", {}),
            ("get_messages", {"conversation_id": "c_1"}),
            ("summarize_conversation", {"conversation_id": "c_1"}),
        ))
        assert report.valid
        assert "Tool chain has 3 steps; only the first 2 will run" in report.warnings

    def test_chain_pattern(self, validator):
        steps = chain(("lookup_contacts", {}), ("send_message", {}))
        assert validator.get_chain_pattern(steps) == "Send message to contact by name"
        assert validator.get_chain_pattern(chain(("get_messages", {}))) == "Unknown pattern"


class TestPreFlight:

    def test_empty_command(self, validator):
        report = validator.validate_pre_flight("   ", None, "u_me")
        assert report.errors == ["Command is empty"]

    def test_missing_user(self, validator):
        report = validator.validate_pre_flight("hello", None, None)
        assert report.errors == ["Missing current user id"]

    def test_info_question_outside_conversation_warns(self, validator):
        report = validator.validate_pre_flight("Who is coming to the party?", AppContext(), "u_me")
        assert report.valid
        assert report.warnings
        assert report.suggestions

    def test_info_question_inside_conversation(self, validator):
        app_context = AppContext(current_screen="conversation", current_conversation_id="c_group")
        report = validator.validate_pre_flight("Who is coming to the party?", app_context, "u_me")
        assert report.warnings == []

    def test_vague_pronoun_warns_until_clarified(self, validator):
        assert validator.validate_pre_flight("Tell him I'm late", AppContext(), "u_me").warnings

        clarified = AppContext(clarification_response=ClarificationResponse(selected_option={"id": "u_sarah"}))
        assert validator.validate_pre_flight("Tell him I'm late", clarified, "u_me").warnings == []


class TestToolParameters:

    def test_missing_required(self, validator):
        report = validator.validate_tool_parameters("send_message", {"sender_id": "u_me"})
        assert "Missing required parameter: content" in report.errors

    def test_type_mismatch(self, validator):
        report = validator.validate_tool_parameters(
            "get_messages", {"conversation_id": "c_1", "limit": "ten"}
        )
        assert "Parameter limit must be of type number" in report.errors

    def test_non_positive_number(self, validator):
        report = validator.validate_tool_parameters("get_messages", {"conversation_id": "c_1", "limit": 0})
        assert "limit must be a positive number" in report.errors

    def test_empty_query(self, validator):
        report = validator.validate_tool_parameters("lookup_contacts", {"user_id": "u_me", "query": "  "})
        assert "query must be a non-empty string" in report.errors

    def test_bracketed_id(self, validator):
        report = validator.validate_tool_parameters(
            "send_message", {"content": "hi", "sender_id": "u_me", "conversation_id": "[conversation_id]"}
        )
        assert "conversation_id looks like a placeholder: [conversation_id]" in report.errors

    def test_analyzing_other_conversation_warns(self, validator):
        app_context = AppContext(current_screen="conversation", current_conversation_id="c_group")
        report = validator.validate_tool_parameters(
            "analyze_conversation",
            {"conversation_id": "c_sarah", "current_user_id": "u_me", "query": "when?"},
            app_context,
        )
        assert report.valid
        assert report.warnings == ["Analyzing a conversation other than the one currently open"]
