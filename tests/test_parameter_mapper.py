"""Tests for threading earlier results into later chain steps."""

from chatcmd.models import ToolResult
from chatcmd.services.parameter_mapper import ParameterMapper, is_placeholder


def lookup_result(*contacts, success=True):
    if success:
        return ToolResult(success=True, data={"contacts": list(contacts)})
    return ToolResult(success=False, error="lookup failed", data={"contacts": list(contacts)})


class TestIsPlaceholder:

    def test_placeholders(self):
        assert is_placeholder(None)
        assert is_placeholder("")
        assert is_placeholder("   ")
        assert is_placeholder("[recipient_id]")
        assert is_placeholder("contact id from lookup_contacts")
        assert is_placeholder("FROM previous step")

    def test_concrete_values(self):
        assert not is_placeholder("u_123")
        assert not is_placeholder("fromage")
        assert not is_placeholder(42)


class TestParameterMapper:

    def setup_method(self):
        self.mapper = ParameterMapper()

    def test_lookup_to_send_fills_recipient(self):
        result = lookup_result(
            {"id": "u_a", "confidence": 0.6},
            {"id": "u_b", "confidence": 0.9},
        )
        params = {"content": "hi", "recipient_id": "[recipient_id]"}
        mapped = self.mapper.map("lookup_contacts", result, "send_message", params)
        assert mapped["recipient_id"] == "u_b"
        assert params["recipient_id"] == "[recipient_id]"

    def test_lookup_to_send_fills_missing_recipient(self):
        mapped = self.mapper.map("lookup_contacts", lookup_result({"id": "u_a"}), "send_message", {"content": "hi"})
        assert mapped["recipient_id"] == "u_a"

    def test_concrete_value_is_kept(self):
        mapped = self.mapper.map(
            "lookup_contacts", lookup_result({"id": "u_a"}), "send_message", {"recipient_id": "u_explicit"}
        )
        assert mapped["recipient_id"] == "u_explicit"

    def test_failed_source_is_skipped(self):
        result = lookup_result({"id": "u_a"}, success=False)
        mapped = self.mapper.map("lookup_contacts", result, "send_message", {"recipient_id": "[id]"})
        assert mapped == {"recipient_id": "[id]"}

    def test_resolve_to_send(self):
        result = ToolResult(success=True, data={"conversation_id": "c_1"})
        mapped = self.mapper.map("resolve_conversation", result, "send_message", {"content": "hi"})
        assert mapped["conversation_id"] == "c_1"

    def test_lookup_to_resolve_prefers_email(self):
        result = lookup_result({"id": "u_a", "email": "a@example.com"})
        mapped = self.mapper.map("lookup_contacts", result, "resolve_conversation", {})
        assert mapped["contact_identifier"] == "a@example.com"

    def test_get_conversations_to_summarize_uses_first(self):
        result = ToolResult(success=True, data={"conversations": [{"id": "c_recent"}, {"id": "c_old"}]})
        mapped = self.mapper.map("get_conversations", result, "summarize_conversation", {"conversation_id": ""})
        assert mapped["conversation_id"] == "c_recent"

    def test_get_messages_to_summarize(self):
        result = ToolResult(success=True, data={"conversation_id": "c_9", "messages": []})
        mapped = self.mapper.map("get_messages", result, "summarize_conversation", {})
        assert mapped["conversation_id"] == "c_9"

    def test_search_to_analyze_only_with_single_result(self):
        single = ToolResult(success=True, data={"conversations": [{"conversation_id": "c_1"}]})
        several = ToolResult(
            success=True,
            data={"conversations": [{"conversation_id": "c_1"}, {"conversation_id": "c_2"}]},
        )
        assert self.mapper.map("search_conversations", single, "analyze_conversation", {})["conversation_id"] == "c_1"
        assert "conversation_id" not in self.mapper.map("search_conversations", several, "analyze_conversation", {})

    def test_unmapped_pair_returns_params_unchanged(self):
        params = {"limit": 5}
        mapped = self.mapper.map("get_messages", ToolResult(success=True), "lookup_contacts", params)
        assert mapped is params
        assert params == {"limit": 5}

    def test_fills_target_params_in_place(self):
        params = {"content": "hi", "recipient_id": "[recipient_id]"}
        mapped = self.mapper.map("lookup_contacts", lookup_result({"id": "u_a"}), "send_message", params)
        assert mapped is params
        assert params["recipient_id"] == "u_a"

    def test_idempotent(self):
        result = lookup_result({"id": "u_a"})
        once = self.mapper.map("lookup_contacts", result, "send_message", {"recipient_id": None})
        twice = self.mapper.map("lookup_contacts", result, "send_message", dict(once))
        assert once == twice
