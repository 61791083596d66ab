"""Tests for the contact, conversation, message and clarification tools."""

import pytest

from chatcmd.infra.error_handler import CollaboratorError
from chatcmd.tools.get_conversation_info import GetConversationInfoTool
from chatcmd.tools.get_conversations import GetConversationsTool
from chatcmd.tools.get_messages import GetMessagesTool
from chatcmd.tools.lookup_contacts import LookupContactsTool
from chatcmd.tools.request_clarification import RequestClarificationTool
from chatcmd.tools.resolve_conversation import ResolveConversationTool
from chatcmd.tools.search_conversations import SearchConversationsTool, rank_conversations
from chatcmd.tools.send_message import SendMessageTool
from chatcmd.tools.summarize_conversation import SummarizeConversationTool, extract_key_topics


class TestLookupContacts:

    @pytest.mark.asyncio
    async def test_single_confident_match(self, store, context):
        result = await LookupContactsTool(store).execute({"user_id": "u_me", "query": "Sarah"}, context)

        assert result.success
        assert result.next_action == "continue"
        assert result.data["contact_id"] == "u_sarah"
        assert result.data["contacts"][0]["is_recent"] is True
        assert result.instruction_for_ai == 'Use contact_id "u_sarah" for the next tool call.'

    @pytest.mark.asyncio
    async def test_ambiguous_name_asks_user(self, store, context):
        result = await LookupContactsTool(store).execute({"user_id": "u_me", "query": "John"}, context)

        assert result.next_action == "clarification_needed"
        clarification = result.clarification
        assert clarification.clarification_type == "contact_selection"
        assert [o.id for o in clarification.options] == ["u_john_smith", "u_john_doe", "u_johnny"]
        assert clarification.best_option.id == "u_john_smith"
        assert clarification.options[0].confidence == pytest.approx(0.95)

    @pytest.mark.asyncio
    async def test_no_match(self, store, context):
        result = await LookupContactsTool(store).execute({"user_id": "u_me", "query": "Nobody"}, context)

        assert not result.success
        assert result.error == 'No contacts found matching "Nobody"'

    @pytest.mark.asyncio
    async def test_excludes_self_by_default(self, store, context):
        tool = LookupContactsTool(store)

        excluded = await tool.execute({"user_id": "u_me", "query": "Alex"}, context)
        included = await tool.execute({"user_id": "u_me", "query": "Alex", "exclude_self": False}, context)

        assert not excluded.success
        assert included.data["contact_id"] == "u_me"

    @pytest.mark.asyncio
    async def test_missing_query_is_a_failed_result(self, store, context):
        result = await LookupContactsTool(store).execute({"user_id": "u_me"}, context)

        assert not result.success
        assert result.error == "Missing required parameter: query"
        assert result.next_action == "error"

    @pytest.mark.asyncio
    async def test_malformed_limit_is_a_failed_result(self, store, context):
        result = await LookupContactsTool(store).execute({"user_id": "u_me", "query": "Sarah", "limit": "many"}, context)

        assert not result.success
        assert result.error.startswith("invalid literal for int()")
        assert result.next_action == "error"


class TestResolveConversation:

    @pytest.mark.asyncio
    async def test_resolve_by_email(self, store, context):
        result = await ResolveConversationTool(store).execute(
            {"user_id": "u_me", "contact_identifier": "sarah@example.com"}, context
        )

        assert result.success
        assert result.next_action == "continue"
        assert result.data["conversation_id"] == "c_sarah"
        assert result.data["was_created"] is False

    @pytest.mark.asyncio
    async def test_resolve_by_partial_name(self, store, context):
        result = await ResolveConversationTool(store).execute(
            {"user_id": "u_me", "contact_identifier": "Sarah"}, context
        )
        assert result.data["conversation_id"] == "c_sarah"

    @pytest.mark.asyncio
    async def test_no_conversation(self, store, context):
        result = await ResolveConversationTool(store).execute(
            {"user_id": "u_me", "contact_identifier": "John Doe"}, context
        )

        assert not result.success
        assert result.error == "No conversation found with John Doe"

    @pytest.mark.asyncio
    async def test_create_if_missing(self, store, context):
        result = await ResolveConversationTool(store).execute(
            {"user_id": "u_me", "contact_identifier": "John Doe", "create_if_missing": True}, context
        )

        assert result.success
        assert result.data["was_created"] is True
        conversation = store.get_conversation(result.data["conversation_id"])
        assert conversation["participants"] == ["u_john_doe", "u_me"]

    @pytest.mark.asyncio
    async def test_unknown_contact(self, store, context):
        result = await ResolveConversationTool(store).execute(
            {"user_id": "u_me", "contact_identifier": "Nobody Here"}, context
        )
        assert result.error == 'Contact "Nobody Here" not found'


class TestGetConversations:

    @pytest.mark.asyncio
    async def test_most_recent_first(self, store, context):
        result = await GetConversationsTool(store).execute({"user_id": "u_me"}, context)

        assert result.success
        assert [c["id"] for c in result.data["conversations"]] == ["c_group", "c_sarah", "c_john"]
        assert result.data["conversations"][0]["last_message_preview"]["text"] == "I'm coming too"
        assert result.next_action == "continue"

    @pytest.mark.asyncio
    async def test_type_filter(self, store, context):
        result = await GetConversationsTool(store).execute(
            {"user_id": "u_me", "conversation_type": "group"}, context
        )

        conversations = result.data["conversations"]
        assert [c["id"] for c in conversations] == ["c_group"]
        assert conversations[0]["is_group"] is True
        assert conversations[0]["message_count"] == 2

    @pytest.mark.asyncio
    async def test_no_conversations(self, store, context):
        result = await GetConversationsTool(store).execute({"user_id": "u_johnny"}, context)

        assert result.data["conversations"] == []
        assert result.next_action == "complete"


class TestGetMessages:

    @pytest.mark.asyncio
    async def test_chronological(self, store, context):
        result = await GetMessagesTool(store).execute({"conversation_id": "c_sarah"}, context)

        assert [m["id"] for m in result.data["messages"]] == ["m_sarah_1", "m_sarah_2", "m_sarah_3"]
        assert result.data["messages"][0]["sender_name"] == "Sarah Connor"
        assert result.next_action == "continue"

    @pytest.mark.asyncio
    async def test_filters(self, store, context):
        tool = GetMessagesTool(store)

        by_sender = await tool.execute({"conversation_id": "c_sarah", "sender_id": "u_sarah"}, context)
        by_text = await tool.execute({"conversation_id": "c_sarah", "search_text": "SNACKS"}, context)
        before = await tool.execute({"conversation_id": "c_sarah", "before_id": "m_sarah_3"}, context)

        assert [m["id"] for m in by_sender.data["messages"]] == ["m_sarah_1", "m_sarah_3"]
        assert [m["id"] for m in by_text.data["messages"]] == ["m_sarah_2"]
        assert [m["id"] for m in before.data["messages"]] == ["m_sarah_1", "m_sarah_2"]

    @pytest.mark.asyncio
    async def test_non_participant_sees_not_found(self, store, context):
        result = await GetMessagesTool(store).execute({"conversation_id": "c_private"}, context)

        assert not result.success
        assert result.error == "Conversation not found"

    @pytest.mark.asyncio
    async def test_invalid_date(self, store, context):
        result = await GetMessagesTool(store).execute(
            {"conversation_id": "c_sarah", "date_from": "not-a-date"}, context
        )

        assert not result.success
        assert "date_from" in result.error


class TestGetConversationInfo:

    @pytest.mark.asyncio
    async def test_group_details(self, store, context):
        result = await GetConversationInfoTool(store).execute(
            {"conversation_id": "c_group", "user_id": "u_me", "include_recent_activity": True}, context
        )

        info = result.data
        assert result.next_action == "complete"
        assert info["is_group"] is True
        assert info["participant_count"] == 3
        assert {p["id"] for p in info["other_participants"]} == {"u_sarah", "u_olivia"}
        assert info["statistics"]["total_messages"] == 2
        assert info["statistics"]["message_counts_by_sender"] == {"u_olivia": 1, "u_sarah": 1}
        assert info["recent_activity"]["activity_summary"] == "Two participants have been active recently"
        assert info["user_context"]["unread_count"] == 2

    @pytest.mark.asyncio
    async def test_non_participant(self, store, context):
        result = await GetConversationInfoTool(store).execute(
            {"conversation_id": "c_private", "user_id": "u_me"}, context
        )
        assert result.error == "Conversation not found"


class TestSendMessage:

    @pytest.mark.asyncio
    async def test_send_to_conversation(self, store, search, context):
        result = await SendMessageTool(store, search).execute(
            {"content": "See you there", "sender_id": "u_me", "conversation_id": "c_group"}, context
        )

        assert result.success
        assert result.next_action == "complete"
        assert store.get_conversation("c_group")["last_message"]["text"] == "See you there"
        assert store.get_conversation("c_group")["unread_count"]["u_sarah"] == 2
        search.index_message.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_creates_direct_conversation(self, store, search, context):
        result = await SendMessageTool(store, search).execute(
            {"content": "Hello", "sender_id": "u_me", "recipient_id": "u_john_doe"}, context
        )

        assert result.success
        assert result.metadata["conversation_created"] is True
        assert store.find_direct_conversation("u_me", "u_john_doe")["id"] == result.data["conversation_id"]

    @pytest.mark.asyncio
    async def test_creation_not_allowed(self, store, search, context):
        result = await SendMessageTool(store, search).execute(
            {
                "content": "Hello",
                "sender_id": "u_me",
                "recipient_id": "u_john_doe",
                "create_conversation_if_missing": False,
            },
            context,
        )
        assert result.error == "Conversation not found and creation not allowed"

    @pytest.mark.asyncio
    async def test_no_target(self, store, search, context):
        result = await SendMessageTool(store, search).execute({"content": "Hello", "sender_id": "u_me"}, context)
        assert result.error == "No conversation ID provided and no recipient specified"

    @pytest.mark.asyncio
    async def test_unknown_recipient(self, store, search, context):
        result = await SendMessageTool(store, search).execute(
            {"content": "Hello", "sender_id": "u_me", "recipient_id": "u_ghost"}, context
        )
        assert result.error == "Recipient u_ghost not found"

    @pytest.mark.asyncio
    async def test_not_a_participant(self, store, search, context):
        result = await SendMessageTool(store, search).execute(
            {"content": "Hello", "sender_id": "u_me", "conversation_id": "c_private"}, context
        )
        assert result.error == "Conversation not found"
        assert store.count_messages("c_private") == 1

    @pytest.mark.asyncio
    async def test_indexing_failure_does_not_fail_send(self, store, search, context):
        search.index_message.side_effect = CollaboratorError("openai network error", service="openai")

        result = await SendMessageTool(store, search).execute(
            {"content": "Still sent", "sender_id": "u_me", "conversation_id": "c_sarah"}, context
        )

        assert result.success
        assert store.list_messages("c_sarah", limit=1)[0]["text"] == "Still sent"


class TestSummarizeConversation:

    @pytest.mark.asyncio
    async def test_summary(self, store, completion, context):
        completion.complete.return_value = "Alex is bringing snacks to Sarah's party."

        result = await SummarizeConversationTool(store, completion).execute(
            {"conversation_id": "c_sarah", "current_user_id": "u_me"}, context
        )

        assert result.success
        assert result.next_action == "complete"
        assert result.data["summary"] == "Alex is bringing snacks to Sarah's party."
        assert result.data["message_count"] == 3
        assert result.data["time_range"] == "All time"
        assert result.data["participants"] == ["Sarah Connor", "Alex Morgan"]
        assert result.data["key_topics"][0] == "party"

        prompt = completion.complete.call_args.args[0][1]["content"]
        assert "in 4-6 sentences" in prompt
        assert "You (" in prompt
        assert "Sarah Connor (" in prompt
        assert completion.complete.call_args.kwargs["max_tokens"] == 300

    @pytest.mark.asyncio
    async def test_short_summary_tokens(self, store, completion, context):
        await SummarizeConversationTool(store, completion).execute(
            {"conversation_id": "c_sarah", "current_user_id": "u_me", "summary_length": "short"}, context
        )
        assert completion.complete.call_args.kwargs["max_tokens"] == 150

    @pytest.mark.asyncio
    async def test_time_filter_excludes_old_messages(self, store, completion, context):
        result = await SummarizeConversationTool(store, completion).execute(
            {"conversation_id": "c_john", "current_user_id": "u_me", "time_filter": "1day"}, context
        )

        assert not result.success
        assert result.error == "No messages found in the specified time range"
        completion.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_participant(self, store, completion, context):
        result = await SummarizeConversationTool(store, completion).execute(
            {"conversation_id": "c_private", "current_user_id": "u_me"}, context
        )

        assert result.error == "Conversation not found"
        completion.complete.assert_not_awaited()

    def test_key_topics_skip_stopwords_and_short_words(self):
        messages = [{"text": "They would have the meeting"}, {"text": "Meeting moved; budget review"}]
        assert extract_key_topics(messages) == ["meeting", "moved", "budget", "review"]


def hit(message_id, conversation_id, score, timestamp, content="about the party"):
    return {
        "id": message_id,
        "conversation_id": conversation_id,
        "sender_id": "u_sarah",
        "sender_name": "Sarah Connor",
        "content": content,
        "timestamp": timestamp,
        "score": score,
    }


class TestSearchConversations:

    def test_rank_by_match_count_then_score(self):
        ranked = rank_conversations(
            [hit("1", "a", 0.9, 1), hit("2", "a", 0.8, 2), hit("3", "b", 0.95, 3), hit("4", "c", 0.1, 4)],
            min_confidence=0.3,
        )

        assert [r["conversation_id"] for r in ranked] == ["a", "b"]
        assert ranked[0]["avg_score"] == pytest.approx(0.85)
        assert ranked[0]["most_recent"]["id"] == "2"

    @pytest.mark.asyncio
    async def test_several_matches_ask_user(self, store, search, context):
        search.search.return_value = [
            hit("m_sarah_1", "c_sarah", 0.9, 100, "Are you coming to the party on Saturday?"),
            hit("m_sarah_3", "c_sarah", 0.8, 300, "Great, the party starts at 8pm"),
            hit("m_group_1", "c_group", 0.85, 400, "I confirmed the venue for the party"),
            hit("m_private_1", "c_private", 0.95, 500, "Secret plans"),
            hit("m_john_1", "c_john", 0.1, 50, "Lunch next week?"),
        ]

        result = await SearchConversationsTool(store, search).execute(
            {"query": "party", "user_id": "u_me"}, context
        )

        search.search.assert_awaited_once_with("party", "u_me", 15)
        assert result.next_action == "clarification_needed"
        assert [c["conversation_id"] for c in result.data["conversations"]] == ["c_sarah", "c_group"]
        options = result.clarification.options
        assert options[0].title == "Sarah Connor"
        assert options[0].display_text == '1. Sarah Connor - "Great, the party starts at 8pm..."'
        assert options[1].title == "Party Planning"
        assert result.clarification.clarification_type == "select_conversation"

    @pytest.mark.asyncio
    async def test_single_match_continues(self, store, search, context):
        search.search.return_value = [hit("m_group_1", "c_group", 0.7, 400)]

        result = await SearchConversationsTool(store, search).execute(
            {"query": "venue", "user_id": "u_me"}, context
        )

        assert result.success
        assert result.next_action == "continue"
        assert result.data["conversations"][0]["conversation_id"] == "c_group"
        assert result.confidence == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_nothing_relevant(self, store, search, context):
        search.search.return_value = [hit("m_john_1", "c_john", 0.2, 50)]

        result = await SearchConversationsTool(store, search).execute(
            {"query": "party", "user_id": "u_me"}, context
        )

        assert not result.success
        assert result.next_action == "complete"


class TestRequestClarification:

    @pytest.mark.asyncio
    async def test_options_presented(self, context):
        result = await RequestClarificationTool().execute(
            {
                "clarification_type": "contact_selection",
                "question": "Which Sam?",
                "options": [
                    {"id": "u1", "title": "Sam Lee", "subtitle": "sam@example.com", "confidence": 0.6},
                    {"id": "u2", "title": "Sam Park", "confidence": 0.8},
                    {"title": "Someone else"},
                ],
            },
            context,
        )

        assert result.success
        assert result.next_action == "clarification_needed"
        assert result.clarification.best_option.id == "u2"
        assert result.clarification.allow_cancel is True
        options = result.clarification.options
        assert options[0].display_text == "Sam Lee - sam@example.com (60% match)"
        assert options[2].id == "option_2"
        assert options[2].display_text == "Someone else"

    @pytest.mark.asyncio
    async def test_empty_options(self, context):
        result = await RequestClarificationTool().execute(
            {"clarification_type": "contact_selection", "question": "Which?", "options": []}, context
        )

        assert not result.success
        assert result.error == "No options provided for clarification"
