"""Pytest configuration and fixtures."""

import pytest
import os
from unittest.mock import AsyncMock, MagicMock
from dotenv import load_dotenv

# Load test environment variables
load_dotenv()

# Set test environment
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")

from chatcmd.adapters.conversation_store import ConversationStore, now_ms  # noqa: E402
from chatcmd.infra.database import build_engine  # noqa: E402
from chatcmd.models import ToolContext  # noqa: E402
from chatcmd.tools import build_tool_registry  # noqa: E402

CURRENT_USER = "u_me"
HOUR_MS = 3600 * 1000


def seed(store: ConversationStore) -> None:
    """
    A small chat world for the current user, Alex.

    Alex talks directly with Sarah and John Smith and shares the "Party
    Planning" group with Sarah and Olivia. Sarah and Olivia also have a
    direct conversation Alex cannot see. John Doe and Johnny Johnson exist
    but have never talked to Alex.
    """
    now = now_ms()
    store.add_user("u_me", "Alex Morgan", "alex@example.com")
    store.add_user("u_john_smith", "John Smith", "john.smith@example.com")
    store.add_user("u_john_doe", "John Doe", "john.doe@example.com")
    store.add_user("u_johnny", "Johnny Johnson", "johnny@example.com")
    store.add_user("u_sarah", "Sarah Connor", "sarah@example.com", phone_number="+15550100")
    store.add_user("u_olivia", "Olivia Park", "olivia@example.com")

    store.create_conversation(["u_me", "u_john_smith"], conversation_id="c_john", created_at=now - 300 * HOUR_MS)
    store.create_conversation(["u_me", "u_sarah"], conversation_id="c_sarah", created_at=now - 100 * HOUR_MS)
    store.create_conversation(
        ["u_me", "u_sarah", "u_olivia"],
        conversation_type="group",
        name="Party Planning",
        created_by="u_sarah",
        conversation_id="c_group",
        created_at=now - 50 * HOUR_MS,
    )
    store.create_conversation(["u_sarah", "u_olivia"], conversation_id="c_private", created_at=now - 50 * HOUR_MS)

    messages = [
        ("m_john_1", "c_john", "u_john_smith", "John Smith", "Lunch next week?", 240),
        ("m_john_2", "c_john", "u_me", "Alex Morgan", "Sure, Tuesday works", 239),
        ("m_sarah_1", "c_sarah", "u_sarah", "Sarah Connor", "Are you coming to the party on Saturday?", 5),
        ("m_sarah_2", "c_sarah", "u_me", "Alex Morgan", "Yes, I'll bring snacks for the party", 4),
        ("m_sarah_3", "c_sarah", "u_sarah", "Sarah Connor", "Great, the party starts at 8pm", 3),
        ("m_group_1", "c_group", "u_olivia", "Olivia Park", "I confirmed the venue for the party", 2),
        ("m_group_2", "c_group", "u_sarah", "Sarah Connor", "I'm coming too", 1),
        ("m_private_1", "c_private", "u_olivia", "Olivia Park", "Secret plans", 1),
    ]
    for message_id, conversation_id, sender_id, sender_name, content, hours_ago in messages:
        store.add_message(
            conversation_id,
            sender_id,
            content,
            sender_name=sender_name,
            message_id=message_id,
            timestamp=now - hours_ago * HOUR_MS,
        )


@pytest.fixture
def store():
    engine = build_engine("sqlite://")
    conversation_store = ConversationStore(engine)
    conversation_store.init_schema()
    seed(conversation_store)
    yield conversation_store
    engine.dispose()


@pytest.fixture
def search():
    fake = MagicMock()
    fake.search = AsyncMock(return_value=[])
    fake.index_message = AsyncMock(return_value=None)
    return fake


@pytest.fixture
def completion():
    fake = MagicMock()
    fake.complete = AsyncMock(return_value="A short summary.")
    fake.complete_json = AsyncMock(return_value=None)
    return fake


@pytest.fixture
def registry(store, search, completion):
    return build_tool_registry(store, search, completion)


@pytest.fixture
def context():
    return ToolContext(current_user_id=CURRENT_USER, request_id="req-test")
