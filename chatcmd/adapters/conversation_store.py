"""SQL-backed document store for users, conversations and messages.

JSON-shaped fields (participant details, last message, unread counts,
delivery receipts) are stored as text. All timestamps are epoch
milliseconds.
"""

import json
import time
import uuid
import logging
from typing import Dict, Any, List, Optional, Iterable
from sqlalchemy import text
from sqlalchemy.engine import Engine

from chatcmd.infra.database import make_session_factory, session_scope

logger = logging.getLogger(__name__)


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id VARCHAR(128) PRIMARY KEY,
        display_name VARCHAR(255),
        email VARCHAR(255),
        phone_number VARCHAR(64),
        photo_url TEXT,
        last_active BIGINT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS conversations (
        id VARCHAR(128) PRIMARY KEY,
        type VARCHAR(16) NOT NULL DEFAULT 'direct',
        name VARCHAR(255),
        created_by VARCHAR(128),
        participant_details TEXT,
        last_message TEXT,
        last_message_at BIGINT,
        unread_count TEXT,
        created_at BIGINT NOT NULL,
        updated_at BIGINT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS conversation_participants (
        conversation_id VARCHAR(128) NOT NULL,
        user_id VARCHAR(128) NOT NULL,
        PRIMARY KEY (conversation_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id VARCHAR(128) PRIMARY KEY,
        conversation_id VARCHAR(128) NOT NULL,
        sender_id VARCHAR(128) NOT NULL,
        sender_name VARCHAR(255),
        content_type VARCHAR(16) NOT NULL DEFAULT 'text',
        text TEXT,
        caption TEXT,
        media_url TEXT,
        status VARCHAR(16) NOT NULL DEFAULT 'sent',
        priority VARCHAR(16) NOT NULL DEFAULT 'normal',
        delivered_to TEXT,
        read_by TEXT,
        timestamp BIGINT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_messages_conversation_ts ON messages (conversation_id, timestamp)",
    "CREATE INDEX IF NOT EXISTS ix_participants_user ON conversation_participants (user_id)",
    """
    CREATE TABLE IF NOT EXISTS message_embeddings (
        message_id VARCHAR(128) PRIMARY KEY,
        conversation_id VARCHAR(128) NOT NULL,
        embedding TEXT NOT NULL,
        model VARCHAR(64),
        indexed_at BIGINT NOT NULL
    )
    """,
]


def now_ms() -> int:
    return int(time.time() * 1000)


def _loads(value: Optional[str], default):
    if value is None or value == "":
        return default
    return json.loads(value)


def _user_from_row(row) -> Dict[str, Any]:
    return {
        "id": row.id,
        "displayName": row.display_name,
        "email": row.email,
        "phoneNumber": row.phone_number,
        "photoURL": row.photo_url,
        "lastActive": row.last_active,
    }


def _message_from_row(row) -> Dict[str, Any]:
    return {
        "id": row.id,
        "conversation_id": row.conversation_id,
        "sender_id": row.sender_id,
        "sender_name": row.sender_name,
        "type": row.content_type,
        "text": row.text or "",
        "caption": row.caption,
        "media_url": row.media_url,
        "status": row.status,
        "priority": row.priority,
        "delivered_to": _loads(row.delivered_to, []),
        "read_by": _loads(row.read_by, []),
        "timestamp": row.timestamp,
    }


class ConversationStore:
    """Reads and writes the chat document model."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = make_session_factory(engine)

    def session(self):
        return session_scope(self._session_factory)

    def init_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        with self.session() as session:
            for statement in SCHEMA_STATEMENTS:
                session.execute(text(statement))
        logger.info("Conversation store schema ready")

    def ping(self) -> bool:
        with self.session() as session:
            session.execute(text("SELECT 1"))
        return True

    # Users

    def add_user(
        self,
        user_id: str,
        display_name: Optional[str] = None,
        email: Optional[str] = None,
        phone_number: Optional[str] = None,
        photo_url: Optional[str] = None,
        last_active: Optional[int] = None,
    ) -> Dict[str, Any]:
        with self.session() as session:
            session.execute(
                text("""
                    INSERT INTO users (id, display_name, email, phone_number, photo_url, last_active)
                    VALUES (:id, :display_name, :email, :phone_number, :photo_url, :last_active)
                """),
                {
                    "id": user_id,
                    "display_name": display_name,
                    "email": email,
                    "phone_number": phone_number,
                    "photo_url": photo_url,
                    "last_active": last_active,
                },
            )
        return {
            "id": user_id,
            "displayName": display_name,
            "email": email,
            "phoneNumber": phone_number,
            "photoURL": photo_url,
            "lastActive": last_active,
        }

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self.session() as session:
            row = session.execute(
                text("SELECT * FROM users WHERE id = :id"),
                {"id": user_id},
            ).fetchone()
        return _user_from_row(row) if row else None

    def get_users(self, user_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """Fetch several users at once, keyed by id. Missing ids are omitted."""
        users = {}
        for user_id in dict.fromkeys(user_ids):
            user = self.get_user(user_id)
            if user:
                users[user_id] = user
        return users

    def list_users(self) -> List[Dict[str, Any]]:
        with self.session() as session:
            rows = session.execute(text("SELECT * FROM users ORDER BY id")).fetchall()
        return [_user_from_row(row) for row in rows]

    def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        with self.session() as session:
            row = session.execute(
                text("SELECT * FROM users WHERE lower(email) = :email"),
                {"email": email.strip().lower()},
            ).fetchone()
        return _user_from_row(row) if row else None

    # Conversations

    def _conversation_from_row(self, session, row) -> Dict[str, Any]:
        participants = [
            r.user_id
            for r in session.execute(
                text("SELECT user_id FROM conversation_participants WHERE conversation_id = :cid ORDER BY user_id"),
                {"cid": row.id},
            ).fetchall()
        ]
        return {
            "id": row.id,
            "type": row.type,
            "name": row.name,
            "created_by": row.created_by,
            "participants": participants,
            "participant_details": _loads(row.participant_details, {}),
            "last_message": _loads(row.last_message, None),
            "last_message_at": row.last_message_at,
            "unread_count": _loads(row.unread_count, {}),
            "created_at": row.created_at,
            "updated_at": row.updated_at,
        }

    def get_conversation(self, conversation_id: str) -> Optional[Dict[str, Any]]:
        with self.session() as session:
            row = session.execute(
                text("SELECT * FROM conversations WHERE id = :id"),
                {"id": conversation_id},
            ).fetchone()
            if not row:
                return None
            return self._conversation_from_row(session, row)

    def list_conversations_for_user(self, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Conversations the user participates in, most recently active first."""
        query = """
            SELECT c.* FROM conversations c
            JOIN conversation_participants p ON p.conversation_id = c.id
            WHERE p.user_id = :user_id
            ORDER BY COALESCE(c.last_message_at, c.created_at) DESC
        """
        params: Dict[str, Any] = {"user_id": user_id}
        if limit is not None:
            query += " LIMIT :limit"
            params["limit"] = limit
        with self.session() as session:
            rows = session.execute(text(query), params).fetchall()
            return [self._conversation_from_row(session, row) for row in rows]

    def find_direct_conversation(self, user_a: str, user_b: str) -> Optional[Dict[str, Any]]:
        for conversation in self.list_conversations_for_user(user_a):
            if conversation["type"] == "direct" and sorted(conversation["participants"]) == sorted([user_a, user_b]):
                return conversation
        return None

    def create_conversation(
        self,
        participants: List[str],
        conversation_type: str = "direct",
        name: Optional[str] = None,
        created_by: Optional[str] = None,
        conversation_id: Optional[str] = None,
        created_at: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Create a conversation, denormalizing participant details from users."""
        conversation_id = conversation_id or str(uuid.uuid4())
        created_at = created_at or now_ms()
        users = self.get_users(participants)
        details = {
            uid: {
                "displayName": users.get(uid, {}).get("displayName"),
                "email": users.get(uid, {}).get("email"),
                "photoURL": users.get(uid, {}).get("photoURL"),
            }
            for uid in participants
        }
        with self.session() as session:
            session.execute(
                text("""
                    INSERT INTO conversations
                        (id, type, name, created_by, participant_details, last_message,
                         last_message_at, unread_count, created_at, updated_at)
                    VALUES
                        (:id, :type, :name, :created_by, :details, NULL,
                         NULL, :unread, :created_at, :created_at)
                """),
                {
                    "id": conversation_id,
                    "type": conversation_type,
                    "name": name,
                    "created_by": created_by,
                    "details": json.dumps(details),
                    "unread": json.dumps({uid: 0 for uid in participants}),
                    "created_at": created_at,
                },
            )
            for uid in dict.fromkeys(participants):
                session.execute(
                    text("INSERT INTO conversation_participants (conversation_id, user_id) VALUES (:cid, :uid)"),
                    {"cid": conversation_id, "uid": uid},
                )
        logger.info(
            "Created conversation",
            extra={"conversation_id": conversation_id, "conversation_type": conversation_type},
        )
        return self.get_conversation(conversation_id)

    # Messages

    def list_messages(
        self,
        conversation_id: str,
        limit: Optional[int] = None,
        newest_first: bool = True,
        sender_id: Optional[str] = None,
        content_type: Optional[str] = None,
        since: Optional[int] = None,
        until: Optional[int] = None,
        before_ts: Optional[int] = None,
        after_ts: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        clauses = ["conversation_id = :cid"]
        params: Dict[str, Any] = {"cid": conversation_id}
        if sender_id:
            clauses.append("sender_id = :sender_id")
            params["sender_id"] = sender_id
        if content_type:
            clauses.append("content_type = :content_type")
            params["content_type"] = content_type
        if since is not None:
            clauses.append("timestamp >= :since")
            params["since"] = since
        if until is not None:
            clauses.append("timestamp <= :until")
            params["until"] = until
        if before_ts is not None:
            clauses.append("timestamp < :before_ts")
            params["before_ts"] = before_ts
        if after_ts is not None:
            clauses.append("timestamp > :after_ts")
            params["after_ts"] = after_ts
        order = "DESC" if newest_first else "ASC"
        query = f"SELECT * FROM messages WHERE {' AND '.join(clauses)} ORDER BY timestamp {order}, id {order}"
        if limit is not None:
            query += " LIMIT :limit"
            params["limit"] = limit
        with self.session() as session:
            rows = session.execute(text(query), params).fetchall()
        return [_message_from_row(row) for row in rows]

    def get_message(self, message_id: str) -> Optional[Dict[str, Any]]:
        with self.session() as session:
            row = session.execute(
                text("SELECT * FROM messages WHERE id = :id"),
                {"id": message_id},
            ).fetchone()
        return _message_from_row(row) if row else None

    def count_messages(self, conversation_id: str, since: Optional[int] = None) -> int:
        query = "SELECT COUNT(*) FROM messages WHERE conversation_id = :cid"
        params: Dict[str, Any] = {"cid": conversation_id}
        if since is not None:
            query += " AND timestamp >= :since"
            params["since"] = since
        with self.session() as session:
            return int(session.execute(text(query), params).scalar() or 0)

    def add_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        sender_name: Optional[str] = None,
        message_type: str = "text",
        media_url: Optional[str] = None,
        caption: Optional[str] = None,
        priority: str = "normal",
        message_id: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Write a message and update the conversation's last message and unread counts.

        Every participant other than the sender gets their unread count incremented.
        """
        message_id = message_id or str(uuid.uuid4())
        timestamp = timestamp or now_ms()
        conversation = self.get_conversation(conversation_id)
        if conversation is None:
            raise ValueError(f"Conversation {conversation_id} not found")

        unread = dict(conversation["unread_count"])
        for uid in conversation["participants"]:
            if uid != sender_id:
                unread[uid] = unread.get(uid, 0) + 1
        last_message = {
            "text": content,
            "sender_id": sender_id,
            "timestamp": timestamp,
            "type": message_type,
        }

        with self.session() as session:
            session.execute(
                text("""
                    INSERT INTO messages
                        (id, conversation_id, sender_id, sender_name, content_type, text, caption,
                         media_url, status, priority, delivered_to, read_by, timestamp)
                    VALUES
                        (:id, :cid, :sender_id, :sender_name, :content_type, :text, :caption,
                         :media_url, 'sent', :priority, :delivered_to, :read_by, :timestamp)
                """),
                {
                    "id": message_id,
                    "cid": conversation_id,
                    "sender_id": sender_id,
                    "sender_name": sender_name,
                    "content_type": message_type,
                    "text": content,
                    "caption": caption,
                    "media_url": media_url,
                    "priority": priority,
                    "delivered_to": json.dumps([]),
                    "read_by": json.dumps([sender_id]),
                    "timestamp": timestamp,
                },
            )
            session.execute(
                text("""
                    UPDATE conversations
                    SET last_message = :last_message,
                        last_message_at = :ts,
                        unread_count = :unread,
                        updated_at = :ts
                    WHERE id = :cid
                """),
                {
                    "last_message": json.dumps(last_message),
                    "ts": timestamp,
                    "unread": json.dumps(unread),
                    "cid": conversation_id,
                },
            )
        return self.get_message(message_id)
