"""Semantic search over message embeddings.

Embeddings are stored as JSON text next to the messages and ranked in
process with numpy cosine similarity, restricted to conversations the
requesting user participates in.
"""

import json
import time
import logging
from typing import Dict, Any, List, Optional
import numpy as np
from sqlalchemy import text

from chatcmd.adapters.conversation_store import ConversationStore, now_ms
from chatcmd.infra.embeddings import EmbeddingGenerator
from chatcmd.infra.metrics import semantic_search_duration

logger = logging.getLogger(__name__)


def cosine_scores(query_vector: List[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity between one query vector and each row of matrix."""
    query = np.array(query_vector, dtype=np.float32)
    query_norm = np.linalg.norm(query)
    row_norms = np.linalg.norm(matrix, axis=1)
    denominator = row_norms * query_norm
    denominator[denominator == 0] = 1.0
    return (matrix @ query) / denominator


class SemanticSearchService:
    """Embedding-backed message search scoped to a user's conversations."""

    def __init__(self, store: ConversationStore, embedding_generator: Optional[EmbeddingGenerator] = None):
        self.store = store
        self.embedding_generator = embedding_generator or EmbeddingGenerator()

    async def search(self, query: str, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        """
        Search messages semantically.

        Args:
            query: Natural-language query
            user_id: Requesting user; only their conversations are searched
            limit: Maximum number of hits

        Returns:
            Hits ordered by descending score, each with id, conversation_id,
            sender_id, sender_name, content, timestamp and score
        """
        start_time = time.time()
        query_vector = await self.embedding_generator.generate_embedding(query)

        with self.store.session() as session:
            rows = session.execute(
                text("""
                    SELECT m.id, m.conversation_id, m.sender_id, m.sender_name, m.text,
                           m.timestamp, e.embedding
                    FROM message_embeddings e
                    JOIN messages m ON m.id = e.message_id
                    JOIN conversation_participants p ON p.conversation_id = m.conversation_id
                    WHERE p.user_id = :user_id
                """),
                {"user_id": user_id},
            ).fetchall()

        if not rows:
            semantic_search_duration.observe(time.time() - start_time)
            return []

        matrix = np.array([json.loads(row.embedding) for row in rows], dtype=np.float32)
        scores = cosine_scores(query_vector, matrix)
        order = np.argsort(-scores)[:limit]

        hits = []
        for index in order:
            row = rows[int(index)]
            hits.append({
                "id": row.id,
                "conversation_id": row.conversation_id,
                "sender_id": row.sender_id,
                "sender_name": row.sender_name,
                "content": row.text or "",
                "timestamp": row.timestamp,
                "score": float(max(0.0, min(1.0, scores[index]))),
            })

        semantic_search_duration.observe(time.time() - start_time)
        logger.debug(
            "Semantic search complete",
            extra={"query": query[:50], "candidates": len(rows), "hits": len(hits)},
        )
        return hits

    def _upsert(self, session, message_id: str, conversation_id: str, vector: List[float]) -> None:
        session.execute(
            text("""
                INSERT INTO message_embeddings (message_id, conversation_id, embedding, model, indexed_at)
                VALUES (:message_id, :conversation_id, :embedding, :model, :indexed_at)
                ON CONFLICT (message_id) DO UPDATE
                SET embedding = excluded.embedding,
                    model = excluded.model,
                    indexed_at = excluded.indexed_at
            """),
            {
                "message_id": message_id,
                "conversation_id": conversation_id,
                "embedding": json.dumps([float(v) for v in vector]),
                "model": self.embedding_generator.model,
                "indexed_at": now_ms(),
            },
        )

    async def index_message(self, message: Dict[str, Any]) -> None:
        """Generate and store the embedding for one message."""
        content = message.get("text") or message.get("content") or ""
        if not content.strip():
            return
        vector = await self.embedding_generator.generate_embedding(content)
        with self.store.session() as session:
            self._upsert(session, message["id"], message["conversation_id"], vector)

    async def index_pending(self, batch_size: int = 100) -> int:
        """
        Embed messages that have no stored embedding yet.

        Returns:
            Number of messages indexed
        """
        with self.store.session() as session:
            rows = session.execute(
                text("""
                    SELECT m.id, m.conversation_id, m.text FROM messages m
                    LEFT JOIN message_embeddings e ON e.message_id = m.id
                    WHERE e.message_id IS NULL AND m.text IS NOT NULL AND m.text <> ''
                    ORDER BY m.timestamp
                    LIMIT :limit
                """),
                {"limit": batch_size},
            ).fetchall()

        if not rows:
            return 0

        vectors = await self.embedding_generator.generate_embeddings_batch([row.text for row in rows])
        with self.store.session() as session:
            for row, vector in zip(rows, vectors):
                self._upsert(session, row.id, row.conversation_id, vector)
        logger.info("Indexed message embeddings", extra={"count": len(rows)})
        return len(rows)
