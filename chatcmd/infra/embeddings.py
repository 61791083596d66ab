"""Embedding generation utility for semantic search."""

from typing import List, Optional
from openai import AsyncOpenAI

from chatcmd.infra.config import config
from chatcmd.infra.error_handler import wrap_llm_error
from chatcmd.infra.timeout import EMBEDDING_CALL_TIMEOUT


class EmbeddingGenerator:
    """Generates embeddings for message text and queries."""

    def __init__(self, model: Optional[str] = None, api_key: Optional[str] = None):
        self._openai_client = None
        self._api_key = api_key
        self.model = model or config.EMBEDDING_MODEL
        self.embedding_dim = 1536  # text-embedding-3-small default

    @property
    def openai_client(self):
        """Lazy initialization of OpenAI client."""
        if self._openai_client is None:
            api_key = self._api_key or config.OPENAI_API_KEY
            if not api_key:
                raise ValueError("OPENAI_API_KEY not configured")
            self._openai_client = AsyncOpenAI(api_key=api_key, timeout=EMBEDDING_CALL_TIMEOUT)
        return self._openai_client

    async def generate_embedding(self, text: str) -> List[float]:
        """
        Generate embedding for a text string.

        Args:
            text: Text to embed

        Returns:
            List of floats representing the embedding vector

        Raises:
            CollaboratorError: if the embedding API call fails
        """
        try:
            response = await self.openai_client.embeddings.create(
                model=self.model,
                input=text,
            )
        except Exception as e:
            raise wrap_llm_error(e, "openai") from e
        return response.data[0].embedding

    async def generate_embeddings_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts in one API call.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors, in input order
        """
        if not texts:
            return []
        try:
            response = await self.openai_client.embeddings.create(
                model=self.model,
                input=texts,
            )
        except Exception as e:
            raise wrap_llm_error(e, "openai") from e
        return [item.embedding for item in response.data]
