"""OpenAI chat completion client used by the analysis and summary tools."""

import json
import time
import logging
from typing import List, Dict, Any, Optional
from openai import AsyncOpenAI

from chatcmd.infra.config import config
from chatcmd.infra.error_handler import wrap_llm_error
from chatcmd.infra.metrics import llm_calls_total, llm_call_duration
from chatcmd.infra.timeout import LLM_CALL_TIMEOUT

logger = logging.getLogger(__name__)


class CompletionClient:
    """Text and structured-JSON chat completions."""

    provider = "openai"

    def __init__(self, model: Optional[str] = None, api_key: Optional[str] = None):
        self._client = None
        self._api_key = api_key
        self.model = model or config.OPENAI_MODEL

    @property
    def client(self):
        """Lazy initialization of OpenAI client."""
        if self._client is None:
            api_key = self._api_key or config.OPENAI_API_KEY
            if not api_key:
                raise ValueError("OPENAI_API_KEY not configured")
            self._client = AsyncOpenAI(api_key=api_key, timeout=LLM_CALL_TIMEOUT)
        return self._client

    async def _create(self, **request_params):
        start_time = time.time()
        try:
            response = await self.client.chat.completions.create(model=self.model, **request_params)
        except Exception as e:
            llm_calls_total.labels(provider=self.provider, model=self.model, status="error").inc()
            logger.error(f"Chat completion failed for {self.model}: {type(e).__name__}: {e}", exc_info=True)
            raise wrap_llm_error(e, self.provider) from e
        finally:
            llm_call_duration.labels(provider=self.provider, model=self.model).observe(time.time() - start_time)
        llm_calls_total.labels(provider=self.provider, model=self.model, status="success").inc()
        return response

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.3,
        max_tokens: int = 500,
    ) -> str:
        """
        Run a plain text completion.

        Args:
            messages: Chat messages ({"role", "content"})
            temperature: Sampling temperature
            max_tokens: Completion token budget

        Returns:
            The assistant message text (empty string if none)
        """
        response = await self._create(
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return (response.choices[0].message.content or "").strip()

    async def complete_json(
        self,
        messages: List[Dict[str, str]],
        schema_name: str,
        schema: Dict[str, Any],
        temperature: float = 0.3,
        max_tokens: int = 500,
    ) -> Optional[Dict[str, Any]]:
        """
        Run a completion constrained to a JSON schema.

        Returns None when structured output is disabled or the model returns
        content that does not parse as a JSON object, so callers can fall back
        to text parsing.
        """
        if not config.USE_STRUCTURED_OUTPUT:
            return None
        response = await self._create(
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={
                "type": "json_schema",
                "json_schema": {"name": schema_name, "schema": schema, "strict": True},
            },
        )
        content = response.choices[0].message.content
        if not content:
            return None
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError:
            logger.warning(f"Structured output for {schema_name} was not valid JSON; falling back to text")
            return None
        return parsed if isinstance(parsed, dict) else None
