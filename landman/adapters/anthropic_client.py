"""
Anthropic Claude assessment client.
"""

from typing import Optional

import anthropic
import structlog

from landman.adapters.base import AssessmentClient
from landman.errors import ExternalDependencyError

logger = structlog.get_logger(__name__)


class AnthropicAssessmentClient(AssessmentClient):
    """Runs the relevance prompt against the Messages API."""

    DEFAULT_MODEL = "claude-3-5-sonnet-20241022"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = DEFAULT_MODEL,
        max_tokens: int = 1500,
        timeout_seconds: float = 60.0,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        # Retries are disabled: a failed call is recorded and re-queued by a human
        self._client = client or anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=timeout_seconds,
            max_retries=0,
        )

    @property
    def client_name(self) -> str:
        return f"anthropic:{self.model}"

    async def complete(self, prompt: str) -> str:
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            raise ExternalDependencyError("anthropic", str(e)) from e

        text_parts = [
            block.text for block in response.content if getattr(block, "type", None) == "text"
        ]
        return "".join(text_parts)

    async def close(self) -> None:
        await self._client.close()
