"""
Text generation interface.

The terminal service does not generate text itself; the explain
meta-command hands file content to whatever TextGenerator the application
injects. MessagesTextGenerator is the stock HTTP implementation.
"""

import os
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from cbx_terminal.executor.types import ExecutorError
from cbx_terminal.utils.logging import get_logger

logger = get_logger(__name__)


class TextGenerationError(ExecutorError):
    """Raised when the text generation backend fails or returns no text."""

    pass


class TextGenerator(ABC):
    """Base interface for text generation backends."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 500,
    ) -> str:
        """
        Generate text for a prompt.

        Returns:
            The generated text

        Raises:
            TextGenerationError: If generation fails
        """
        pass


class MessagesTextGenerator(TextGenerator):
    """
    Text generator backed by a Messages-style HTTP API.

    Sends {model, max_tokens, system, messages} and reads the first text
    block of the response content.
    """

    def __init__(
        self,
        api_url: str,
        model: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 60.0,
        api_version: str = "2023-06-01",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_url: Full URL of the messages endpoint
            model: Model identifier sent with each request
            api_key: API key sent as x-api-key (omitted if None)
            timeout_seconds: HTTP timeout
            api_version: Value of the anthropic-version header
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.api_url = api_url
        self.model = model
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.api_version = api_version
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {
            "content-type": "application/json",
            "anthropic-version": self.api_version,
        }
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    def _payload(self, prompt: str, system_prompt: Optional[str], max_tokens: int) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            payload["system"] = system_prompt
        return payload

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        max_tokens: int = 500,
    ) -> str:
        logger.debug(f"Requesting text generation from {self.api_url} (model={self.model})")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self.transport,
            ) as client:
                response = await client.post(
                    self.api_url,
                    headers=self._headers(),
                    json=self._payload(prompt, system_prompt, max_tokens),
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise TextGenerationError(
                f"Text generation failed with HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise TextGenerationError(f"Text generation request failed: {e}") from e
        except ValueError as e:
            raise TextGenerationError(f"Invalid JSON from text generation API: {e}") from e

        content = data.get("content", []) if isinstance(data, dict) else []
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                return block.get("text", "")

        raise TextGenerationError("Text generation response contained no text")


def create_text_generator(textgen_config: dict[str, Any]) -> Optional[TextGenerator]:
    """
    Factory function to create the configured text generator.

    Returns None when no API URL or model is configured, in which case the
    explain meta-command reports that no generator is available.
    """
    api_url = textgen_config.get("api_url")
    model = textgen_config.get("model")
    if not api_url or not model:
        return None

    api_key_env = textgen_config.get("api_key_env")
    return MessagesTextGenerator(
        api_url=api_url,
        model=model,
        api_key=os.environ.get(api_key_env) if api_key_env else None,
        timeout_seconds=textgen_config.get("timeout_seconds", 60.0),
        api_version=textgen_config.get("api_version", "2023-06-01"),
    )
