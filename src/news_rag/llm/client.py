"""
Generation Capability

The orchestrator talks to text generation only through ``GenerationEngine``.
Backends:

- OpenAIChatGenerator: OpenAI-compatible chat completions over httpx.
- EchoGenerator: offline stand-in that answers from the prompt context.

Both report warm-up as NotReadyError and any other problem as
GenerationFailure. Timeouts are the adapter's responsibility (the shared
httpx client's timeout).
"""

from typing import Any, Dict, Protocol
import logging

import httpx

from ..core.errors import GenerationFailure, NotReadyError

logger = logging.getLogger("newsrag.llm")

SYSTEM_PROMPT = (
    "You are a helpful news assistant. Use the context to answer user questions."
)


class GenerationEngine(Protocol):
    async def generate(self, prompt: str, max_new_tokens: int) -> str:
        """Return the raw reply text for ``prompt``."""
        ...


class OpenAIChatGenerator:
    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        system_prompt: str = SYSTEM_PROMPT,
        temperature: float = 0.2,
    ):
        self._client = client
        self._api_key = api_key
        self.model = model
        self.url = base_url.rstrip("/") + "/chat/completions"
        self.system_prompt = system_prompt
        self.temperature = temperature

    async def generate(self, prompt: str, max_new_tokens: int) -> str:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "max_tokens": max_new_tokens,
        }

        try:
            resp = await self._client.post(
                self.url,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 503:
                raise NotReadyError("Generation service is warming up") from exc
            raise GenerationFailure(
                f"Chat completion rejected: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise GenerationFailure(
                f"Chat completion failed: {type(exc).__name__}"
            ) from exc

        data = resp.json()
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationFailure("Malformed chat completion response") from exc

        if not isinstance(content, str):
            raise GenerationFailure("Chat completion returned no text content")
        return content


class EchoGenerator:
    """
    Offline generator: replies with the opening of the retrieved context.

    Mirrors the in-memory mock backend used during local development.
    """

    def __init__(self, max_chars_per_token: int = 4):
        self.max_chars_per_token = max_chars_per_token

    async def generate(self, prompt: str, max_new_tokens: int) -> str:
        if prompt.startswith("Context: "):
            context, _, question = prompt.removeprefix("Context: ").partition("\n\nQuestion: ")
        else:
            context, question = "", prompt.removeprefix("Question: ")
        context = context.strip()
        if not context:
            return f"I could not find any news related to: {question.strip()}"

        limit = max(1, max_new_tokens) * self.max_chars_per_token
        return f"Here is what the news says:\n{context[:limit]}"
