"""
OpenAI Chat Completions client.

Single-turn completions: one system instruction, one user prompt.
Supports both a buffered reply and token streaming (server-sent events).
"""
import json
import time
from typing import Any, AsyncIterator, Dict, List, Optional

from logging_setup import Component
from relay_server.errors import UpstreamError

from .base import TRANSPORT_ERRORS, ProviderClient

STREAM_DONE = "[DONE]"


def build_messages(system: str, prompt: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": prompt},
    ]


def parse_stream_line(line: str) -> Optional[Dict[str, Any]]:
    """
    Parse one line of an OpenAI event stream.

    Returns the decoded chunk for "data: {...}" lines, {"done": True} for the
    "[DONE]" sentinel and None for blank lines, comments and other fields.
    Raises ValueError on a data line that is not JSON.
    """
    line = line.strip()
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if data == STREAM_DONE:
        return {"done": True}
    return json.loads(data)


def extract_delta(chunk: Dict[str, Any]) -> str:
    """Token text carried by a streamed chunk ("" for role/finish chunks)."""
    choices = chunk.get("choices") or []
    if not choices:
        return ""
    return (choices[0].get("delta") or {}).get("content") or ""


def extract_message(body: Dict[str, Any]) -> str:
    """Assistant text of a non-streamed completion. KeyError/IndexError/TypeError when malformed."""
    content = body["choices"][0]["message"]["content"]
    if not isinstance(content, str):
        raise TypeError("completion content is not text")
    return content


class OpenAIChatClient(ProviderClient):
    """Chat Completions over aiohttp."""

    provider_name = "openai"

    def __init__(
        self,
        *,
        api_key: Optional[str],
        model: str = "gpt-4o",
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 120.0,
    ):
        super().__init__(
            base_url=base_url,
            timeout_seconds=timeout_seconds,
            component=Component.LLM_PROVIDER,
        )
        self._api_key = api_key
        self.model = model

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _payload(
        self, system: str, prompt: str, temperature: float, max_tokens: int, stream: bool
    ) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": build_messages(system, prompt),
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": stream,
        }

    async def complete(
        self, *, system: str, prompt: str, temperature: float, max_tokens: int
    ) -> str:
        """Return the full completion text."""
        t_start = time.perf_counter()
        body = await self._request_json(
            "POST",
            "/chat/completions",
            headers=self._headers(),
            json=self._payload(system, prompt, temperature, max_tokens, stream=False),
        )
        try:
            text = extract_message(body)
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamError("openai returned a malformed completion", provider=self.provider_name) from e

        self.logger.info(
            "Completion received",
            model=self.model,
            text_length=len(text),
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
        return text

    async def stream(
        self, *, system: str, prompt: str, temperature: float, max_tokens: int
    ) -> AsyncIterator[str]:
        """Yield completion tokens in the order the provider produces them."""
        t_start = time.perf_counter()
        response = await self._open(
            "POST",
            "/chat/completions",
            headers={**self._headers(), "Accept": "text/event-stream"},
            json=self._payload(system, prompt, temperature, max_tokens, stream=True),
        )
        token_count = 0
        try:
            async for raw_line in response.content:
                try:
                    chunk = parse_stream_line(raw_line.decode("utf-8"))
                except ValueError as e:
                    raise UpstreamError(
                        "openai returned a malformed stream chunk", provider=self.provider_name
                    ) from e
                if chunk is None:
                    continue
                if chunk.get("done"):
                    break
                token = extract_delta(chunk)
                if token:
                    token_count += 1
                    yield token
        except TRANSPORT_ERRORS as e:
            raise UpstreamError(
                f"openai stream interrupted: {type(e).__name__}", provider=self.provider_name
            ) from e
        finally:
            response.release()

        self.logger.info(
            "Completion stream finished",
            model=self.model,
            token_count=token_count,
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
