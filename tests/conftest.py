"""
Shared fixtures: a relay app wired to fake provider clients and an
in-memory EventStore, so no test touches the network.
"""
from typing import Any, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from observability.event_store import EventStore
from providers.elevenlabs import AudioUpload
from relay_server.app import create_app
from relay_server.config import RelayConfig
from relay_server.errors import UpstreamError


class FakeLLMClient:
    """Stands in for OpenAIChatClient."""

    provider_name = "openai"
    model = "gpt-4o"

    def __init__(self):
        self.reply: str = "Bob grunts."
        self.tokens: List[str] = ["Hel", "lo"]
        self.error: Optional[Exception] = None
        self.fail_after: Optional[int] = None
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, *, system, prompt, temperature, max_tokens):
        self.calls.append(
            {"system": system, "prompt": prompt, "temperature": temperature, "max_tokens": max_tokens}
        )
        if self.error:
            raise self.error
        return self.reply

    async def stream(self, *, system, prompt, temperature, max_tokens):
        self.calls.append(
            {"system": system, "prompt": prompt, "temperature": temperature, "max_tokens": max_tokens}
        )
        for i, token in enumerate(self.tokens):
            if self.fail_after is not None and i >= self.fail_after:
                raise self.error or UpstreamError("openai stream interrupted")
            yield token
        if self.error and self.fail_after is None:
            raise self.error

    async def aclose(self):
        pass


class FakeVoiceClient:
    """Stands in for ElevenLabsClient."""

    provider_name = "elevenlabs"

    def __init__(self):
        self.audio_chunks: List[bytes] = [b"ID3", b"\x00\x01\x02"]
        self.design_result: Any = {"previews": [{"generated_voice_id": "gv_1"}], "text": "Hello"}
        self.transcript: Any = {"language_code": "en", "text": "Hello there"}
        self.error: Optional[Exception] = None
        self.tts_calls: List[Dict[str, Any]] = []
        self.design_calls: List[Dict[str, Any]] = []
        self.stt_calls: List[Tuple[AudioUpload, List[Tuple[str, str]]]] = []

    async def synthesize_stream(self, *, voice_id, text, voice_settings, model_id):
        self.tts_calls.append(
            {"voice_id": voice_id, "text": text, "voice_settings": voice_settings, "model_id": model_id}
        )
        if self.error:
            raise self.error

        async def _chunks():
            for chunk in self.audio_chunks:
                yield chunk

        return _chunks()

    async def design_voice(self, payload):
        self.design_calls.append(payload)
        if self.error:
            raise self.error
        return self.design_result

    async def transcribe(self, audio, fields):
        self.stt_calls.append((audio, fields))
        if self.error:
            raise self.error
        return self.transcript

    async def aclose(self):
        pass


@pytest.fixture
def config():
    return RelayConfig(openai_api_key="sk-test", elevenlabs_api_key="xi-test")


@pytest.fixture
def event_store():
    return EventStore()


@pytest.fixture
def llm():
    return FakeLLMClient()


@pytest.fixture
def voice():
    return FakeVoiceClient()


@pytest.fixture
def make_client(event_store, llm, voice):
    """Build a TestClient for a given config."""

    def _make(cfg: RelayConfig) -> TestClient:
        app = create_app(cfg, sinks=[event_store], llm_client=llm, voice_client=voice)
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client, config):
    return make_client(config)
