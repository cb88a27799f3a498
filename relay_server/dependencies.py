"""FastAPI dependencies resolving per-app state."""
import uuid

from fastapi import Request

from observability.events import Component, EventEmitter
from providers.elevenlabs import ElevenLabsClient
from providers.openai_chat import OpenAIChatClient

from .config import RelayConfig


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex}"


def get_config(request: Request) -> RelayConfig:
    return request.app.state.config


def get_llm_client(request: Request) -> OpenAIChatClient:
    return request.app.state.llm_client


def get_voice_client(request: Request) -> ElevenLabsClient:
    return request.app.state.voice_client


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id is None:
        request_id = new_request_id()
        request.state.request_id = request_id
    return request_id


def get_emitter(request: Request) -> EventEmitter:
    return request.app.state.events


def emitter_for(component: Component):
    """Dependency factory: the app emitter tagged with a route's component."""

    def _dependency(request: Request) -> EventEmitter:
        return get_emitter(request).for_component(component)

    return _dependency
