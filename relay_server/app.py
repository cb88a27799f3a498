"""
Relay application factory.

create_app() wires configuration, provider clients, event sinks, CORS, error
handlers and routers. Nothing is read from the environment here; pass a
RelayConfig (see config.RelayConfig.from_env) or get the defaults.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Iterable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from logging_setup import Component as LogComponent, get_logger
from observability.events import Component, EventEmitter, EventSink, LoggingSink
from providers.elevenlabs import ElevenLabsClient
from providers.openai_chat import OpenAIChatClient

from . import chat_api, voice_api
from .config import RelayConfig
from .dependencies import new_request_id
from .errors import install_error_handlers
from .models import HealthResponse

logger = get_logger(LogComponent.RELAY_SERVER)

REQUEST_ID_HEADER = "X-Request-ID"


def create_app(
    config: Optional[RelayConfig] = None,
    *,
    sinks: Optional[Iterable[EventSink]] = None,
    llm_client: Optional[OpenAIChatClient] = None,
    voice_client: Optional[ElevenLabsClient] = None,
) -> FastAPI:
    """
    Build the relay app.

    Args:
        config: Process configuration; defaults to RelayConfig()
        sinks: Event sinks; defaults to a LoggingSink
        llm_client: Chat completion client; built from config when omitted
        voice_client: Voice provider client; built from config when omitted
    """
    config = config or RelayConfig()

    if llm_client is None:
        llm_client = OpenAIChatClient(
            api_key=config.openai_api_key,
            model=config.openai_model,
            base_url=config.openai_base_url,
            timeout_seconds=config.provider_timeout_seconds,
        )
    if voice_client is None:
        voice_client = ElevenLabsClient(
            api_key=config.elevenlabs_api_key,
            base_url=config.elevenlabs_base_url,
            timeout_seconds=config.provider_timeout_seconds,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Relay started",
            llm_configured=bool(config.openai_api_key),
            voice_configured=bool(config.elevenlabs_api_key),
            model=config.openai_model,
        )
        try:
            yield
        finally:
            await llm_client.aclose()
            await voice_client.aclose()
            logger.info("Relay stopped")

    app = FastAPI(title="Character Voice Relay", lifespan=lifespan)
    app.state.config = config
    app.state.llm_client = llm_client
    app.state.voice_client = voice_client
    app.state.events = EventEmitter(
        Component.RELAY_SERVER,
        sinks=list(sinks) if sinks is not None else [LoggingSink()],
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials="*" not in config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )

    @app.middleware("http")
    async def assign_request_id(request: Request, call_next):
        request_id = new_request_id()
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    install_error_handlers(app)
    app.include_router(chat_api.router)
    app.include_router(voice_api.router)

    @app.get("/api/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        """Liveness check."""
        return HealthResponse(status="OK", timestamp=datetime.now(timezone.utc).isoformat())

    return app
