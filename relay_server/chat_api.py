"""
Chat relay: POST /api/chat.

The character always answers. Once the request is valid and the relay is
configured, any provider failure becomes an in-character fallback line with
HTTP 200 and "error": true, so the conversation on the client never breaks.

Reply mode is chosen by the Accept header:
- "text/event-stream": one SSE event per token, then {"done": true}
- anything else: {"response": "..."} once the completion is finished
"""
import json
from typing import Any, AsyncIterator, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from logging_setup import Component as LogComponent, get_logger
from observability.events import Component, EventEmitter, Severity
from providers.openai_chat import OpenAIChatClient

from .config import RelayConfig
from .dependencies import emitter_for, get_config, get_llm_client, get_request_id
from .errors import ConfigurationError, ValidationError, classify_upstream_error, redact
from .models import ChatRequest, ChatResponse

router = APIRouter(prefix="/api", tags=["chat"])
logger = get_logger(LogComponent.CHAT)

REQUIRED_FIELDS = ("playerName", "playerDescription", "mjMessage")
MISSING_FIELDS_MESSAGE = "Missing required fields: playerName, playerDescription, mjMessage"
EVENT_STREAM = "text/event-stream"


def fallback_line(player_name: str) -> str:
    return f"*{player_name or 'Player'} nods thoughtfully*"


def wants_event_stream(request: Request) -> bool:
    return EVENT_STREAM in request.headers.get("accept", "").lower()


def sse_event(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _emit_fallback(events: EventEmitter, request_id: str, error: Exception, tokens_sent: int) -> None:
    events.emit(
        "chat.fallback",
        request_id,
        severity=Severity.WARN,
        category=classify_upstream_error(error),
        error_type=type(error).__name__,
        detail=redact(str(error)),
        tokens_sent=tokens_sent,
    )


async def stream_reply(
    llm: OpenAIChatClient,
    config: RelayConfig,
    body: ChatRequest,
    events: EventEmitter,
    request_id: str,
) -> AsyncIterator[str]:
    """
    SSE body: token events in upstream order, then a done event.

    A failure before the first token sends the fallback line as a single
    token event; a failure mid-reply ends the stream with "error": true.
    """
    tokens_sent = 0
    try:
        async for token in llm.stream(
            system=body.playerDescription,
            prompt=body.mjMessage,
            temperature=config.chat_temperature,
            max_tokens=config.chat_max_tokens,
        ):
            tokens_sent += 1
            yield sse_event({"token": token})
    except Exception as e:
        logger.warning(
            "Chat stream failed, using fallback",
            request_id=request_id,
            error_type=type(e).__name__,
            tokens_sent=tokens_sent,
        )
        _emit_fallback(events, request_id, e, tokens_sent)
        if tokens_sent == 0:
            yield sse_event({"token": fallback_line(body.playerName), "error": True})
            yield sse_event({"done": True})
        else:
            yield sse_event({"done": True, "error": True})
        return

    events.emit("chat.completed", request_id, stream=True, token_count=tokens_sent)
    yield sse_event({"done": True})


@router.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
async def chat(
    body: ChatRequest,
    request: Request,
    config: RelayConfig = Depends(get_config),
    llm: OpenAIChatClient = Depends(get_llm_client),
    events: EventEmitter = Depends(emitter_for(Component.CHAT)),
    request_id: str = Depends(get_request_id),
):
    """Answer the game master's message in character."""
    missing = [name for name in REQUIRED_FIELDS if not getattr(body, name)]
    if missing:
        events.emit("chat.rejected", request_id, severity=Severity.INFO, missing_fields=missing)
        raise ValidationError(MISSING_FIELDS_MESSAGE)

    if not config.openai_api_key:
        events.emit(
            "config.missing_credential",
            request_id,
            severity=Severity.ERROR,
            setting="OPENAI_API_KEY",
        )
        raise ConfigurationError("OPENAI_API_KEY")

    stream = wants_event_stream(request)
    events.emit(
        "chat.request",
        request_id,
        stream=stream,
        model=llm.model,
        character_length=len(body.playerDescription),
        message_length=len(body.mjMessage),
    )

    if stream:
        return StreamingResponse(
            stream_reply(llm, config, body, events, request_id),
            media_type=EVENT_STREAM,
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    try:
        text = await llm.complete(
            system=body.playerDescription,
            prompt=body.mjMessage,
            temperature=config.chat_temperature,
            max_tokens=config.chat_max_tokens,
        )
    except Exception as e:
        logger.warning(
            "Chat completion failed, using fallback",
            request_id=request_id,
            error_type=type(e).__name__,
        )
        _emit_fallback(events, request_id, e, tokens_sent=0)
        return ChatResponse(response=fallback_line(body.playerName), error=True)

    events.emit("chat.completed", request_id, stream=False, response_length=len(text))
    return ChatResponse(response=text)
