"""
Voice relays: speech synthesis, voice design and transcription.

Unlike chat, these routes surface provider failures to the caller:
- /api/tts answers 500 with a generic message (no fallback audio)
- /api/voice-design relays the provider status and body verbatim
- /api/stt relays the provider status with the provider body as details
"""
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse, Response, StreamingResponse

from logging_setup import Component as LogComponent, get_logger
from observability.events import Component, EventEmitter, Severity
from providers.elevenlabs import (
    AudioUpload,
    ElevenLabsClient,
    build_transcription_fields,
    build_voice_design_payload,
    build_voice_settings,
    DEFAULT_TTS_MODEL,
)

from .config import RelayConfig
from .dependencies import emitter_for, get_config, get_request_id, get_voice_client
from .errors import (
    ConfigurationError,
    RelayError,
    UpstreamError,
    ValidationError,
    classify_upstream_error,
    redact,
)
from .models import TTSRequest, VoiceDesignRequest

router = APIRouter(prefix="/api", tags=["voice"])

tts_logger = get_logger(LogComponent.TTS)
design_logger = get_logger(LogComponent.VOICE_DESIGN)
stt_logger = get_logger(LogComponent.STT)

TTS_FAILED_MESSAGE = "Failed to generate speech"
VOICE_DESIGN_FAILED_MESSAGE = "Voice design request failed"
STT_FAILED_MESSAGE = "Transcription failed"

VOICE_DESCRIPTION_MIN = 20
VOICE_DESCRIPTION_MAX = 1000


def _require_voice_key(config: RelayConfig, events: EventEmitter, request_id: str) -> None:
    if not config.elevenlabs_api_key:
        events.emit(
            "config.missing_credential",
            request_id,
            severity=Severity.ERROR,
            setting="ELEVENLABS_API_KEY",
        )
        raise ConfigurationError("ELEVENLABS_API_KEY")


def _emit_failure(events: EventEmitter, event_type: str, request_id: str, error: Exception) -> None:
    events.emit(
        event_type,
        request_id,
        severity=Severity.ERROR,
        category=classify_upstream_error(error),
        upstream_status=getattr(error, "upstream_status", None),
        error_type=type(error).__name__,
        detail=redact(str(error)),
    )


async def _relay_audio(
    chunks: AsyncIterator[bytes], events: EventEmitter, request_id: str
) -> AsyncIterator[bytes]:
    total = 0
    try:
        async for chunk in chunks:
            total += len(chunk)
            yield chunk
    except Exception as e:
        # Headers are already sent; the connection is aborted.
        tts_logger.error("Speech stream interrupted", request_id=request_id, bytes_sent=total)
        _emit_failure(events, "tts.failed", request_id, e)
        raise
    events.emit("tts.completed", request_id, audio_bytes=total)


@router.post("/tts")
async def text_to_speech(
    body: TTSRequest,
    config: RelayConfig = Depends(get_config),
    voice: ElevenLabsClient = Depends(get_voice_client),
    events: EventEmitter = Depends(emitter_for(Component.TTS)),
    request_id: str = Depends(get_request_id),
):
    """Synthesize text with the given voice and stream back MPEG audio."""
    if not body.voiceId or not body.text:
        raise ValidationError("Missing required fields: voiceId, text")
    _require_voice_key(config, events, request_id)

    settings = build_voice_settings(body.voice_settings)
    events.emit("tts.request", request_id, voice_id=body.voiceId, text_length=len(body.text))

    try:
        chunks = await voice.synthesize_stream(
            voice_id=body.voiceId,
            text=body.text,
            voice_settings=settings,
            model_id=body.model_id or DEFAULT_TTS_MODEL,
        )
    except Exception as e:
        tts_logger.error("Speech synthesis failed", request_id=request_id, error_type=type(e).__name__)
        _emit_failure(events, "tts.failed", request_id, e)
        return JSONResponse(status_code=500, content={"error": TTS_FAILED_MESSAGE})

    return StreamingResponse(_relay_audio(chunks, events, request_id), media_type="audio/mpeg")


@router.post("/voice-design")
async def voice_design(
    body: VoiceDesignRequest,
    config: RelayConfig = Depends(get_config),
    voice: ElevenLabsClient = Depends(get_voice_client),
    events: EventEmitter = Depends(emitter_for(Component.VOICE_DESIGN)),
    request_id: str = Depends(get_request_id),
):
    """Generate voice previews from a natural-language description."""
    description = body.voice_description or ""
    if not VOICE_DESCRIPTION_MIN <= len(description) <= VOICE_DESCRIPTION_MAX:
        raise ValidationError(
            f"voice_description must be between {VOICE_DESCRIPTION_MIN} "
            f"and {VOICE_DESCRIPTION_MAX} characters"
        )
    _require_voice_key(config, events, request_id)

    payload = build_voice_design_payload(
        description,
        model_id=body.model_id,
        auto_generate_text=body.auto_generate_text,
        loudness=body.loudness,
        guidance_scale=body.guidance_scale,
        text=body.text,
        seed=body.seed,
        stream_previews=body.stream_previews,
        quality=body.quality,
        reference_audio_base64=body.reference_audio_base64,
        prompt_strength=body.prompt_strength,
    )
    events.emit(
        "voice_design.request",
        request_id,
        model_id=payload["model_id"],
        description_length=len(description),
        optional_fields=sorted(k for k in payload if k not in ("voice_description", "model_id")),
    )

    try:
        result = await voice.design_voice(payload)
    except UpstreamError as e:
        design_logger.error("Voice design failed", request_id=request_id, upstream_status=e.upstream_status)
        _emit_failure(events, "voice_design.failed", request_id, e)
        if e.upstream_status is not None and e.payload is not None:
            if isinstance(e.payload, str):
                return Response(
                    content=e.payload,
                    status_code=e.upstream_status,
                    media_type=e.content_type or "text/plain",
                )
            return JSONResponse(status_code=e.upstream_status, content=e.payload)
        return JSONResponse(status_code=e.status_code, content={"error": VOICE_DESIGN_FAILED_MESSAGE})

    events.emit("voice_design.completed", request_id)
    return result


@router.post("/stt")
async def speech_to_text(
    audio: Optional[UploadFile] = File(None),
    model_id: Optional[str] = Form(None),
    language_code: Optional[str] = Form(None),
    num_speakers: Optional[str] = Form(None),
    diarize: Optional[str] = Form(None),
    tag_audio_events: Optional[str] = Form(None),
    config: RelayConfig = Depends(get_config),
    voice: ElevenLabsClient = Depends(get_voice_client),
    events: EventEmitter = Depends(emitter_for(Component.STT)),
    request_id: str = Depends(get_request_id),
):
    """Transcribe an uploaded audio file."""
    if audio is None or not audio.filename:
        raise ValidationError("No audio file provided")
    if audio.size is not None and audio.size > config.max_upload_bytes:
        raise ValidationError(f"Audio file exceeds {config.max_upload_bytes} bytes")
    _require_voice_key(config, events, request_id)

    content = await audio.read()
    if len(content) > config.max_upload_bytes:
        raise ValidationError(f"Audio file exceeds {config.max_upload_bytes} bytes")

    upload = AudioUpload(
        content=content,
        filename=audio.filename,
        content_type=audio.content_type or "application/octet-stream",
    )
    fields = build_transcription_fields(
        model_id=model_id,
        language_code=language_code,
        num_speakers=num_speakers,
        diarize=diarize,
        tag_audio_events=tag_audio_events,
    )
    events.emit(
        "stt.request",
        request_id,
        audio_bytes=upload.size,
        content_type=upload.content_type,
        fields=[name for name, _ in fields],
    )

    try:
        result = await voice.transcribe(upload, fields)
    except RelayError as e:
        stt_logger.error("Transcription failed", request_id=request_id, error_type=type(e).__name__)
        _emit_failure(events, "stt.failed", request_id, e)
        raise UpstreamError(
            STT_FAILED_MESSAGE,
            status_code=getattr(e, "upstream_status", None),
            payload=getattr(e, "payload", None),
            provider=voice.provider_name,
        ) from e

    events.emit("stt.completed", request_id)
    return result
