"""
ElevenLabs client: text-to-speech, voice design and speech-to-text.

Payload builders are plain functions so the field rules (defaults, which
optional fields are forwarded) can be checked without a network.
"""
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Tuple

import aiohttp

from logging_setup import Component

from .base import ProviderClient, iter_body_chunks

DEFAULT_TTS_MODEL = "eleven_multilingual_v2"
DEFAULT_VOICE_DESIGN_MODEL = "eleven_multilingual_ttv_v2"
DEFAULT_STT_MODEL = "scribe_v1"

DEFAULT_VOICE_SETTINGS: Dict[str, Any] = {
    "stability": 0.5,
    "similarity_boost": 0.75,
    "style": 0.0,
    "use_speaker_boost": True,
}

DEFAULT_LOUDNESS = 0.5
DEFAULT_GUIDANCE_SCALE = 5.0

# Forwarded only when the caller set them; False and 0 count as set.
VOICE_DESIGN_OPTIONAL_FIELDS = (
    "text",
    "seed",
    "stream_previews",
    "quality",
    "reference_audio_base64",
    "prompt_strength",
)

# Forwarded only when present and non-empty on the incoming form.
TRANSCRIPTION_OPTIONAL_FIELDS = (
    "language_code",
    "num_speakers",
    "diarize",
    "tag_audio_events",
)


@dataclass(frozen=True)
class AudioUpload:
    """Uploaded audio held in memory."""

    content: bytes
    filename: str
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)


def build_voice_settings(overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Default tuning merged with caller overrides (None values ignored)."""
    settings = dict(DEFAULT_VOICE_SETTINGS)
    if overrides:
        settings.update({k: v for k, v in overrides.items() if v is not None})
    return settings


def build_voice_design_payload(
    voice_description: str,
    *,
    model_id: Optional[str] = None,
    auto_generate_text: Optional[bool] = None,
    loudness: Optional[float] = None,
    guidance_scale: Optional[float] = None,
    **optional: Any,
) -> Dict[str, Any]:
    """
    Provider body for a voice design request.

    Required fields are always present, defaulted when not given. Optional
    fields appear only when their value is not None.
    """
    unknown = set(optional) - set(VOICE_DESIGN_OPTIONAL_FIELDS)
    if unknown:
        raise TypeError(f"unexpected voice design fields: {sorted(unknown)}")

    if auto_generate_text is None:
        auto_generate_text = optional.get("text") is None

    payload: Dict[str, Any] = {
        "voice_description": voice_description,
        "model_id": model_id or DEFAULT_VOICE_DESIGN_MODEL,
        "auto_generate_text": auto_generate_text,
        "loudness": DEFAULT_LOUDNESS if loudness is None else loudness,
        "guidance_scale": DEFAULT_GUIDANCE_SCALE if guidance_scale is None else guidance_scale,
    }
    for name in VOICE_DESIGN_OPTIONAL_FIELDS:
        value = optional.get(name)
        if value is not None:
            payload[name] = value
    return payload


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def build_transcription_fields(
    *,
    model_id: Optional[str] = None,
    **options: Any,
) -> List[Tuple[str, str]]:
    """
    Non-file multipart fields in send order.

    model_id always comes first; optional fields follow in a fixed order and
    only when present. The string "false" and boolean False are present.
    """
    unknown = set(options) - set(TRANSCRIPTION_OPTIONAL_FIELDS)
    if unknown:
        raise TypeError(f"unexpected transcription fields: {sorted(unknown)}")

    model = model_id.strip() if isinstance(model_id, str) else model_id
    fields = [("model_id", model or DEFAULT_STT_MODEL)]
    for name in TRANSCRIPTION_OPTIONAL_FIELDS:
        value = options.get(name)
        if _is_present(value):
            fields.append((name, _form_value(value).strip()))
    return fields


def build_transcription_form(audio: AudioUpload, fields: List[Tuple[str, str]]) -> aiohttp.FormData:
    """Multipart body: the audio file first, then fields in order."""
    form = aiohttp.FormData()
    form.add_field(
        "file",
        audio.content,
        filename=audio.filename,
        content_type=audio.content_type,
    )
    for name, value in fields:
        form.add_field(name, value)
    return form


class ElevenLabsClient(ProviderClient):
    """ElevenLabs REST API over aiohttp."""

    provider_name = "elevenlabs"

    def __init__(
        self,
        *,
        api_key: Optional[str],
        base_url: str = "https://api.elevenlabs.io",
        timeout_seconds: float = 120.0,
    ):
        super().__init__(
            base_url=base_url,
            timeout_seconds=timeout_seconds,
            component=Component.VOICE_PROVIDER,
        )
        self._api_key = api_key

    def _headers(self, accept: str = "application/json") -> Dict[str, str]:
        return {"xi-api-key": self._api_key or "", "Accept": accept}

    async def synthesize_stream(
        self,
        *,
        voice_id: str,
        text: str,
        voice_settings: Dict[str, Any],
        model_id: str = DEFAULT_TTS_MODEL,
    ) -> AsyncIterator[bytes]:
        """
        Start synthesis and return an iterator over MPEG audio chunks.

        The provider status is checked before this returns, so failures
        surface before any audio is relayed.
        """
        response = await self._open(
            "POST",
            f"/v1/text-to-speech/{voice_id}/stream",
            headers=self._headers(accept="audio/mpeg"),
            json={"text": text, "model_id": model_id, "voice_settings": voice_settings},
        )
        self.logger.info("Speech stream opened", voice_id=voice_id, text_length=len(text))
        return iter_body_chunks(response)

    async def design_voice(self, payload: Dict[str, Any]) -> Any:
        """Create voice previews from a description. Returns provider JSON."""
        t_start = time.perf_counter()
        result = await self._request_json(
            "POST",
            "/v1/text-to-voice/design",
            headers=self._headers(),
            json=payload,
        )
        self.logger.info(
            "Voice design completed",
            model_id=payload.get("model_id"),
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
        return result

    async def transcribe(self, audio: AudioUpload, fields: List[Tuple[str, str]]) -> Any:
        """Upload audio for transcription. Returns provider JSON."""
        t_start = time.perf_counter()
        result = await self._request_json(
            "POST",
            "/v1/speech-to-text",
            headers=self._headers(),
            data=build_transcription_form(audio, fields),
        )
        self.logger.info(
            "Transcription completed",
            audio_bytes=audio.size,
            fields=[name for name, _ in fields],
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
        return result
