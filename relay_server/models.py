"""
Request and response bodies.

Required fields are declared Optional so that a missing field reaches the
handler, which answers with the relay's own 400 message instead of a
framework validation error.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    playerName: Optional[str] = Field(None, description="Character name")
    playerDescription: Optional[str] = Field(None, description="Character sheet, used as the system prompt")
    mjMessage: Optional[str] = Field(None, description="Game master message the character answers")


class ChatResponse(BaseModel):
    response: str
    error: Optional[bool] = Field(None, description="True when the reply is a fallback line")


class TTSRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    voiceId: Optional[str] = None
    text: Optional[str] = None
    voice_settings: Optional[Dict[str, Any]] = Field(
        None, description="Overrides for stability, similarity_boost, style, use_speaker_boost"
    )
    model_id: Optional[str] = None


class VoiceDesignRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    voice_description: Optional[str] = None
    model_id: Optional[str] = None
    text: Optional[str] = None
    auto_generate_text: Optional[bool] = None
    loudness: Optional[float] = None
    seed: Optional[int] = None
    guidance_scale: Optional[float] = None
    stream_previews: Optional[bool] = None
    quality: Optional[float] = None
    reference_audio_base64: Optional[str] = None
    prompt_strength: Optional[float] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
