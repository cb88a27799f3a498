"""
Tests for the voice relays: /api/tts, /api/voice-design, /api/stt.

Verifies:
- Validation (400) and missing credential (500) paths
- Defaults and optional-field forwarding
- Provider failures surface (no fallback), each in its own shape
"""
import pytest

from relay_server.config import RelayConfig
from relay_server.errors import UpstreamError

NO_VOICE_KEY = RelayConfig(openai_api_key="sk-test", elevenlabs_api_key=None)


class TestTextToSpeech:
    def test_streams_audio(self, client, voice):
        res = client.post("/api/tts", json={"voiceId": "voice_1", "text": "Hello"})
        assert res.status_code == 200
        assert res.headers["content-type"] == "audio/mpeg"
        assert res.content == b"ID3\x00\x01\x02"

    def test_default_voice_settings(self, client, voice):
        client.post("/api/tts", json={"voiceId": "voice_1", "text": "Hello"})
        call = voice.tts_calls[0]
        assert call["voice_id"] == "voice_1"
        assert call["model_id"] == "eleven_multilingual_v2"
        assert call["voice_settings"] == {
            "stability": 0.5,
            "similarity_boost": 0.75,
            "style": 0.0,
            "use_speaker_boost": True,
        }

    def test_voice_settings_override(self, client, voice):
        client.post(
            "/api/tts",
            json={"voiceId": "v", "text": "Hi", "voice_settings": {"stability": 0.9, "use_speaker_boost": False}},
        )
        settings = voice.tts_calls[0]["voice_settings"]
        assert settings["stability"] == 0.9
        assert settings["use_speaker_boost"] is False
        assert settings["similarity_boost"] == 0.75

    def test_provider_failure_is_generic_500(self, client, voice, event_store):
        voice.error = UpstreamError("elevenlabs returned 401", status_code=401, payload={"detail": "bad key"})
        res = client.post("/api/tts", json={"voiceId": "v", "text": "Hi"})
        assert res.status_code == 500
        assert res.json() == {"error": "Failed to generate speech"}
        failed = event_store.query(event_type="tts.failed")[0]
        assert failed["category"] == "provider.auth_failed"

    def test_missing_fields(self, client, voice):
        res = client.post("/api/tts", json={"text": "Hi"})
        assert res.status_code == 400
        assert voice.tts_calls == []

    def test_missing_credential(self, make_client):
        res = make_client(NO_VOICE_KEY).post("/api/tts", json={"voiceId": "v", "text": "Hi"})
        assert res.status_code == 500
        assert res.json() == {"error": "Server misconfiguration: ELEVENLABS_API_KEY missing"}


class TestVoiceDesign:
    @pytest.mark.parametrize("length", [19, 1001])
    def test_description_length_rejected(self, client, voice, length):
        res = client.post("/api/voice-design", json={"voice_description": "a" * length})
        assert res.status_code == 400
        assert voice.design_calls == []

    @pytest.mark.parametrize("length", [20, 1000])
    def test_description_length_accepted(self, client, voice, length):
        res = client.post("/api/voice-design", json={"voice_description": "a" * length})
        assert res.status_code == 200
        assert res.json() == voice.design_result

    def test_missing_description(self, client):
        res = client.post("/api/voice-design", json={})
        assert res.status_code == 400

    def test_required_fields_defaulted(self, client, voice):
        client.post("/api/voice-design", json={"voice_description": "A deep, gravelly dwarf voice"})
        assert voice.design_calls[0] == {
            "voice_description": "A deep, gravelly dwarf voice",
            "model_id": "eleven_multilingual_ttv_v2",
            "auto_generate_text": True,
            "loudness": 0.5,
            "guidance_scale": 5.0,
        }

    def test_optional_fields_forwarded_when_given(self, client, voice):
        client.post(
            "/api/voice-design",
            json={
                "voice_description": "A deep, gravelly dwarf voice",
                "text": "By my beard, a dragon!" * 5,
                "seed": 0,
                "stream_previews": False,
                "prompt_strength": 0.3,
            },
        )
        payload = voice.design_calls[0]
        assert payload["seed"] == 0
        assert payload["stream_previews"] is False
        assert payload["prompt_strength"] == 0.3
        assert payload["auto_generate_text"] is False
        assert "quality" not in payload
        assert "reference_audio_base64" not in payload

    def test_provider_error_relayed_verbatim(self, client, voice):
        body = {"detail": {"status": "invalid_description", "message": "Too vague"}}
        voice.error = UpstreamError("elevenlabs returned 422", status_code=422, payload=body)
        res = client.post("/api/voice-design", json={"voice_description": "a" * 30})
        assert res.status_code == 422
        assert res.json() == body

    def test_text_error_body_relayed_verbatim(self, client, voice):
        voice.error = UpstreamError("elevenlabs returned 502", status_code=502, payload="Bad Gateway")
        res = client.post("/api/voice-design", json={"voice_description": "a" * 30})
        assert res.status_code == 502
        assert res.content == b"Bad Gateway"
        assert res.headers["content-type"].startswith("text/plain")

    def test_text_error_keeps_provider_content_type(self, client, voice):
        page = "<html><body>upstream down</body></html>"
        voice.error = UpstreamError(
            "elevenlabs returned 503", status_code=503, payload=page, content_type="text/html"
        )
        res = client.post("/api/voice-design", json={"voice_description": "a" * 30})
        assert res.status_code == 503
        assert res.text == page
        assert res.headers["content-type"].startswith("text/html")

    def test_transport_failure_is_500(self, client, voice):
        voice.error = UpstreamError("elevenlabs request failed: ClientConnectorError")
        res = client.post("/api/voice-design", json={"voice_description": "a" * 30})
        assert res.status_code == 500
        assert res.json() == {"error": "Voice design request failed"}

    def test_missing_credential(self, make_client):
        res = make_client(NO_VOICE_KEY).post("/api/voice-design", json={"voice_description": "a" * 30})
        assert res.status_code == 500


class TestSpeechToText:
    AUDIO = {"audio": ("clip.webm", b"\x1aE\xdf\xa3webm", "audio/webm")}

    def test_no_file_rejected(self, client, voice):
        res = client.post("/api/stt", data={"model_id": "scribe_v1", "diarize": "true"})
        assert res.status_code == 400
        assert voice.stt_calls == []

    def test_no_body_rejected(self, client):
        res = client.post("/api/stt")
        assert res.status_code == 400

    def test_transcript_returned_verbatim(self, client, voice):
        res = client.post("/api/stt", files=self.AUDIO)
        assert res.status_code == 200
        assert res.json() == voice.transcript

    def test_upload_forwarded_with_metadata(self, client, voice):
        client.post("/api/stt", files=self.AUDIO)
        audio, fields = voice.stt_calls[0]
        assert audio.filename == "clip.webm"
        assert audio.content_type == "audio/webm"
        assert audio.content == b"\x1aE\xdf\xa3webm"
        assert fields == [("model_id", "scribe_v1")]

    def test_diarize_false_is_forwarded(self, client, voice):
        client.post("/api/stt", files=self.AUDIO, data={"diarize": "false"})
        _, fields = voice.stt_calls[0]
        assert ("diarize", "false") in fields

    def test_optional_fields_in_order(self, client, voice):
        client.post(
            "/api/stt",
            files=self.AUDIO,
            data={
                "tag_audio_events": "true",
                "num_speakers": "2",
                "language_code": "en",
                "model_id": "scribe_v1_experimental",
            },
        )
        _, fields = voice.stt_calls[0]
        assert [name for name, _ in fields] == ["model_id", "language_code", "num_speakers", "tag_audio_events"]
        assert fields[0] == ("model_id", "scribe_v1_experimental")

    def test_empty_optional_fields_skipped(self, client, voice):
        client.post("/api/stt", files=self.AUDIO, data={"language_code": "", "num_speakers": ""})
        _, fields = voice.stt_calls[0]
        assert fields == [("model_id", "scribe_v1")]

    def test_provider_failure_relays_status_and_details(self, client, voice, event_store):
        voice.error = UpstreamError(
            "elevenlabs returned 400", status_code=400, payload={"detail": "unsupported format"}
        )
        res = client.post("/api/stt", files=self.AUDIO)
        assert res.status_code == 400
        assert res.json() == {"error": "Transcription failed", "details": {"detail": "unsupported format"}}
        assert "stt.failed" in event_store.event_types()

    def test_transport_failure_defaults_to_500(self, client, voice):
        voice.error = UpstreamError("elevenlabs request failed: ServerDisconnectedError")
        res = client.post("/api/stt", files=self.AUDIO)
        assert res.status_code == 500
        assert res.json() == {"error": "Transcription failed"}

    def test_upload_ceiling(self, make_client, voice):
        cfg = RelayConfig(elevenlabs_api_key="xi-test", max_upload_bytes=4)
        res = make_client(cfg).post("/api/stt", files=self.AUDIO)
        assert res.status_code == 400
        assert voice.stt_calls == []

    def test_missing_credential(self, make_client):
        res = make_client(NO_VOICE_KEY).post("/api/stt", files=self.AUDIO)
        assert res.status_code == 500
