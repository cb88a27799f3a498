"""
HTTP relay between character-chat clients and AI providers.

Routes:
- POST /api/chat          LLM reply in character (JSON or SSE)
- POST /api/tts           speech synthesis, audio/mpeg
- POST /api/voice-design  voice previews from a description
- POST /api/stt           transcription of an uploaded file
- GET  /api/health        liveness
"""
