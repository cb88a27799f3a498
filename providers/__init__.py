"""
Provider clients for the relay.

- openai_chat: LLM completions (buffered and streamed)
- elevenlabs: speech synthesis, voice design, transcription

Clients raise relay_server.errors.UpstreamError and never swallow failures;
route handlers decide how a failure reaches the caller.
"""
