"""
Relay configuration.

Built once at startup from environment variables (and .env files) and passed
to handlers through app.state. Provider credentials are optional here; a
handler that needs a missing one raises ConfigurationError for that request.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

THREE_GIB = 3 * 1024 ** 3


def _strip_comment(value: Optional[str]) -> Optional[str]:
    """Drop a trailing "# comment" and surrounding whitespace."""
    if value is None:
        return None
    if "#" in value:
        value = value.split("#")[0]
    value = value.strip()
    return value or None


def _parse_int_env(key: str, default: int) -> int:
    """
    Parse integer environment variable.

    "300  # comment" -> 300, unset or garbage -> default
    """
    value = _strip_comment(os.environ.get(key))
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_float_env(key: str, default: float) -> float:
    value = _strip_comment(os.environ.get(key))
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _parse_bool_env(key: str, default: bool) -> bool:
    value = _strip_comment(os.environ.get(key))
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def load_env_files(root: Optional[Path] = None) -> None:
    """
    Load .env / .env.local from the project root.
    Existing environment variables win.
    """
    root = root or Path(__file__).parent.parent
    for name in (".env", ".env.local"):
        p = root / name
        if p.exists():
            load_dotenv(p, override=False)


@dataclass(frozen=True)
class RelayConfig:
    """Relay process configuration."""

    # Providers
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o"
    openai_base_url: str = "https://api.openai.com/v1"
    elevenlabs_api_key: Optional[str] = None
    elevenlabs_base_url: str = "https://api.elevenlabs.io"
    provider_timeout_seconds: float = 120.0

    # Chat completion parameters
    chat_temperature: float = 0.8
    chat_max_tokens: int = 150

    # Server
    host: str = "0.0.0.0"
    port: int = 3001
    cors_origins: Tuple[str, ...] = ("*",)

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Uploads
    max_upload_bytes: int = THREE_GIB

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Load configuration from environment variables."""
        origins = os.environ.get("CORS_ORIGINS", "*")
        return cls(
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            openai_model=os.environ.get("OPENAI_MODEL", "gpt-4o"),
            openai_base_url=os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/"),
            elevenlabs_api_key=os.environ.get("ELEVENLABS_API_KEY") or None,
            elevenlabs_base_url=os.environ.get("ELEVENLABS_BASE_URL", "https://api.elevenlabs.io").rstrip("/"),
            provider_timeout_seconds=_parse_float_env("PROVIDER_TIMEOUT_SECONDS", 120.0),
            host=os.environ.get("HOST", "0.0.0.0"),
            port=_parse_int_env("PORT", 3001),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()) or ("*",),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            log_json=_parse_bool_env("LOG_JSON", True),
            max_upload_bytes=_parse_int_env("MAX_UPLOAD_BYTES", THREE_GIB),
        )
