from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

__all__ = [
    "ClientSettings",
    "DEFAULT_GEMINI_MODEL",
    "DEFAULT_TRANSPORT_TIMEOUT_SEC",
    "NARRATOR_VOICES",
    "DEFAULT_VOICES",
]

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash-preview-tts"
# Long stories take tens of minutes; the ceiling sits far above normal API timeouts.
DEFAULT_TRANSPORT_TIMEOUT_SEC = 2 * 60 * 60

NARRATOR_VOICES = {
    "Charon": "Deep Narrator",
    "Fenrir": "Gravelly Storyteller",
    "Puck": "Authoritative Voice",
    "Zephyr": "Calm Chronicler",
    "Kore": "Eloquent Orator",
}

DEFAULT_VOICES = {
    "premium": "Charon",
    "fast": "en-US-Neural2-D",
    "mock": "mock",
}


@dataclass
class ClientSettings:
    """
    Credentials and transport settings shared by the engine clients.

    Built once at process start and handed to the client factories; nothing
    reads the environment after that.
    """

    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    google_credentials_path: Optional[str] = None
    transport_timeout_sec: float = DEFAULT_TRANSPORT_TIMEOUT_SEC

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "ClientSettings":
        env = os.environ if environ is None else environ
        timeout_raw = env.get("NARRATOR_TRANSPORT_TIMEOUT_SEC")
        try:
            timeout = float(timeout_raw) if timeout_raw else DEFAULT_TRANSPORT_TIMEOUT_SEC
        except ValueError as exc:
            raise ConfigurationError(
                f"NARRATOR_TRANSPORT_TIMEOUT_SEC must be a number, got {timeout_raw!r}."
            ) from exc

        settings = cls(
            gemini_api_key=env.get("GEMINI_API_KEY") or env.get("GOOGLE_GENAI_API_KEY"),
            gemini_model=env.get("NARRATOR_GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
            google_credentials_path=env.get("GOOGLE_APPLICATION_CREDENTIALS"),
            transport_timeout_sec=timeout,
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(settings, key, value)
        return settings

    def require_gemini_key(self) -> str:
        if not self.gemini_api_key:
            raise ConfigurationError(
                "Premium engine requires an API key (use --api-key or GEMINI_API_KEY env var)."
            )
        return self.gemini_api_key

    @property
    def transport_timeout_ms(self) -> int:
        return int(self.transport_timeout_sec * 1000)
