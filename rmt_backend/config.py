from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_DOWNLOAD_BASE_URL = "https://firebasestorage.googleapis.com/v0/b"


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read from the environment (and .env via main.py)."""

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    narrative_max_tokens: int = 700
    narrative_temperature: float = 0.2
    narrative_timeout_seconds: float = 30.0
    firebase_credentials: str = ""     # service-account JSON path; ADC when empty
    storage_bucket: str = ""
    download_base_url: str = DEFAULT_DOWNLOAD_BASE_URL
    cors_allowed_origins: str = "*"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openai_api_key=_env("OPENAI_API_KEY"),
            openai_model=_env("OPENAI_MODEL", "gpt-4o-mini"),
            narrative_max_tokens=int(_env("NARRATIVE_MAX_TOKENS", "700")),
            narrative_temperature=float(_env("NARRATIVE_TEMPERATURE", "0.2")),
            narrative_timeout_seconds=float(_env("NARRATIVE_TIMEOUT_SECONDS", "30")),
            firebase_credentials=_env("FIREBASE_CREDENTIALS"),
            storage_bucket=_env("FIREBASE_STORAGE_BUCKET"),
            download_base_url=_env("STORAGE_DOWNLOAD_BASE_URL", DEFAULT_DOWNLOAD_BASE_URL).rstrip("/"),
            cors_allowed_origins=_env("CORS_ALLOWED_ORIGINS", "*"),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
        )

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]

    @property
    def llm_available(self) -> bool:
        return bool(self.openai_api_key) and self.openai_api_key != "your-openai-api-key"
