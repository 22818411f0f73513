"""
Runtime configuration for the resume editor backend.

Values come from environment variables; a local `.env` file is loaded first
so development setups do not need to export anything.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_MODEL = {
    "openai": "gpt-4o-mini",
    "huggingface": "HuggingFaceH4/zephyr-7b-beta",
}


@dataclass(frozen=True)
class Settings:
    app_env: str = "production"
    database_url: str = "sqlite:///resumes.db"
    llm_provider: str = "openai"
    llm_model: str = DEFAULT_MODEL["openai"]
    llm_api_key: Optional[str] = None
    autosave_debounce_seconds: float = 5.0
    tracker_capacity: int = 1024
    tracker_idle_seconds: float = 1800.0
    chrome_binary: Optional[str] = None
    pdf_timeout_seconds: float = 60.0
    cors_origins: str = "http://localhost:5173"
    port: int = 5000

    @property
    def is_development(self) -> bool:
        return self.app_env.strip().lower() == "development"

    @property
    def cors_origin_list(self) -> List[str]:
        if self.cors_origins.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


def _api_key_for(provider: str) -> Optional[str]:
    if provider.startswith("hugging"):
        return os.getenv("HF_TOKEN")
    return os.getenv("OPENAI_API_KEY")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    provider = os.getenv("LLM_PROVIDER", "openai").strip().lower()
    return Settings(
        app_env=os.getenv("APP_ENV", "production"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///resumes.db"),
        llm_provider=provider,
        llm_model=os.getenv("LLM_MODEL") or DEFAULT_MODEL.get(provider, "gpt-4o-mini"),
        llm_api_key=_api_key_for(provider),
        autosave_debounce_seconds=float(os.getenv("AUTOSAVE_DEBOUNCE_SECONDS", "5")),
        tracker_capacity=int(os.getenv("TRACKER_CAPACITY", "1024")),
        tracker_idle_seconds=float(os.getenv("TRACKER_IDLE_SECONDS", "1800")),
        chrome_binary=os.getenv("CHROME_BINARY") or None,
        pdf_timeout_seconds=float(os.getenv("PDF_TIMEOUT_SECONDS", "60")),
        cors_origins=os.getenv("CORS_ORIGINS", "http://localhost:5173"),
        port=int(os.getenv("PORT", "5000")),
    )
