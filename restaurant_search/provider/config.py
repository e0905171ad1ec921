from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class ProviderConfig:
    api_key: str = os.getenv("GROQ_API_KEY", "")
    model: str = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
    max_tokens: int = int(os.getenv("GROQ_MAX_TOKENS", "4096"))
    temperature: float = 0.2
    enabled: bool = os.getenv("GROQ_ENABLED", "true").strip().lower() not in ("0", "false", "no", "off")


DEFAULT_PROVIDER_CONFIG = ProviderConfig()
