"""
Runtime configuration.

Values come from environment variables (a ``.env`` file at the project root is
loaded first when present). Every knob has a default so the service and the
test-suite start without any environment at all.

Environment configuration:
- AI_ENABLED: Master switch for the AI CS pipeline (default: true)
- LLM_API_BASE: Base URL for an OpenAI-compatible API
- LLM_API_KEY: API key / bearer token
- AI_MODEL: Default model name
- AI_MAX_TOKENS_PER_REQUEST: Default completion budget per call (default: 4096)
- AI_TEMPERATURE_DEFAULT: Default sampling temperature (default: 0.3)
- LLM_TIMEOUT_SECONDS: HTTP timeout for one gateway call (default: 30)
- AGENT_TIMEOUT_SECONDS: Upper bound for one agent run (default: 45)
- AI_DEFAULT_LANGUAGE: Locale assumed when translation is unavailable (default: ko)
- MAX_MESSAGE_LENGTH: Longest accepted customer message (default: 5000)
- HISTORY_LIMIT: Messages loaded as conversation history (default: 20)
- SUPABASE_URL / SUPABASE_SERVICE_KEY: Persistence backend
- LOG_LEVEL / LOG_JSON: Logging output
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off"}


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, "") or default)


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, "") or default)


class Settings(BaseModel):
    """Resolved service settings."""

    ai_enabled: bool = True
    llm_api_base: str = "https://api.openai.com/v1"
    llm_api_key: Optional[str] = None
    model: str = "gpt-4o-mini"
    max_tokens: int = Field(4096, gt=0)
    temperature: float = Field(0.3, ge=0.0, le=2.0)
    llm_timeout_seconds: float = Field(30.0, gt=0)
    agent_timeout_seconds: float = Field(45.0, gt=0)
    default_language: str = "ko"
    max_message_length: int = Field(5000, gt=0)
    history_limit: int = Field(20, gt=0)
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    log_level: str = "INFO"
    log_json: bool = True

    @property
    def llm_configured(self) -> bool:
        return self.ai_enabled and bool(self.llm_api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            ai_enabled=_env_bool("AI_ENABLED", True),
            llm_api_base=os.getenv("LLM_API_BASE", "https://api.openai.com/v1"),
            llm_api_key=os.getenv("LLM_API_KEY") or None,
            model=os.getenv("AI_MODEL", "gpt-4o-mini"),
            max_tokens=_env_int("AI_MAX_TOKENS_PER_REQUEST", 4096),
            temperature=_env_float("AI_TEMPERATURE_DEFAULT", 0.3),
            llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", 30.0),
            agent_timeout_seconds=_env_float("AGENT_TIMEOUT_SECONDS", 45.0),
            default_language=os.getenv("AI_DEFAULT_LANGUAGE", "ko"),
            max_message_length=_env_int("MAX_MESSAGE_LENGTH", 5000),
            history_limit=_env_int("HISTORY_LIMIT", 20),
            supabase_url=os.getenv("SUPABASE_URL") or None,
            supabase_key=os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_KEY") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_json=_env_bool("LOG_JSON", True),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Global settings accessor (read once per process)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next access re-reads the environment."""
    global _settings
    _settings = None
