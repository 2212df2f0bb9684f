"""
Runtime configuration — read once from the environment (and a local .env file).
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


DEFAULT_REPORT_URL = "https://hackathon.guvi.in/api/updateHoneyPotFinalResult"


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.environ.get(name, "")
    try:
        value = int(raw) if raw.strip() else default
    except ValueError:
        value = default
    return max(minimum, value)


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, "")
    try:
        value = float(raw) if raw.strip() else default
    except ValueError:
        value = default
    return max(minimum, value)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """All tunables of the honeypot service."""
    port: int = 10000
    api_key: str = ""
    openai_api_key: str = ""
    openai_base_url: Optional[str] = None
    llm_model: str = "gpt-4o-mini"
    extraction_model: str = "gpt-4o-mini"
    llm_timeout_seconds: float = 25.0
    max_turns: int = 25
    history_window: int = 6
    report_url: str = DEFAULT_REPORT_URL
    report_timeout_seconds: float = 10.0
    report_empty_placeholder: bool = False
    rate_limit_max_requests: int = 120
    rate_limit_window_seconds: float = 60.0
    session_ttl_seconds: float = 3600.0
    sweep_interval_seconds: float = 1800.0
    debug: bool = False
    log_level: str = "INFO"

    @property
    def auth_enabled(self) -> bool:
        return bool(self.api_key)

    @property
    def llm_enabled(self) -> bool:
        return bool(self.openai_api_key)


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    return Settings(
        port=_env_int("PORT", 10000, minimum=1),
        api_key=os.environ.get("HONEYPOT_API_KEY", ""),
        openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
        openai_base_url=os.environ.get("OPENAI_BASE_URL") or None,
        llm_model=os.environ.get("LLM_MODEL", "gpt-4o-mini"),
        extraction_model=os.environ.get("EXTRACTION_MODEL", "gpt-4o-mini"),
        llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", 25.0, minimum=1.0),
        max_turns=_env_int("MAX_TURNS", 25, minimum=1),
        history_window=_env_int("HISTORY_WINDOW", 6),
        report_url=os.environ.get("REPORT_URL", DEFAULT_REPORT_URL),
        report_timeout_seconds=_env_float("REPORT_TIMEOUT_SECONDS", 10.0, minimum=1.0),
        report_empty_placeholder=_env_bool("REPORT_EMPTY_PLACEHOLDER"),
        rate_limit_max_requests=_env_int("RATE_LIMIT_MAX_REQUESTS", 120),
        rate_limit_window_seconds=_env_float("RATE_LIMIT_WINDOW_SECONDS", 60.0, minimum=1.0),
        session_ttl_seconds=_env_float("SESSION_TTL_SECONDS", 3600.0, minimum=1.0),
        sweep_interval_seconds=_env_float("SWEEP_INTERVAL_SECONDS", 1800.0, minimum=1.0),
        debug=_env_bool("HONEYPOT_DEBUG"),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
