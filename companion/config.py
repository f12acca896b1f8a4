"""Configuration loading and environment setup."""
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .utils.logging import get_logger

logger = get_logger(__name__)

# Load environment variables from .env file with explicit path
load_dotenv(dotenv_path=Path.cwd() / ".env", verbose=False)

# Also try loading from the project root in case we're running from a subdirectory
load_dotenv(dotenv_path=Path(__file__).parent.parent / ".env", verbose=False)


def _clean_env_value(value: Optional[str]) -> Optional[str]:
    """Strip inline comments and whitespace from an environment value."""
    if not value:
        return value
    return value.split("#")[0].strip()


def _safe_int(value: Optional[str], default: str, var_name: str) -> int:
    """Safely convert environment variable to int, handling malformed values."""
    try:
        clean_value = _clean_env_value(value) or default
        return int(clean_value)
    except (ValueError, AttributeError):
        logger.warning(f"Invalid {var_name} value '{value}', using default {default}")
        return int(default)


def _safe_float(value: Optional[str], default: str, var_name: str) -> float:
    """Safely convert environment variable to float, handling malformed values."""
    try:
        clean_value = _clean_env_value(value) or default
        return float(clean_value)
    except (ValueError, AttributeError):
        logger.warning(f"Invalid {var_name} value '{value}', using default {default}")
        return float(default)


def _flag(name: str, default: str) -> bool:
    return (_clean_env_value(os.getenv(name, default)) or default).lower() == "true"


# Global config cache
_config_cache: Optional[Dict[str, Any]] = None
_cache_timestamp: float = 0
CACHE_TTL = 300  # 5 minute cache TTL


def load_config() -> Dict[str, Any]:
    """
    Load configuration from environment variables with caching.
    """
    global _config_cache, _cache_timestamp

    current_time = time.time()
    if _config_cache and (current_time - _cache_timestamp) < CACHE_TTL:
        return _config_cache

    data_dir = Path(os.getenv("DATA_DIR", "companion_data"))

    config = {
        # PROVIDER CREDENTIALS (absence means the provider is unavailable)
        "OPENAI_API_KEY": _clean_env_value(os.getenv("OPENAI_API_KEY")),
        "OPENAI_API_BASE": os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1"),
        "FLUX_API_KEY": _clean_env_value(os.getenv("FLUX_API_KEY")),
        "STABILITY_API_KEY": _clean_env_value(os.getenv("STABILITY_API_KEY")),
        "GEMINI_API_KEY": _clean_env_value(os.getenv("GEMINI_API_KEY")),

        # CHAT / STREAMING
        "AI_MODEL": os.getenv("AI_MODEL", "gpt-3.5-turbo"),
        "AI_MAX_TOKENS": _safe_int(os.getenv("AI_MAX_TOKENS"), "500", "AI_MAX_TOKENS"),
        "AI_TEMPERATURE": _safe_float(os.getenv("AI_TEMPERATURE"), "0.7", "AI_TEMPERATURE"),
        "AI_STREAMING_ENABLED": _flag("AI_STREAMING_ENABLED", "true"),
        "AI_SYSTEM_PROMPT": os.getenv("AI_SYSTEM_PROMPT", "You are a helpful AI companion."),
        "STREAM_TOKEN_DELAY_MS": _safe_int(os.getenv("STREAM_TOKEN_DELAY_MS"), "100", "STREAM_TOKEN_DELAY_MS"),
        "STREAM_FALLBACK_DELAY_MS": _safe_int(os.getenv("STREAM_FALLBACK_DELAY_MS"), "50", "STREAM_FALLBACK_DELAY_MS"),
        "STREAM_KEEPALIVE_EVERY": _safe_int(os.getenv("STREAM_KEEPALIVE_EVERY"), "10", "STREAM_KEEPALIVE_EVERY"),

        # PROVIDER TIMEOUTS AND POLLING
        "PROVIDER_TIMEOUT_SECONDS": _safe_float(os.getenv("PROVIDER_TIMEOUT_SECONDS"), "60", "PROVIDER_TIMEOUT_SECONDS"),
        "VISION_TIMEOUT_SECONDS": _safe_float(os.getenv("VISION_TIMEOUT_SECONDS"), "30", "VISION_TIMEOUT_SECONDS"),
        "POLL_MAX_ATTEMPTS": _safe_int(os.getenv("POLL_MAX_ATTEMPTS"), "30", "POLL_MAX_ATTEMPTS"),
        "POLL_INTERVAL_MS": _safe_int(os.getenv("POLL_INTERVAL_MS"), "2000", "POLL_INTERVAL_MS"),

        # PROVIDER PREFERENCES
        "DEFAULT_IMAGE_PROVIDER": os.getenv("DEFAULT_IMAGE_PROVIDER", "dalle3"),
        "DEFAULT_VISION_PROVIDER": os.getenv("DEFAULT_VISION_PROVIDER", "gpt4vision"),
        "DEFAULT_TEXT_PROVIDER": os.getenv("DEFAULT_TEXT_PROVIDER", "openai"),

        # COLLABORATOR STORAGE
        "DATA_DIR": data_dir,
        "LEDGER_DIR": Path(os.getenv("LEDGER_DIR", str(data_dir / "ledger"))),
        "RECORDS_PATH": Path(os.getenv("RECORDS_PATH", str(data_dir / "generations.jsonl"))),

        # LOGGING
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO"),
        "LOG_JSONL_PATH": os.getenv("LOG_JSONL_PATH", "logs/companion.jsonl"),

        # HTTP
        "HOST": os.getenv("HOST", "0.0.0.0"),
        "PORT": _safe_int(os.getenv("PORT"), "8080", "PORT"),
    }

    _config_cache = config
    _cache_timestamp = current_time
    logger.debug(f"✅ Configuration cached for {CACHE_TTL}s")

    return config


def reset_config_cache() -> None:
    """Drop the cached configuration so the next load re-reads the environment."""
    global _config_cache, _cache_timestamp
    _config_cache = None
    _cache_timestamp = 0
