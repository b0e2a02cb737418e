import os
from dotenv import load_dotenv

from models import EngineConfig

load_dotenv()

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
MODEL = os.getenv("NEURO_MODEL", "claude-3-5-haiku-20241022")
MAX_TOKENS = int(os.getenv("NEURO_MAX_TOKENS", "500"))

# Per client IP, enforced by the /api/parse proxy
PROXY_DAILY_LIMIT = int(os.getenv("NEURO_PROXY_DAILY_LIMIT", "100"))

ALLOWED_ORIGINS = os.getenv("NEURO_ALLOWED_ORIGINS", "http://localhost:5173").split(",")


def api_key_configured() -> bool:
    return bool(ANTHROPIC_API_KEY) and ANTHROPIC_API_KEY != "your-api-key-here"


def load_engine_config() -> EngineConfig:
    """Build the engine configuration from environment variables, falling back to defaults."""
    defaults = EngineConfig()
    return EngineConfig(
        max_free_calls_per_day=int(os.getenv("NEURO_MAX_FREE_CALLS", defaults.max_free_calls_per_day)),
        max_paid_calls_per_day=int(os.getenv("NEURO_MAX_PAID_CALLS", defaults.max_paid_calls_per_day)),
        voice_length_threshold_seconds=float(
            os.getenv("NEURO_VOICE_THRESHOLD_SECONDS", defaults.voice_length_threshold_seconds)
        ),
        min_confidence_for_local=float(os.getenv("NEURO_MIN_LOCAL_CONFIDENCE", defaults.min_confidence_for_local)),
        is_paid_user=os.getenv("NEURO_PAID_USER", "false").lower() in ("1", "true", "yes"),
        remote_timeout_seconds=float(os.getenv("NEURO_REMOTE_TIMEOUT", defaults.remote_timeout_seconds)),
        pattern_capacity=int(os.getenv("NEURO_PATTERN_CAPACITY", defaults.pattern_capacity)),
    )
