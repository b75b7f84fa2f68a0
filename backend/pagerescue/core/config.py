# pagerescue/core/config.py
import os
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).parent.parent.parent

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./pagerescue.db"

    # =========================
    # Vision fallback provider
    # =========================
    VISION_PROVIDER: str = "gemini"   # future: openai, anthropic, etc.
    GEMINI_API_KEY: str | None = None
    GEMINI_VISION_MODEL: str = "gemini-2.5-flash"

    VISION_PROMPT_NAME: str = "extract_page_text"
    VISION_PROMPT_VERSION: str = "v1"
    VISION_TEMPERATURE: float = 0.1
    VISION_MAX_OUTPUT_TOKENS: int = 8192

    # Per-call timeout (independent of any caller deadline)
    VISION_TIMEOUT_SECONDS: float = 30.0

    # Retry with backoff
    VISION_MAX_ATTEMPTS: int = 3
    VISION_RETRY_INITIAL_DELAY_MS: int = 1000
    VISION_RETRY_MULTIPLIER: float = 2.0
    VISION_RETRY_MAX_DELAY_MS: int = 10000
    VISION_RETRY_JITTER: float = 0.2

    # Provider throughput: minimum spacing between request starts
    VISION_MIN_REQUEST_INTERVAL_MS: int = 500

    # Circuit breaker
    BREAKER_FAILURE_THRESHOLD: int = 5
    BREAKER_COOLDOWN_SECONDS: float = 60.0
    BREAKER_SUCCESS_THRESHOLD: int = 2

    # Page rendering for the fallback tier
    PDF_RENDER_DPI: int = 150
    PDF_RENDER_MAX_WIDTH: int = 1024

    # Observability
    VISION_LOG_TEXT: bool = False  # keep False by default (avoid leaking document content)

    model_config = SettingsConfigDict(
        env_file=os.path.join(PROJECT_ROOT, ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

settings = Settings()
