"""
Centralized configuration using pydantic-settings.

How it works:
- Reads environment variables automatically (e.g., REDIS_HOST env var → Settings.REDIS_HOST)
- Falls back to defaults defined here if env vars are not set
- Can also read from a .env file in the project root

Every module imports `settings` from here instead of hardcoding values.
The API factory reads it once at startup and passes the values down to the
store, clients and orchestrator it builds.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── Redis ───────────────────────────────────────────────────
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None
    REDIS_SOCKET_TIMEOUT: float = 5.0  # seconds, per command

    # ── Analysis state ──────────────────────────────────────────
    ANALYSIS_STATE_TTL: int = 3600     # job record lifetime (1 hour)
    ANALYSIS_LOCK_TTL: int = 120       # processing lock lifetime (2 minutes)

    # ── Delayed dispatch (QStash) ───────────────────────────────
    QSTASH_URL: str = "https://qstash.upstash.io"
    QSTASH_TOKEN: str = ""
    QSTASH_CURRENT_SIGNING_KEY: str = ""
    QSTASH_NEXT_SIGNING_KEY: str = ""
    QSTASH_TIMEOUT: float = 10.0
    DISPATCH_DELAY_SECONDS: int = 60   # delay before the webhook fires
    BASE_URL: str = "http://localhost:8000"  # public URL QStash calls back

    # ── Text generation (OpenAI) ────────────────────────────────
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-5-mini"
    OPENAI_MAX_OUTPUT_TOKENS: int = 1000
    OPENAI_TIMEOUT: float = 30.0

    # ── Retry ───────────────────────────────────────────────────
    MAX_RETRIES: int = 3               # total attempts per generation call
    RETRY_BACKOFF_BASE: float = 1.0    # first backoff delay, doubles each attempt (seconds)

    # ── Auth (tokens are issued by the user service) ────────────
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"

    # ── App ─────────────────────────────────────────────────────
    ENVIRONMENT: str = "development"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    @property
    def redis_url(self) -> str:
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @property
    def webhook_url(self) -> str:
        """Where QStash delivers the delayed processing callback."""
        return f"{self.BASE_URL.rstrip('/')}/webhooks/qstash/analyze"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton — import this everywhere
settings = Settings()
