"""
Pizzeria — Configuration
All settings are read from environment variables (or .env file).
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    SERVICE_NAME: str = "pizzeria-orders"
    SERVICE_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    PUBLIC_BASE_URL: str = "http://localhost:5173"

    # ── PostgreSQL ────────────────────────────────────────────
    POSTGRES_HOST: str = "pizzeria-db"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "pizzeria_db"
    POSTGRES_USER: str = "pizzeria_user"
    POSTGRES_PASSWORD: str = "pizzeria_pass"
    DATABASE_URL_OVERRIDE: str = ""

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    # ── Redis (change feed, alerts, carts, Celery broker) ─────
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    # idle connections are pinged so a dead change-feed subscription errors out
    REDIS_HEALTH_CHECK_INTERVAL_SECONDS: int = 15

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @property
    def celery_broker_url(self) -> str:
        return self.redis_url

    CELERY_NOTIFICATIONS_QUEUE: str = "notifications"

    # ── JWT ──────────────────────────────────────────────────
    JWT_SECRET_KEY: str = "CHANGE_ME_IN_PRODUCTION"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    SUPER_ADMIN_EMAIL: str = "admin@pizzeria.local"

    # ── Change feed / order board ─────────────────────────────
    CHANGE_FEED_PREFIX: str = "changes"
    ALERTS_CHANNEL: str = "alerts"
    ORDER_IN_FLIGHT_COOLDOWN_SECONDS: float = 0.8
    REALTIME_RETRY_DELAY_SECONDS: float = 1.2
    REALTIME_BACKOFF_FACTOR: float = 2.0
    REALTIME_MAX_RETRY_DELAY_SECONDS: float = 30.0
    BOARD_REFRESH_INTERVAL_SECONDS: float = 30.0
    BOARD_ENABLED: bool = True

    # ── SSE ───────────────────────────────────────────────────
    SSE_KEEPALIVE_INTERVAL_SECONDS: int = 15
    SSE_RETRY_MILLISECONDS: int = 3000

    # ── Email (Brevo) ─────────────────────────────────────────
    BREVO_API_URL: str = "https://api.brevo.com/v3/smtp/email"
    BREVO_API_KEY: str = ""
    EMAIL_SENDER_NAME: str = "PIZZAMar"
    EMAIL_SENDER_ADDRESS: str = "orders@pizzamar.example"
    ADMIN_NOTIFICATION_EMAIL: str = "orders@pizzamar.example"
    PENDING_CONFIRMATION_LOCK_SECONDS: int = 120

    # ── Payments ──────────────────────────────────────────────
    PAYMENT_FUNCTION_URL: str = "http://payments:8080/create-checkout-session"
    PAYMENT_WEBHOOK_SECRET: str = "CHANGE_ME_IN_PRODUCTION"

    # ── Carts / idempotency ──────────────────────────────────
    CART_TTL_SECONDS: int = 7 * 86400
    IDEMPOTENCY_KEY_TTL_SECONDS: int = 86400

    # ── Observability ─────────────────────────────────────────
    HTTP_TIMEOUT_SECONDS: float = 5.0
    METRICS_ENABLED: bool = True
    HEALTH_CHECK_TIMEOUT: float = 5.0


@lru_cache()
def get_settings() -> Settings:
    return Settings()
