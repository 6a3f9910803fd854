from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql+asyncpg://escrowline:escrowline_dev@db:5432/escrowline"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 5

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # Shared secrets for the scheduler and the marketplace backend
    CRON_SECRET: str = ""
    INTERNAL_API_SECRET: str = ""

    # Escrow policy
    ESCROW_HOLD_DURATION_DAYS: int = 30
    ESCROW_REMINDER_WINDOW_DAYS: int = 5
    ESCROW_UPCOMING_RELEASE_DAYS: int = 7
    DEFAULT_CURRENCY: str = "NGN"

    # Dispute policy
    DISPUTE_ESCALATION_DAYS: int = 7

    # SendGrid
    SENDGRID_API_KEY: str = "mock_sendgrid_key"
    FROM_EMAIL: str = "no-reply@escrowline.app"
    ADMIN_ALERT_EMAIL: str = "disputes@escrowline.app"

    # App
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
