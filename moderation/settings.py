import math

from pydantic import AnyUrl, field_validator, ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    BACKEND_CORS_ORIGINS: list[str] | str = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(
        cls, v: str | list[str], info: ValidationInfo
    ) -> list[str] | str:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # sqlite URLs (tests) are not valid AnyUrl values, keep this a plain string
    DATABASE_URL: str
    DATABASE_WORKER_URL: str | None = None  # Separate URL for Celery workers
    ALEMBIC_DATABASE_URL: str | None = None
    REDIS_URL: AnyUrl | None = None
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # Escalation deadlines (defaults; admins may override at runtime)
    AUTO_ESCALATION_HOURS: float = 72
    ADMIN_REPORT_ESCALATION_HOURS: float = 24
    REMINDER_BEFORE_ESCALATION_HOURS: float = 12
    ESCALATION_CHECK_INTERVAL_SECONDS: int = 900
    ESCALATION_SCHEDULER_IN_PROCESS: bool = False

    @field_validator(
        "AUTO_ESCALATION_HOURS",
        "ADMIN_REPORT_ESCALATION_HOURS",
        "REMINDER_BEFORE_ESCALATION_HOURS",
    )
    @classmethod
    def positive_finite_hours(cls, v: float, info: ValidationInfo) -> float:
        if not math.isfinite(v) or v <= 0:
            raise ValueError(f"{info.field_name} must be a positive number")
        return v

    # Anonymous reporter verification
    EMAIL_HASH_SECRET: str = "change-me"
    VERIFICATION_TOKEN_TTL_HOURS: int = 24
    REPORT_VERIFY_BASE_URL: str = "https://localhost:8000/reports/verify?token="
    RATE_LIMIT_REPORT_EMAIL_LIMIT: int = 5
    RATE_LIMIT_REPORT_EMAIL_WINDOW_SECONDS: int = 3600

    # Pattern detection
    PATTERN_WINDOW_DAYS: int = 7
    PATTERN_SOURCE_FLOODING_THRESHOLD: int = 3
    PATTERN_EVENT_TARGETING_THRESHOLD: int = 3
    PATTERN_INSTANCE_THRESHOLD: int = 5

    # Collaborating services
    CALENDAR_SERVICE_URL: str = "http://localhost:8001"
    FEDERATION_OUTBOX_URL: str = "http://localhost:8002"
    SERVICE_API_KEY: str | None = None  # Shared secret for service-to-service auth
    HTTP_CLIENT_TIMEOUT_SECONDS: float = 10.0
    ADMIN_NOTIFICATION_RECIPIENT: str = "admins"

    # Access tokens are issued by the platform auth service
    JWT_PUBLIC_KEY_PATH: str = "keys/public_key.pem"
    JWT_ALGORITHM: str = "RS256"
    JWT_ISSUER: str = "auth-service"
    JWT_AUDIENCE: str = "backend-services"

    MAIL_FROM: str = "no-reply@example.com"
    AWS_REGION: str | None = "ap-southeast-2"
    CELERY_BROKER_URL: str | None = None
    CELERY_RESULT_BACKEND: str | None = None
    CELERY_TASK_DEFAULT_QUEUE: str = "default"
    CELERY_TIMEZONE: str = "UTC"


settings = Settings()
