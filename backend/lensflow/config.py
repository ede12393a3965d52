"""Application configuration."""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings."""

    # App
    APP_NAME: str = "LensFlow_Orders"
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Database
    DATABASE_URL: str = "sqlite:///./lensflow.db"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # JWT
    JWT_SECRET_KEY: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    JWT_LEEWAY_SECONDS: int = 30  # clock skew tolerance for exp validation

    # Login throttling (Redis counters; fail-open when Redis is down)
    REDIS_URL: str = "redis://localhost:6379/0"
    TRUST_PROXY_HEADERS: bool = False
    AUTH_LOGIN_IP_LIMIT_PER_MINUTE: int = 5
    AUTH_LOGIN_USER_FAIL_THRESHOLD: int = 5
    AUTH_LOGIN_USER_LOCK_SECONDS: int = 15 * 60  # 15 minutes

    # External ordering system bridge (static shared secret)
    EXTERNAL_API_KEY: str | None = None

    # Order policy
    ORDER_EDIT_WINDOW_MINUTES: int = 120
    DEFAULT_DISCOUNT_PERCENT: float = 5.0
    URGENT_SURCHARGE_PERCENT: int = 25

    # Outbound ERP mirror (best-effort, disabled unless configured)
    ERP_MIRROR_ENABLED: bool = False
    ERP_API_URL: str = "https://api.moysklad.ru/api/remap/1.2"
    ERP_USERNAME: str = ""
    ERP_PASSWORD: str = ""
    ERP_TIMEOUT_SECONDS: int = 10

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
