from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from decimal import Decimal
from pydantic import field_validator


def _parse_bool(v):
    if isinstance(v, str):
        return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
    return bool(v)


class Settings(BaseSettings):
    # Database settings (Postgres del backend hospedado)
    POSTGRES_USER: str = 'mostrador_user'
    POSTGRES_PASSWORD: str = 'mostrador_pass'
    POSTGRES_DB: str = 'mostrador_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Override completo (tests usan SQLite)

    # Redis settings (broker de Celery)
    REDIS_HOST: str = 'redis'
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    # JWT emitido por el proveedor de identidad
    JWT_SECRET: str = 'your-super-secret-jwt-key-change-in-production'
    JWT_ALGORITHM: str = 'HS256'
    JWT_AUDIENCE: Optional[str] = None

    # Reglas de seña
    DEPOSIT_MIN_RATIO: Decimal = Decimal("0.10")
    DEPOSIT_MIN_AMOUNT: Decimal = Decimal("10")
    DEPOSIT_RECOMMENDED_MIN: Decimal = Decimal("30")
    DEPOSIT_RECOMMENDED_MAX: Decimal = Decimal("70")

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Background jobs
    PRINT_CLOSING_REPORTS: bool = True
    CELERY_TASK_ALWAYS_EAGER: bool = False

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        return _parse_bool(v)

    @field_validator("PRINT_CLOSING_REPORTS", mode="before")
    @classmethod
    def parse_print_reports(cls, v):
        return _parse_bool(v)

    @field_validator("CELERY_TASK_ALWAYS_EAGER", mode="before")
    @classmethod
    def parse_always_eager(cls, v):
        return _parse_bool(v)


settings = Settings()
