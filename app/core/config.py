from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import PostgresDsn, RedisDsn, computed_field
from typing import Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True, extra="ignore")

    # Security: no default credentials - they must be set in .env
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str = "matchmaking"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432

    @computed_field
    def DATABASE_URL(self) -> PostgresDsn:
        return PostgresDsn.build(
            scheme="postgresql+asyncpg",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_HOST,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        )

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    SQL_ECHO: bool = False

    REDIS_URL: RedisDsn = "redis://localhost:6379/0"

    # Shared secret for /admin endpoints
    ADMIN_TOKEN: Optional[str] = None
    # Hides the interactive docs when set
    APP_DOMAIN: Optional[str] = None

    LOG_LEVEL: str = "INFO"

    # Real-time fan-out over Redis pub/sub
    REALTIME_ENABLED: bool = True

    # Reconciliation of matches missing for reciprocal likes
    RECONCILE_ON_READ: bool = True  # Sweep before listing a user's matches
    RECONCILIATION_INTERVAL_MINUTES: int = 30

settings = Settings()
