"""Library configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Connection settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DBWRAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: str = "INFO"

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 20
    redis_socket_timeout: float = 5.0
    redis_scan_count: int = 1000  # SCAN COUNT hint per cursor page

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "postgres"
    postgres_password: str = ""
    postgres_database: str = "postgres"
    postgres_pool_min: int = 1
    postgres_pool_max: int = 10
    postgres_command_timeout: float = 60.0

    @property
    def postgres_dsn(self) -> str:
        """Assemble a postgresql:// DSN from the individual fields."""
        auth = self.postgres_user
        if self.postgres_password:
            auth = f"{auth}:{self.postgres_password}"
        return (
            f"postgresql://{auth}@{self.postgres_host}:{self.postgres_port}"
            f"/{self.postgres_database}"
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
