"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = None
    postgres_user: str = "ledgerline"
    postgres_password: str = "ledgerline_dev_password"
    postgres_db: str = "ledgerline"
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    db_pool_size: int = 10
    db_max_overflow: int = 20

    # API server (`ledgerline serve`)
    api_port: int = 3000
    api_host: str = "0.0.0.0"
    environment: str = "development"

    # Logging
    log_level: str = "INFO"

    # LLM
    openai_api_key: Optional[str] = None
    llm_model: str = "gpt-4o-mini"
    llm_timeout_seconds: float = 30.0

    # Assistant
    assistant_context_limit: int = 100  # Transactions handed to the LLM per question

    # Audit
    audit_append_retries: int = 5

    # CORS
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    def validate_production_settings(self):
        """Validate settings for production environment."""
        env = self.environment.lower()
        if env not in ("development", "test", "dev"):
            if self.database_url_computed.startswith("sqlite"):
                raise ValueError(
                    "SQLite is not supported outside development. "
                    "Set DATABASE_URL to a PostgreSQL instance with row-level security enabled."
                )
            if not self.openai_api_key:
                raise ValueError(
                    "OPENAI_API_KEY is required in production. "
                    "The assistant would otherwise answer every question with the fallback."
                )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
