"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Scheme rewrites applied to DATABASE_URL_OVERRIDE for each driver flavour
_ASYNC_SCHEMES = {
    "postgresql://": "postgresql+asyncpg://",
    "postgres://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}
_SYNC_SCHEMES = {
    "postgres://": "postgresql://",
    "postgresql+asyncpg://": "postgresql://",
    "sqlite+aiosqlite://": "sqlite://",
}


def _rewrite_scheme(url: str, schemes: dict[str, str]) -> str:
    for prefix, replacement in schemes.items():
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


class Settings(BaseSettings):
    """EduBot settings, read from the environment (and ``.env``)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "EduBot"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Database: a full URL override (hosted Postgres, SQLite for tests) wins over the parts
    database_url_override: str | None = None
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "edubot"
    postgres_password: str = ""
    postgres_db: str = "edubot"

    def _postgres_url(self, scheme: str) -> str:
        return (
            f"{scheme}://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @computed_field
    @property
    def database_url(self) -> str:
        """Async driver URL used by the API."""
        if not self.database_url_override:
            return self._postgres_url("postgresql+asyncpg")
        url = _rewrite_scheme(self.database_url_override, _ASYNC_SCHEMES)
        # asyncpg rejects libpq query options; SSL goes through connect_args instead
        if url.startswith("postgresql+asyncpg://"):
            url = url.split("?", 1)[0]
        return url

    @computed_field
    @property
    def database_requires_ssl(self) -> bool:
        override = self.database_url_override or ""
        return any(flag in override for flag in ("sslmode=require", "ssl=require"))

    @computed_field
    @property
    def database_url_sync(self) -> str:
        """Sync driver URL used by Alembic."""
        if not self.database_url_override:
            return self._postgres_url("postgresql")
        return _rewrite_scheme(self.database_url_override, _SYNC_SCHEMES)

    # Auth / JWT (tokens are issued by the identity layer; only verified here)
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 7 days

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Anthropic API
    anthropic_api_key: str

    # LLM
    llm_model: str = "claude-sonnet-4-20250514"
    llm_max_tokens: int = 768
    llm_temperature: float = 0.35
    llm_title_max_tokens: int = 20
    llm_max_attempts: int = 3
    llm_retry_base_delay: float = 1.0  # seconds, doubled per attempt

    # Conversation replay window (messages, not turns)
    chat_history_max_messages: int = 20

    # Context list caps
    context_max_subjects: int = 24
    context_max_assessments: int = 32
    context_max_grades: int = 32
    context_max_students: int = 40
    context_max_recent_grades: int = 32

    # Notifications
    notification_queue_size: int = 100
    notification_ping_seconds: int = 15


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
