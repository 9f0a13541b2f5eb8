"""Application configuration."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Settings
    APP_NAME: str = "FinOps Workflow Engine"
    APP_VERSION: str = "1.0.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # Database Settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./workflows.db"
    SQLALCHEMY_ECHO: bool = False

    # Redis / event bus
    REDIS_URL: str = "redis://localhost:6379/0"
    EVENT_BUS_ENABLED: bool = False
    EVENT_BUS_CHANNEL: str = "workflow:events"

    # Workflow execution
    WORKFLOW_DEFAULT_RETRY_DELAY: float = 30.0  # seconds between attempts
    WORKFLOW_DEFAULT_STEP_TIMEOUT: float = 300.0  # seconds per attempt
    WORKFLOW_MAX_PARALLEL_STEPS: int = 5
    WORKFLOW_MAX_STEP_EXECUTIONS: int = 1000

    # Outbound webhooks
    WEBHOOK_TIMEOUT: float = 30.0
    WEBHOOK_ALLOW_PRIVATE_NETWORKS: bool = False

    # Email (Resend)
    RESEND_API_KEY: str = ""
    RESEND_API_BASE: str = "https://api.resend.com"
    EMAIL_FROM_ADDRESS: str = "workflows@example.com"

    # Claude AI Settings
    ANTHROPIC_API_KEY: str = ""
    CLAUDE_MODEL: str = "claude-sonnet-4-5-20250929"
    CLAUDE_MAX_TOKENS: int = 2048
    CLAUDE_TEMPERATURE: float = 0.2
    CLAUDE_TIMEOUT: int = 60
    CLAUDE_SYSTEM_PROMPT: str = (
        "You are a financial operations analyst embedded in a workflow engine. "
        "Answer the query and reply with a JSON object containing the keys "
        "\"response\" (plain-text answer), \"analysis\" (structured findings) "
        "and \"confidence\" (a number between 0 and 1)."
    )

    # CORS Settings
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:8080"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings.

    Uses caching to ensure settings are loaded only once.

    Returns:
        Settings object with all configuration values
    """
    return Settings()
