"""Configuration management for the Expertise Engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # Sandboxed environments may not expose .env; rely on the real environment
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # Anthropic configuration
    ANTHROPIC_API_KEY: str = Field(default="", description="Anthropic API key")

    # Environment
    ENGINE_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # HTTP AI client (used by interview sessions and synthesis jobs)
    AI_SERVICE_URL: str = Field(
        default="http://localhost:8000/v1", description="Base URL of the AI completion service"
    )
    AI_REQUEST_TIMEOUT_SECONDS: float = Field(
        default=300.0, description="Timeout for streaming AI requests"
    )

    # Models per operation
    CHAT_MODEL: str = Field(default="claude-sonnet-4-20250514", description="Interviewer model")
    DOCUMENT_MODEL: str = Field(
        default="claude-sonnet-4-20250514", description="Model for interview document generation"
    )
    SYNTHESIS_MODEL: str = Field(
        default="claude-sonnet-4-20250514", description="Model for playbook synthesis"
    )
    EDIT_MODEL: str = Field(default="claude-sonnet-4-20250514", description="Model for selection edits")
    SUMMARY_MODEL: str = Field(
        default="claude-3-5-haiku-20241022", description="Model for document AI summaries"
    )

    # Output caps
    CHAT_MAX_TOKENS: int = Field(default=2000, description="Max tokens per interviewer turn")
    DOCUMENT_MAX_TOKENS: int = Field(default=4000, description="Max tokens for interview documents")
    SYNTHESIS_MAX_TOKENS: int = Field(default=6000, description="Max tokens for new playbooks")
    UPDATE_MAX_TOKENS: int = Field(default=16000, description="Max tokens for playbook updates")
    EDIT_MAX_TOKENS: int = Field(default=2000, description="Max tokens for selection edits")
    SUMMARY_MAX_TOKENS: int = Field(default=3000, description="Max tokens for AI summaries")

    # Guards
    MIN_DESCRIPTION_CHARS: int = Field(
        default=50, description="Minimum interview description length before starting"
    )
    MIN_FINALIZE_TURNS: int = Field(
        default=2, description="Minimum persisted turns before an interview can be finalized"
    )
    MIN_SYNTHESIS_SOURCES: int = Field(
        default=2, description="Minimum source documents for a new playbook"
    )
    SYNTHESIS_STATUS_EVERY: int = Field(
        default=50, description="Emit a progress status every N streamed chunks"
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
