"""Configuration management for the invoice transform engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
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

    # Environment
    TRANSFORM_ENGINE_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Client suggestions
    CLIENT_SUGGESTION_LIMIT: int = Field(
        default=5, description="Default number of fuzzy client suggestions returned"
    )

    # Document search (merge / clone source selection)
    DOCUMENT_SEARCH_LIMIT: int = Field(
        default=10, description="Max candidate documents returned by a document search"
    )
    DOCUMENT_SEARCH_MIN_SIMILARITY: float = Field(
        default=0.5, description="Min client-name similarity for a document to be a search candidate"
    )

    # Source document locator
    RECENT_WINDOW_DAYS: int | None = Field(
        default=None,
        description="When set, the 'recent' selector only considers documents this many days old",
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
