"""Configuration management for the Infrastructure Topology Engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    INFRA_ENGINE_ENV: str = Field(default="dev", description="Environment: dev, staging, prod, test")

    # Anthropic configuration (optional: without a key every generative step falls back)
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")

    # Company profile generation
    PROFILE_MODEL: str = Field(
        default="claude-haiku-4-5-20251001", description="Model for company profile extraction"
    )
    PROFILE_MAX_TOKENS: int = Field(default=1024, description="Max tokens for profile extraction")
    PROFILE_TEMPERATURE: float = Field(default=0.1, description="Temperature for profile extraction")

    # Infrastructure topology generation (profile -> components)
    TOPOLOGY_MODEL: str = Field(
        default="claude-sonnet-4-5-20250929", description="Model for topology and OpenAPI generation"
    )
    TOPOLOGY_MAX_TOKENS: int = Field(default=4096, description="Max tokens for topology generation")

    # Retry policy for generative calls
    LLM_MAX_RETRIES: int = Field(default=2, description="Retries on transient Anthropic errors")
    LLM_RETRY_INITIAL_DELAY: float = Field(default=1.0, description="Initial backoff in seconds")

    # Topology service (entity expansion)
    TOPOLOGY_SERVICE_URL: str = Field(
        default="http://localhost:3000/api/vector-memory",
        description="Endpoint that parses infrastructure descriptions",
    )
    TOPOLOGY_TIMEOUT: float = Field(default=60.0, description="Topology request timeout in seconds")
    TOPOLOGY_MAX_RETRIES: int = Field(default=2, description="Retries on transport errors and 5xx")
    TOPOLOGY_RETRY_INITIAL_DELAY: float = Field(default=1.0, description="Initial backoff in seconds")

    # Synthetic addressing
    LOCAL_DOMAIN: str = Field(default="local", description="Domain suffix for synthetic hostnames")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If environment variables hold invalid values
    """
    return Settings()
