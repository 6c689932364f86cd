"""
Application configuration using Pydantic Settings.

Environment-based infrastructure switching is controlled by the ENVIRONMENT variable.
"""

from functools import lru_cache
from typing import Dict, List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ===========================================
    # Environment
    # ===========================================
    ENVIRONMENT: Literal["local", "test"] = "local"
    DEBUG: bool = True

    # ===========================================
    # Database
    # ===========================================
    DATABASE_URL: str = "sqlite+aiosqlite:///./chatstream.db"

    # ===========================================
    # LLM Configuration
    # ===========================================
    LLM_PROVIDER: Literal["litellm"] = "litellm"

    # Public model identifier -> LiteLLM model string
    CHAT_MODELS: Dict[str, str] = Field(
        default={
            "chat-model-small": "gpt-4o-mini",
            "chat-model-large": "gpt-4o",
        }
    )
    DEFAULT_CHAT_MODEL: str = "chat-model-small"

    # Short generations (conversation titles)
    TITLE_MODEL: str = "gpt-4o-mini"

    # Artifact content generation (documents, code, sheets)
    ARTIFACT_MODEL: str = "gpt-4o-mini"

    # Image artifacts (LiteLLM aimage_generation)
    IMAGE_MODEL: str = "dall-e-3"

    # LiteLLM custom endpoint (optional, for proxy servers)
    LITELLM_API_BASE: str = ""

    # LiteLLM custom API key (optional, for custom endpoints)
    LITELLM_API_KEY: str = ""

    # Upper bound on model/tool round trips per turn
    MAX_TOOL_STEPS: int = 5

    MAX_TEXT_LENGTH: int = 32000

    # ===========================================
    # Rate Gate (upstream request budget)
    # ===========================================
    RATE_LIMIT_CAPACITY: int = 60
    RATE_LIMIT_INTERVAL_SECONDS: float = 60.0

    # ===========================================
    # Push Channels
    # ===========================================
    CHANNEL_HEARTBEAT_SECONDS: float = 15.0
    CHANNEL_RECONNECT_DELAY_SECONDS: float = 3.0
    CHANNEL_COMPLETION_TIMEOUT_SECONDS: float = 10.0
    CHANNEL_QUEUE_SIZE: int = 100

    # ===========================================
    # Auth
    # ===========================================
    AUTH_PROVIDER: Literal["mock", "local"] = "mock"
    LOCAL_JWT_SECRET: str = ""
    LOCAL_JWT_ISSUER: str = "chatstream-local"
    LOCAL_JWT_EXPIRE_MINUTES: int = 60 * 24 * 7

    # ===========================================
    # Server
    # ===========================================
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    ALLOWED_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"]
    )

    # ===========================================
    # Storage
    # ===========================================
    STORAGE_BASE_PATH: str = "./storage"

    @property
    def is_test(self) -> bool:
        """Check if running under the test environment."""
        return self.ENVIRONMENT == "test"

    def resolve_chat_model(self, model_id: str | None) -> str:
        """Map a public model identifier to the LiteLLM model string."""
        key = model_id or self.DEFAULT_CHAT_MODEL
        if key in self.CHAT_MODELS:
            return self.CHAT_MODELS[key]
        return self.CHAT_MODELS.get(self.DEFAULT_CHAT_MODEL, key)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures settings are loaded only once.
    """
    return Settings()
