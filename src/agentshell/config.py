"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Pydantic settings class for the application.

    An instance is created once by the entry point (or the API factory) and handed to every
    component that needs it.  Core modules never instantiate it themselves.
    """

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # LLM Configuration
    LLM_PROVIDER: str = "mock"  # Options: mock, openai, ollama, anthropic
    LLM_MODEL: str = "gpt-4"
    LLM_BASE_URL: str | None = None
    LLM_API_KEY: str | None = None
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 4000
    LLM_TIMEOUT: float = 30.0  # seconds, the only bounded wait on the transport

    # Agent behaviour
    WORKING_DIR: str = "."
    INTELLIGENT_MODE: bool = False
    OUTPUT_DIR: str = "./generated"
    USER_NAME: str = "unknown"

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"
