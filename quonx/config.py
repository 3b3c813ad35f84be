from functools import lru_cache
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration settings."""

    # Environment
    environment: Literal["development", "production"] = Field(
        default="development",
        description="Application environment"
    )
    log_level: str = Field(default="INFO", description="Root log level")

    # Server Configuration
    server_host: str = Field(default="127.0.0.1", description="HTTP/WebSocket host")
    server_port: int = Field(default=8001, description="HTTP/WebSocket port")
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "file://"],
        description="Allowed CORS origins"
    )

    # Hosted providers
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_models: List[str] = Field(default=["gpt-4o", "gpt-4o-mini"], description="OpenAI models to register")
    azure_openai_api_key: str = Field(default="", description="Azure OpenAI API key")
    azure_openai_endpoint: str = Field(default="", description="Azure OpenAI endpoint")
    azure_openai_deployment_name: str = Field(default="gpt-4", description="Azure deployment name")
    azure_api_version: str = Field(default="2024-02-15-preview", description="Azure API version")
    gemini_api_key: str = Field(default="", description="Google Gemini API key")
    gemini_models: List[str] = Field(default=["gemini-1.5-pro"], description="Gemini models to register")
    anthropic_api_key: str = Field(default="", description="Anthropic API key")
    anthropic_models: List[str] = Field(
        default=["claude-3-5-sonnet-latest"],
        description="Anthropic models to register"
    )

    # Local inference
    llamacpp_base_url: str = Field(default="", description="llama.cpp server URL (OpenAI-compatible), empty to disable")
    llamacpp_model: str = Field(default="local", description="Model name served by llama.cpp")
    ollama_base_url: str = Field(default="http://localhost:11434", description="Ollama server URL")
    ollama_discovery: bool = Field(default=True, description="Discover Ollama models on startup")
    max_local_models: int = Field(default=3, description="Maximum concurrently registered local models")

    # Generation defaults
    model_temperature: float = Field(default=0.7, description="Model temperature")
    max_tokens: int = Field(default=2000, description="Maximum tokens for response")
    provider_timeout_seconds: float = Field(default=30.0, description="HTTP timeout for provider calls")

    # Role defaults, in preference order
    chat_model_preference: List[str] = Field(
        default=["openai-gpt-4o", "gemini-1.5-pro", "azure-gpt-4"],
        description="Preferred model ids for the chat role"
    )
    code_model_preference: List[str] = Field(
        default=["openai-gpt-4o", "azure-gpt-4"],
        description="Preferred model ids for the code role"
    )
    reasoning_model_preference: List[str] = Field(
        default=["openai-gpt-4o", "azure-gpt-4", "gemini-1.5-pro"],
        description="Preferred model ids for the reasoning role"
    )

    # Agent Configuration
    agent_timeout_seconds: float = Field(default=30.0, description="Bound on a single agent call")
    history_window: int = Field(default=10, description="Conversation turns passed to agents")
    classification_threshold: float = Field(default=0.3, description="Keyword score above which a category is needed")
    auto_retry_generation: bool = Field(default=False, description="Retry model calls inside agents")
    retry_attempts: int = Field(default=3, description="Attempts for the retry helper")
    retry_base_delay_seconds: float = Field(default=1.0, description="First backoff delay for the retry helper")

    # Workflow classification
    code_workflow_keywords: List[str] = Field(
        default=["code", "function", "class", "bug", "debug", "implement"],
        description="Inputs containing any of these run code-first"
    )
    reasoning_workflow_keywords: List[str] = Field(
        default=["analyze", "explain", "why", "how", "compare", "evaluate"],
        description="Inputs containing any of these run reasoning-first"
    )

    # Memory Configuration
    conversation_backend: Literal["memory", "json", "redis"] = Field(
        default="memory",
        description="Conversation store backend"
    )
    local_memory_path: str = Field(default="data/conversations", description="JSON conversation storage path")
    redis_host: str = Field(default="localhost", description="Redis host")
    redis_port: int = Field(default=6379, description="Redis port")
    redis_db: int = Field(default=0, description="Redis database number")
    redis_password: str = Field(default="", description="Redis password")
    conversation_ttl_seconds: int = Field(default=86400, description="Redis conversation expiry")

    # File store
    project_root: str = Field(default=".", description="Directory the file store is confined to")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "QUONX_"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields in .env file


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
