"""Configuration management backed by pydantic-settings."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runner settings loaded from environment variables and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # OpenSearch
    opensearch_url: str = "http://localhost:9200"
    opensearch_username: Optional[str] = None
    opensearch_password: Optional[str] = None
    opensearch_verify_certs: bool = True
    opensearch_timeout: float = 30.0

    # Models - Ollama
    ollama_base: str = "http://localhost:11434"
    text_llm_model: str = "qwen2.5:7b-instruct-q4_K_M"
    llm_temperature: float = 0.2
    llm_max_tokens: int = 256
    llm_timeout: float = 120.0

    # Fixtures and results
    results_dir: Path = Field(default=Path("results"))
    indices_dir: Path = Field(default=Path("data/indices"))

    # Evaluation
    provisioning_concurrency: int = Field(default=10, ge=1)
    similarity_pass_threshold: float = Field(default=0.55, ge=0.0, le=1.0)

    # Application
    log_level: str = "INFO"

    @property
    def opensearch_auth(self) -> Optional[Tuple[str, str]]:
        """Basic-auth credentials for OpenSearch, when configured."""
        if not self.opensearch_username:
            return None
        return (self.opensearch_username, self.opensearch_password or "")


# Global settings instance
settings = Settings()
