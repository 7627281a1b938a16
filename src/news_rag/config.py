from typing import List, Literal, Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Capability backends
    embedding_backend: Literal["openai", "hashing"] = "hashing"
    generation_backend: Literal["openai", "echo"] = "echo"

    openai_api_key: Optional[SecretStr] = None
    openai_base_url: str = "https://api.openai.com/v1"
    embedding_model: str = "text-embedding-3-small"
    embedding_dim: int = 1024  # hashing backend only
    chat_model: str = "gpt-4o-mini"
    request_timeout: float = 60.0

    # Session log
    session_backend: Literal["redis", "memory"] = "redis"
    redis_url: str = "redis://localhost:6379/0"
    session_key_prefix: str = "session:"
    session_ttl_seconds: int = 3600
    session_shape_policy: Literal["reset", "fail"] = "reset"

    # Retrieval and prompting
    corpus_path: str = "data/news_articles.json"
    corpus_build_retry_initial: float = 1.0
    corpus_build_retry_max: float = 30.0
    retrieval_top_k: int = 3
    context_max_sentences: int = 3
    context_max_chars: int = 4000
    max_new_tokens: int = 256

    cors_origins: List[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

    @model_validator(mode="after")
    def _require_api_key(self) -> "Settings":
        uses_openai = "openai" in (self.embedding_backend, self.generation_backend)
        if uses_openai and self.openai_api_key is None:
            raise ValueError("openai_api_key is required for the openai backends")
        return self

settings = Settings()
