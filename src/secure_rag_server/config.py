from typing import Literal, Optional

from pydantic import AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Embedding provider (selected once at startup)
    embedding_provider: Literal["hosted", "local"] = "hosted"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = Field(default=1536, gt=0)
    embedding_timeout_seconds: float = Field(default=30.0, gt=0)
    max_concurrent_embeddings: int = Field(default=10, gt=0)

    openai_api_key: Optional[SecretStr] = None
    openai_base_url: AnyHttpUrl = "https://api.openai.com/v1"
    ollama_base_url: AnyHttpUrl = "http://localhost:11434"

    # Segmentation / retrieval
    chunk_size: int = Field(default=500, gt=0)
    chunk_overlap: int = Field(default=50, ge=0)
    max_context_chunks: int = Field(default=5, gt=0)
    similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)

    # Encryption (key is validated by the cipher at startup)
    encryption_key_hex: Optional[SecretStr] = None
    encryption_algorithm: str = "aes-256-gcm"
    encrypt_chunk_text: bool = False
    verify_payload_integrity: bool = True

    # Vector store
    vector_store_backend: Literal["http", "memory"] = "http"
    vector_store_url: Optional[AnyHttpUrl] = None
    vector_store_api_key: Optional[SecretStr] = None
    vector_store_index_name: str = "medical-embeddings"
    vector_store_timeout_seconds: float = Field(default=30.0, gt=0)
    similarity_metric: Literal["cosine", "dotproduct", "euclidean"] = "cosine"

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
