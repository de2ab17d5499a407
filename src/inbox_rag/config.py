"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Embedding / LLM
    openai_api_key: str = Field(default="", description="OpenAI API key (or dummy value for local vLLM)")
    embedding_model: str = "text-embedding-3-small"
    embedding_dim: int = 1536
    llm_model_name: str = Field(default="gpt-4o-mini", description="Chat model used for answers")
    llm_base_url: str = Field(
        default="",
        description=(
            "Base URL for an OpenAI-compatible chat API. Leave empty to use "
            "OpenAI cloud."
        ),
    )
    llm_temperature: float = 0.7
    llm_max_tokens: int = 300

    # Source provider (Nylas v3)
    nylas_api_key: str = ""
    nylas_api_base: str = "https://api.us.nylas.com/v3"
    source_timeout: float = 60.0

    # Blob store
    storage_url: str = Field(default="", description="Storage REST root, e.g. 'https://<project>.supabase.co'")
    storage_key: str = ""
    storage_bucket: str = "email-attachments"
    upload_attempts: int = 3
    upload_base_delay: float = 1.0

    # Relational store
    database_url: str = "sqlite+aiosqlite:///./inbox_rag.db"
    database_echo: bool = False

    # Vector store
    vector_backend: Literal["chroma", "memory"] = "chroma"
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection_prefix: str = "inbox_rag"

    # Chunking (sizes in tokens, 1 token ≈ 4 chars)
    chunk_max_tokens: int = 5000
    chunk_overlap: int = 200
    chunk_hard_cap_chars: int = 16000
    rechunk_max_tokens: int = 4000
    rechunk_overlap: int = 100
    rechunk_attempts: int = 2

    # Embedding client
    embed_concurrency: int = 5
    embed_batch_pause: float = 0.5
    embed_max_retries: int = 5
    embed_initial_delay: float = 1.0

    # Ingestion
    message_concurrency: int = 10
    attachment_concurrency: int = 5
    default_fetch_limit: int = 200

    # Retrieval
    match_threshold: float = 0.5
    match_count: int = 15
    fetch_multiplier: int = 2
    search_threshold: float = 0.7
    recency_limit: int = 5
    fallback_limit: int = 3
    tie_epsilon: float = 0.1
    email_display: int = 5
    attachment_display: int = 3

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Process default. Components take their values through constructors;
# only the bootstrap layer reads this.
settings = Settings()
