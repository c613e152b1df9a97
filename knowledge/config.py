from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Credentials and tuning for the sync pipeline, its index and the API.

    Every field maps to an upper-case environment variable (e.g.
    ``PINECONE_API_KEY``); a .env file in the working directory is read too.
    Missing keys only fail when the client that needs them is built.
    """

    # API Keys
    pinecone_api_key: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""

    # Vector index
    pinecone_index_name: str = "rag-index"
    pinecone_metric: str = "cosine"
    pinecone_cloud: str = "aws"
    pinecone_region: str = "us-east-1"
    write_batch_size: int = 100

    # Supabase (document store, read-only)
    supabase_url: str = ""
    supabase_key: str = ""

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    embedding_batch_size: int = 2048
    llm_model: str = "claude-sonnet-4-20250514"
    chunking_mode: str = "llm"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide Settings, built once.

    An unreadable .env file falls back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
