"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "rag_documents"
    chroma_distance: str = Field(default="cosine", description="hnsw:space for new collections")

    # Embedding
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_batch_size: int = Field(default=10, description="Texts per embedding call")
    embedding_batch_delay: float = Field(
        default=1.0,
        description="Seconds to wait between embedding batches (rate limiting)",
    )

    # Remote dataset rows
    dataset_server_url: str = "https://datasets-server.huggingface.co"
    dataset_row_limit: int = 100
    request_timeout: int = 60

    # Chunk quality
    min_chunk_length: int = Field(
        default=50,
        description="Minimum trimmed chunk length accepted by the ingestion gate",
    )

    # Uploads / serving
    max_upload_bytes: int = 20 * 1024 * 1024
    upload_dir: str = "uploads"
    session_max_age_hours: int = 24

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Import `settings` wherever configuration is needed; services are built explicitly.
settings = Settings()
