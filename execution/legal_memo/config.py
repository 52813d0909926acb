"""
Configuration for the Legal Memo Assistant

Every setting comes from environment variables (a .env file is loaded by the
API module and the dev entrypoint). Each concern has its own dataclass with a
``from_env()`` factory so services can be constructed explicitly in tests.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


# Variables that must be present before documents can be uploaded
REQUIRED_STORAGE_VARS = (
    "STORAGE_ACCESS_KEY",
    "STORAGE_SECRET_KEY",
    "STORAGE_BUCKET",
)

DEFAULT_MAX_UPLOAD_MB = 10


@dataclass
class StorageConfig:
    """S3-compatible object storage settings."""
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    bucket: Optional[str] = None
    endpoint: Optional[str] = None  # None for AWS S3, set for R2/MinIO
    region: str = "eu-central-1"
    public_url_base: Optional[str] = None
    key_prefix: str = "documents"

    @classmethod
    def from_env(cls) -> "StorageConfig":
        return cls(
            access_key=os.getenv("STORAGE_ACCESS_KEY") or None,
            secret_key=os.getenv("STORAGE_SECRET_KEY") or None,
            bucket=os.getenv("STORAGE_BUCKET") or None,
            endpoint=os.getenv("STORAGE_ENDPOINT") or None,
            region=os.getenv("STORAGE_REGION", "eu-central-1"),
            public_url_base=os.getenv("STORAGE_PUBLIC_URL_BASE") or None,
        )

    def missing_vars(self) -> list[str]:
        """Names of required environment variables that are not set."""
        values = {
            "STORAGE_ACCESS_KEY": self.access_key,
            "STORAGE_SECRET_KEY": self.secret_key,
            "STORAGE_BUCKET": self.bucket,
        }
        return [name for name in REQUIRED_STORAGE_VARS if not values[name]]

    @property
    def is_configured(self) -> bool:
        return not self.missing_vars()

    def diagnostic(self) -> Optional[str]:
        """Actionable message for the dashboard banner, or None when configured."""
        missing = self.missing_vars()
        if not missing:
            return None
        return (
            "Storage configuration is incomplete. The following environment "
            f"variables are missing: {', '.join(missing)}. Add them to your .env "
            "file and RESTART the server before uploading documents."
        )


@dataclass
class LLMConfig:
    """Generative model settings (any OpenAI-compatible endpoint)."""
    api_key: Optional[str] = None
    base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    model: str = "gemini-2.0-flash"
    temperature: float = 0.2
    max_tokens: int = 4096
    timeout: float = 120.0

    @classmethod
    def from_env(cls) -> "LLMConfig":
        return cls(
            api_key=os.getenv("LLM_API_KEY") or os.getenv("GOOGLE_API_KEY") or None,
            base_url=os.getenv("LLM_BASE_URL", cls.base_url),
            model=os.getenv("LLM_MODEL", cls.model),
        )


@dataclass
class EmbeddingConfig:
    """Configuration for the document embedding service."""
    api_key: Optional[str] = None
    model: str = "voyage-law-2"
    dimensions: int = 1024
    max_chars: int = 64000  # voyage-law-2 context is 16K tokens
    use_cache: bool = True
    download_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "EmbeddingConfig":
        return cls(
            api_key=os.getenv("VOYAGE_API_KEY") or None,
            model=os.getenv("EMBEDDING_MODEL", cls.model),
            dimensions=int(os.getenv("EMBEDDING_DIMENSIONS", str(cls.dimensions))),
        )


@dataclass
class RetrieverConfig:
    """Similar-case retrieval backend selection."""
    backend: str = "static"  # "static" or "pgvector"
    connection_string: Optional[str] = None
    table_name: str = "similar_cases"
    top_k: int = 3

    @classmethod
    def from_env(cls) -> "RetrieverConfig":
        return cls(
            backend=os.getenv("RETRIEVER_BACKEND", "static").lower(),
            connection_string=os.getenv("DATABASE_URL") or None,
            top_k=int(os.getenv("SIMILAR_CASES_TOP_K", "3")),
        )


@dataclass
class AppConfig:
    """Top-level application configuration."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    embeddings: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    max_upload_mb: int = DEFAULT_MAX_UPLOAD_MB

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls(
            storage=StorageConfig.from_env(),
            llm=LLMConfig.from_env(),
            embeddings=EmbeddingConfig.from_env(),
            retriever=RetrieverConfig.from_env(),
            max_upload_mb=int(os.getenv("MAX_UPLOAD_MB", str(DEFAULT_MAX_UPLOAD_MB))),
        )

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024
