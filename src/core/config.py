"""
Configuration Module
====================

Centralized configuration management using environment variables.
Supports both .env files and system environment variables.

Environment Variables:
    DATABASE_URL: Full PostgreSQL URL (takes precedence over the fields below)
    DATABASE_HOST: PostgreSQL host (default: localhost)
    DATABASE_PORT: PostgreSQL port (default: 5432)
    DATABASE_NAME: Database name (default: governed_rag)
    DATABASE_USER: Database user (default: postgres)
    DATABASE_PASSWORD: Database password
    DATABASE_POOL_MIN / DATABASE_POOL_MAX: Pool bounds (default: 2 / 10)
    USE_PGVECTOR: Use pgvector ordering when the extension exists (default: true)

    CHUNK_SIZE: Characters per fragment window (default: 500)
    CHUNK_OVERLAP: Characters shared by consecutive windows (default: 100)
    EMBEDDING_MODEL: Embedding model (default: text-embedding-3-small)
    EMBEDDING_MAX_CHARS: Input ceiling before the embedding call (default: 8000)
    RAG_TOP_K: Fragments retrieved per query (default: 5)
    RAG_SIMILARITY_FLOOR: Minimum similarity kept as evidence (default: 0.3)
    RAG_INTERNAL_CONFIDENCE_FLOOR: Best score INTERNAL agents need (default: 0.5)

    LLM_PROVIDER: openai | anthropic (default: auto-detect from API keys)
    LLM_DEFAULT_MODEL: Model when the agent has none (default: gpt-4o)
    LLM_MAX_TOKENS: Completion ceiling (default: 2000)
    LLM_COST_PER_1K_TOKENS: Spend estimate per 1K tokens in USD (default: 0.01)
    CHAT_HISTORY_LIMIT: Prior messages replayed per turn (default: 20)
    ENCRYPTION_KEY: Key used to decrypt tenant provider API keys

    INGESTION_WORKERS: Ingestion worker threads (default: 2)
    INGESTION_RESCAN_SECONDS: Pending-document rescan interval (default: 60)
"""

import os
from dataclasses import dataclass, field
from typing import Optional
from pathlib import Path
from dotenv import load_dotenv


# Load environment variables from .env file if present
env_path = Path(__file__).parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    """
    Get environment variable with optional default and required validation.

    Raises:
        ValueError: If required=True and variable is not set
    """
    value = os.getenv(key, default)
    if required and value is None:
        raise ValueError(f"Required environment variable '{key}' is not set")
    return value


def get_env_int(key: str, default: int) -> int:
    """Get environment variable as integer."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable '{key}' must be an integer, got: {value}")


def get_env_float(key: str, default: float) -> float:
    """Get environment variable as float."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable '{key}' must be a float, got: {value}")


def get_env_bool(key: str, default: bool) -> bool:
    """Get environment variable as boolean."""
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


@dataclass
class DatabaseConfig:
    """PostgreSQL database configuration."""

    url: Optional[str] = field(default_factory=lambda: get_env("DATABASE_URL"))
    host: str = field(default_factory=lambda: get_env("DATABASE_HOST", "localhost"))
    port: int = field(default_factory=lambda: get_env_int("DATABASE_PORT", 5432))
    name: str = field(default_factory=lambda: get_env("DATABASE_NAME", "governed_rag"))
    user: str = field(default_factory=lambda: get_env("DATABASE_USER", "postgres"))
    password: str = field(default_factory=lambda: get_env("DATABASE_PASSWORD", ""))

    # Connection pool settings
    pool_min_size: int = field(default_factory=lambda: get_env_int("DATABASE_POOL_MIN", 2))
    pool_max_size: int = field(default_factory=lambda: get_env_int("DATABASE_POOL_MAX", 10))

    connect_timeout: int = field(default_factory=lambda: get_env_int("DATABASE_CONNECT_TIMEOUT", 10))
    ssl_mode: str = field(default_factory=lambda: get_env("DATABASE_SSL_MODE", "prefer"))

    # Allow pgvector ordering when the extension is installed
    use_pgvector: bool = field(default_factory=lambda: get_env_bool("USE_PGVECTOR", True))

    @property
    def connection_dict(self) -> dict:
        """Connection parameters for psycopg2."""
        if self.url:
            return {"dsn": self.url}
        return {
            "host": self.host,
            "port": self.port,
            "dbname": self.name,
            "user": self.user,
            "password": self.password,
            "sslmode": self.ssl_mode,
            "connect_timeout": self.connect_timeout,
        }

    def __post_init__(self):
        if self.pool_min_size > self.pool_max_size:
            raise ValueError("pool_min_size cannot exceed pool_max_size")


@dataclass
class RAGConfig:
    """Ingestion and retrieval configuration."""

    chunk_size: int = field(default_factory=lambda: get_env_int("CHUNK_SIZE", 500))
    chunk_overlap: int = field(default_factory=lambda: get_env_int("CHUNK_OVERLAP", 100))

    embedding_model: str = field(default_factory=lambda: get_env("EMBEDDING_MODEL", "text-embedding-3-small"))
    embedding_max_chars: int = field(default_factory=lambda: get_env_int("EMBEDDING_MAX_CHARS", 8000))

    top_k: int = field(default_factory=lambda: get_env_int("RAG_TOP_K", 5))
    similarity_floor: float = field(default_factory=lambda: get_env_float("RAG_SIMILARITY_FLOOR", 0.3))
    internal_confidence_floor: float = field(
        default_factory=lambda: get_env_float("RAG_INTERNAL_CONFIDENCE_FLOOR", 0.5)
    )

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError("chunk_overlap must be in [0, chunk_size)")
        if self.top_k <= 0:
            raise ValueError("top_k must be positive")


@dataclass
class LLMConfig:
    """Completion provider and spend configuration."""

    provider: Optional[str] = field(default_factory=lambda: get_env("LLM_PROVIDER"))
    default_model: str = field(default_factory=lambda: get_env("LLM_DEFAULT_MODEL", "gpt-4o"))
    default_temperature: float = field(default_factory=lambda: get_env_float("LLM_DEFAULT_TEMPERATURE", 0.7))
    max_tokens: int = field(default_factory=lambda: get_env_int("LLM_MAX_TOKENS", 2000))

    # Rough estimate: $0.01 per 1000 tokens
    cost_per_1k_tokens: float = field(default_factory=lambda: get_env_float("LLM_COST_PER_1K_TOKENS", 0.01))

    history_limit: int = field(default_factory=lambda: get_env_int("CHAT_HISTORY_LIMIT", 20))
    encryption_key: Optional[str] = field(default_factory=lambda: get_env("ENCRYPTION_KEY"))

    def __post_init__(self):
        if self.cost_per_1k_tokens < 0:
            raise ValueError("cost_per_1k_tokens cannot be negative")


@dataclass
class WorkerConfig:
    """Background ingestion worker configuration."""

    threads: int = field(default_factory=lambda: get_env_int("INGESTION_WORKERS", 2))
    rescan_interval_seconds: int = field(default_factory=lambda: get_env_int("INGESTION_RESCAN_SECONDS", 60))
    stale_processing_seconds: int = field(default_factory=lambda: get_env_int("INGESTION_STALE_SECONDS", 900))

    def __post_init__(self):
        if self.threads <= 0:
            raise ValueError("threads must be positive")
        if self.stale_processing_seconds < 0:
            raise ValueError("stale_processing_seconds must be non-negative")


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = field(default_factory=lambda: get_env("LOG_LEVEL", "INFO"))
    log_file: Optional[str] = field(default_factory=lambda: get_env("LOG_FILE"))
    json_logs: bool = field(default_factory=lambda: get_env_bool("LOG_JSON", False))


@dataclass
class Settings:
    """Main application settings container."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    rag: RAGConfig = field(default_factory=RAGConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    app_name: str = "governed-rag"
    app_version: str = "1.0.0"
    environment: str = field(default_factory=lambda: get_env("ENVIRONMENT", "development"))

    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")


def load_settings() -> Settings:
    """
    Load and validate all application settings.

    Raises:
        ValueError: If configuration is invalid
    """
    return Settings()


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the settings instance, loading it on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
