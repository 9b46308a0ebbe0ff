"""
Configuration Management - Centralized configuration for the RAG pipeline

Part of the RAG Query Pipeline.

License: MIT
"""

import os
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field
from pathlib import Path
import logging

import yaml
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

VALID_BACKENDS = ("ephemeral", "persistent", "http")
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ChunkingConfig:
    """Configuration for text chunking."""

    max_chunk_size: int = 1000
    overlap_size: int = 200


@dataclass
class EmbeddingConfig:
    """Configuration for embedding generation."""

    model: str = "text-embedding-3-small"
    dimension: Optional[int] = None
    max_input_length: int = 8000
    cache_capacity: int = 1000
    batch_size: int = 5
    batch_pause_seconds: float = 0.1
    max_retries: int = 3
    retry_base_delay: float = 0.5


@dataclass
class VectorStoreConfig:
    """Configuration for vector store."""

    backend: str = "ephemeral"
    collection_name: str = "rag-documents"
    metric: str = "cosine"

    # Persistent client
    persist_directory: str = "./chroma_data"

    # HTTP client
    host: str = "localhost"
    port: int = 8000


@dataclass
class LLMConfig:
    """Configuration for language model."""

    model: str = "gpt-4o-mini"
    max_tokens: int = 1000
    temperature: float = 0.3
    api_key: Optional[str] = None


@dataclass
class RetentionConfig:
    """Configuration for fragment retention."""

    retention_days: int = 7
    cleanup_interval_minutes: int = 60
    enabled: bool = True


@dataclass
class HistoryConfig:
    """Configuration for query history."""

    max_entries: int = 1000
    ttl_hours: float = 24 * 30


@dataclass
class RetryConfig:
    """Configuration for query-level retries."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: Optional[float] = None
    max_retry_window_seconds: Optional[float] = 60.0


@dataclass
class BatchConfig:
    """Configuration for batch query processing."""

    batch_size: int = 3
    pause_seconds: float = 1.0
    max_queries: int = 10


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format_type: str = "structured"
    log_file: Optional[str] = None
    max_file_size: int = 10485760  # 10MB
    backup_count: int = 5


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""

    prometheus_enabled: bool = True
    metrics_path: str = "/metrics"


@dataclass
class RAGConfig:
    """Main RAG pipeline configuration."""

    # Environment
    environment: str = "development"

    # Component configurations
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    vector_store: VectorStoreConfig = field(default_factory=VectorStoreConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() == "true"


class ConfigManager:
    """
    Configuration manager for loading and validating configuration.
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to configuration file (optional)
        """
        self.config_path = config_path
        self._config: Optional[RAGConfig] = None

    def load_config(self) -> RAGConfig:
        """
        Load configuration from environment variables and files.

        Returns:
            RAGConfig instance

        Raises:
            ValueError: If the file cannot be parsed or validation fails
        """
        if self._config is not None:
            return self._config

        # Start with default configuration
        config = RAGConfig()

        # Load from file if specified
        if self.config_path and Path(self.config_path).exists():
            config = self._load_from_file(config, self.config_path)

        # Override with environment variables
        config = self._load_from_env(config)

        # Validate configuration
        self._validate_config(config)

        self._config = config
        logger.info(f"Configuration loaded for environment: {config.environment}")

        return config

    def _load_from_file(self, config: RAGConfig, file_path: str) -> RAGConfig:
        """Load configuration from YAML file."""
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                file_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading configuration from file: {str(e)}")
            raise ValueError(f"Cannot load configuration file {file_path}: {e}") from e

        # Update config with file values
        self._update_config_from_dict(config, file_config)
        logger.info(f"Configuration loaded from file: {file_path}")

        return config

    def _load_from_env(self, config: RAGConfig) -> RAGConfig:
        """Load configuration from environment variables."""

        # Environment
        config.environment = os.getenv("ENVIRONMENT", config.environment)

        # API
        config.api_host = os.getenv("API_HOST", config.api_host)
        config.api_port = int(os.getenv("API_PORT", str(config.api_port)))

        cors_origins_env = os.getenv("CORS_ORIGINS")
        if cors_origins_env:
            config.cors_origins = [origin.strip() for origin in cors_origins_env.split(",")]

        # Chunking
        config.chunking.max_chunk_size = int(
            os.getenv("CHUNK_SIZE", str(config.chunking.max_chunk_size))
        )
        config.chunking.overlap_size = int(
            os.getenv("CHUNK_OVERLAP", str(config.chunking.overlap_size))
        )

        # Embedding
        config.embedding.model = os.getenv("EMBEDDING_MODEL", config.embedding.model)
        dimension_env = os.getenv("EMBEDDING_DIMENSION")
        if dimension_env:
            config.embedding.dimension = int(dimension_env)
        config.embedding.max_input_length = int(
            os.getenv("EMBEDDING_MAX_INPUT_LENGTH", str(config.embedding.max_input_length))
        )
        config.embedding.cache_capacity = int(
            os.getenv("EMBEDDING_CACHE_CAPACITY", str(config.embedding.cache_capacity))
        )

        # Vector Store
        config.vector_store.backend = os.getenv("VECTOR_STORE_BACKEND", config.vector_store.backend)
        config.vector_store.collection_name = os.getenv(
            "CHROMA_COLLECTION_NAME", config.vector_store.collection_name
        )
        config.vector_store.persist_directory = os.getenv(
            "CHROMA_PERSIST_DIRECTORY", config.vector_store.persist_directory
        )
        config.vector_store.host = os.getenv("CHROMA_HOST", config.vector_store.host)
        config.vector_store.port = int(os.getenv("CHROMA_PORT", str(config.vector_store.port)))

        # LLM
        config.llm.model = os.getenv("LLM_MODEL", config.llm.model)
        config.llm.max_tokens = int(os.getenv("LLM_MAX_TOKENS", str(config.llm.max_tokens)))
        config.llm.temperature = float(os.getenv("LLM_TEMPERATURE", str(config.llm.temperature)))
        config.llm.api_key = os.getenv("OPENAI_API_KEY", config.llm.api_key)

        # Retention
        config.retention.retention_days = int(
            os.getenv("DOCUMENT_RETENTION_DAYS", str(config.retention.retention_days))
        )
        config.retention.cleanup_interval_minutes = int(
            os.getenv("CLEANUP_INTERVAL_MINUTES", str(config.retention.cleanup_interval_minutes))
        )
        config.retention.enabled = _env_bool("RETENTION_SWEEP_ENABLED", config.retention.enabled)

        # History
        config.history.max_entries = int(
            os.getenv("HISTORY_MAX_ENTRIES", str(config.history.max_entries))
        )
        config.history.ttl_hours = float(
            os.getenv("HISTORY_TTL_HOURS", str(config.history.ttl_hours))
        )

        # Retry
        config.retry.max_attempts = int(
            os.getenv("QUERY_MAX_ATTEMPTS", str(config.retry.max_attempts))
        )
        config.retry.base_delay = float(
            os.getenv("QUERY_RETRY_BASE_DELAY", str(config.retry.base_delay))
        )
        window_env = os.getenv("QUERY_RETRY_WINDOW_SECONDS")
        if window_env:
            config.retry.max_retry_window_seconds = float(window_env)

        # Logging
        config.logging.level = os.getenv("LOG_LEVEL", config.logging.level)
        config.logging.format_type = os.getenv("LOG_FORMAT", config.logging.format_type)
        config.logging.log_file = os.getenv("LOG_FILE", config.logging.log_file)
        config.logging.max_file_size = int(
            os.getenv("LOG_MAX_FILE_SIZE", str(config.logging.max_file_size))
        )
        config.logging.backup_count = int(
            os.getenv("LOG_BACKUP_COUNT", str(config.logging.backup_count))
        )

        # Monitoring
        config.monitoring.prometheus_enabled = _env_bool(
            "PROMETHEUS_ENABLED", config.monitoring.prometheus_enabled
        )
        config.monitoring.metrics_path = os.getenv("METRICS_PATH", config.monitoring.metrics_path)

        return config

    def _update_config_from_dict(self, config: RAGConfig, config_dict: Dict[str, Any]) -> None:
        """Update configuration from dictionary."""
        for section_name, section_config in config_dict.items():
            if hasattr(config, section_name) and isinstance(section_config, dict):
                section_obj = getattr(config, section_name)
                for key, value in section_config.items():
                    if hasattr(section_obj, key):
                        setattr(section_obj, key, value)
            elif hasattr(config, section_name):
                setattr(config, section_name, section_config)

    def _validate_config(self, config: RAGConfig) -> None:
        """Validate configuration values."""
        errors = []

        # Validate API configuration
        if config.api_port < 1 or config.api_port > 65535:
            errors.append("API port must be between 1 and 65535")

        # Validate chunking configuration
        if config.chunking.max_chunk_size < 1:
            errors.append("Chunk size must be at least 1")

        if not 0 <= config.chunking.overlap_size < config.chunking.max_chunk_size:
            errors.append("Chunk overlap must be non-negative and smaller than the chunk size")

        # Validate embedding configuration
        if config.embedding.dimension is not None and config.embedding.dimension < 1:
            errors.append("Embedding dimension must be at least 1")

        if config.embedding.cache_capacity < 1:
            errors.append("Embedding cache capacity must be at least 1")

        if config.embedding.batch_size < 1:
            errors.append("Embedding batch size must be at least 1")

        if config.embedding.max_input_length < 1:
            errors.append("Embedding max input length must be at least 1")

        # Validate vector store configuration
        if config.vector_store.backend not in VALID_BACKENDS:
            errors.append(f"Vector store backend must be one of: {', '.join(VALID_BACKENDS)}")

        # Validate LLM configuration
        if config.llm.max_tokens < 1:
            errors.append("LLM max tokens must be at least 1")

        if not (0.0 <= config.llm.temperature <= 2.0):
            errors.append("LLM temperature must be between 0.0 and 2.0")

        # Validate retention and history
        if config.retention.retention_days < 1:
            errors.append("Retention must be at least 1 day")

        if config.retention.cleanup_interval_minutes < 1:
            errors.append("Cleanup interval must be at least 1 minute")

        if config.history.max_entries < 1:
            errors.append("History max entries must be at least 1")

        # Validate retry and batching
        if config.retry.max_attempts < 1:
            errors.append("Query max attempts must be at least 1")

        if config.retry.base_delay < 0:
            errors.append("Retry base delay cannot be negative")

        if config.batch.batch_size < 1:
            errors.append("Batch size must be at least 1")

        # Validate logging
        if config.logging.level.upper() not in VALID_LOG_LEVELS:
            errors.append(f"Log level must be one of: {', '.join(VALID_LOG_LEVELS)}")

        if config.logging.max_file_size < 1:
            errors.append("Log max file size must be positive")

        if config.logging.backup_count < 0:
            errors.append("Log backup count cannot be negative")

        # Validate monitoring
        if not config.monitoring.metrics_path.startswith("/"):
            errors.append("Metrics path must start with '/'")

        # Raise exception if there are validation errors
        if errors:
            error_message = "Configuration validation errors:\n" + "\n".join(
                f"- {error}" for error in errors
            )
            raise ValueError(error_message)

    def get_config(self) -> RAGConfig:
        """Get the current configuration, loading if necessary."""
        if self._config is None:
            return self.load_config()
        return self._config

    def reload_config(self) -> RAGConfig:
        """Reload configuration from sources."""
        self._config = None
        return self.load_config()

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary, masking secrets."""
        config = self.get_config()

        def dataclass_to_dict(obj):
            if hasattr(obj, "__dataclass_fields__"):
                return {
                    field_name: dataclass_to_dict(getattr(obj, field_name))
                    for field_name in obj.__dataclass_fields__
                }
            else:
                return obj

        result = dataclass_to_dict(config)
        if result["llm"].get("api_key"):
            result["llm"]["api_key"] = "***"
        return result


# Global configuration manager instance
_config_manager = None


def get_config_manager(config_path: Optional[str] = None) -> ConfigManager:
    """Get the global configuration manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(config_path or os.getenv("RAG_CONFIG_PATH"))
    return _config_manager


def get_config() -> RAGConfig:
    """Get the current RAG configuration."""
    return get_config_manager().get_config()
