"""
Unit Tests for Configuration Management
"""

import pytest

from rag_pipeline.config import ConfigManager, RAGConfig

ENV_VARS = (
    "ENVIRONMENT",
    "LLM_MAX_TOKENS",
    "EMBEDDING_CACHE_CAPACITY",
    "HISTORY_MAX_ENTRIES",
    "CHUNK_SIZE",
    "CHUNK_OVERLAP",
    "LLM_MODEL",
    "LLM_TEMPERATURE",
    "OPENAI_API_KEY",
    "VECTOR_STORE_BACKEND",
    "DOCUMENT_RETENTION_DAYS",
    "QUERY_MAX_ATTEMPTS",
    "QUERY_RETRY_WINDOW_SECONDS",
    "RETENTION_SWEEP_ENABLED",
    "CORS_ORIGINS",
    "LOG_LEVEL",
    "LOG_MAX_FILE_SIZE",
    "LOG_BACKUP_COUNT",
    "METRICS_PATH",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestConfigManager:
    """Test cases for ConfigManager class."""

    def test_defaults(self):
        config = ConfigManager().load_config()

        assert isinstance(config, RAGConfig)
        assert config.chunking.max_chunk_size == 1000
        assert config.chunking.overlap_size == 200
        assert config.llm.model == "gpt-4o-mini"
        assert config.llm.max_tokens == 1000
        assert config.llm.temperature == 0.3
        assert config.retention.retention_days == 7
        assert config.history.max_entries == 1000
        assert config.retry.max_attempts == 3
        assert config.retry.max_retry_window_seconds == 60.0
        assert config.batch.batch_size == 3
        assert config.batch.max_queries == 10
        assert config.embedding.cache_capacity == 1000

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("CHUNK_SIZE", "500")
        monkeypatch.setenv("CHUNK_OVERLAP", "50")
        monkeypatch.setenv("LLM_MODEL", "gpt-4o")
        monkeypatch.setenv("LLM_TEMPERATURE", "0.7")
        monkeypatch.setenv("VECTOR_STORE_BACKEND", "persistent")
        monkeypatch.setenv("QUERY_RETRY_WINDOW_SECONDS", "30")
        monkeypatch.setenv("RETENTION_SWEEP_ENABLED", "false")
        monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")

        config = ConfigManager().load_config()

        assert config.chunking.max_chunk_size == 500
        assert config.chunking.overlap_size == 50
        assert config.llm.model == "gpt-4o"
        assert config.llm.temperature == 0.7
        assert config.vector_store.backend == "persistent"
        assert config.retry.max_retry_window_seconds == 30.0
        assert config.retention.enabled is False
        assert config.cors_origins == ["https://a.example", "https://b.example"]

    def test_logging_and_metrics_overrides(self, monkeypatch):
        monkeypatch.setenv("LOG_MAX_FILE_SIZE", "2048")
        monkeypatch.setenv("LOG_BACKUP_COUNT", "2")
        monkeypatch.setenv("METRICS_PATH", "/internal/metrics")

        config = ConfigManager().load_config()

        assert config.logging.max_file_size == 2048
        assert config.logging.backup_count == 2
        assert config.monitoring.metrics_path == "/internal/metrics"

    def test_relative_metrics_path_rejected(self, monkeypatch):
        monkeypatch.setenv("METRICS_PATH", "metrics")

        with pytest.raises(ValueError, match="Metrics path"):
            ConfigManager().load_config()

    def test_overlap_not_smaller_than_chunk_rejected(self, monkeypatch):
        monkeypatch.setenv("CHUNK_SIZE", "100")
        monkeypatch.setenv("CHUNK_OVERLAP", "100")

        with pytest.raises(ValueError, match="overlap"):
            ConfigManager().load_config()

    def test_all_errors_reported_together(self, monkeypatch):
        monkeypatch.setenv("VECTOR_STORE_BACKEND", "pinecone")
        monkeypatch.setenv("LOG_LEVEL", "LOUD")

        with pytest.raises(ValueError) as exc_info:
            ConfigManager().load_config()

        message = str(exc_info.value)
        assert "backend" in message
        assert "Log level" in message

    def test_yaml_file(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "environment: staging\n"
            "llm:\n"
            "  model: gpt-4o\n"
            "  max_tokens: 500\n"
            "retention:\n"
            "  retention_days: 14\n"
            "  unknown_key: ignored\n"
        )

        config = ConfigManager(str(config_file)).load_config()

        assert config.environment == "staging"
        assert config.llm.model == "gpt-4o"
        assert config.llm.max_tokens == 500
        assert config.retention.retention_days == 14

    def test_environment_beats_file(self, tmp_path, monkeypatch):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("llm:\n  model: from-file\n")
        monkeypatch.setenv("LLM_MODEL", "from-env")

        assert ConfigManager(str(config_file)).load_config().llm.model == "from-env"

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("llm: [unclosed\n")

        with pytest.raises(ValueError):
            ConfigManager(str(config_file)).load_config()

    def test_load_is_cached_until_reload(self, monkeypatch):
        manager = ConfigManager()
        first = manager.load_config()

        monkeypatch.setenv("LLM_MODEL", "gpt-4o")

        assert manager.get_config() is first
        assert manager.reload_config().llm.model == "gpt-4o"

    def test_to_dict_masks_api_key(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-secret")

        result = ConfigManager().to_dict()

        assert result["llm"]["api_key"] == "***"
        assert result["chunking"]["max_chunk_size"] == 1000
