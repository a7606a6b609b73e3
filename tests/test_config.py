"""
Environment-driven configuration.
"""

from pathlib import Path
from unittest.mock import patch

from aura_memory.core import config


def test_documented_defaults():
    assert config.VECTOR_TOP_K == 5
    assert config.VECTOR_SIMILARITY_THRESHOLD == 0.3
    assert config.SNIPPETS_ENABLED is True
    assert config.SNIPPET_LENGTH == 200
    assert config.FILE_CHUNK_SIZE == 1000
    assert config.EMBEDDING_CACHE_TTL_MINUTES == 30
    assert config.AUTO_PERSISTENCE_INTERVAL_SEC == 30
    assert config.get_cache_ttl_seconds() == 1800


def test_defaults_validate_cleanly():
    assert config.validate_config() == []


def test_validation_reports_issues():
    with patch.object(config, "VECTOR_TOP_K", 0), \
         patch.object(config, "VECTOR_SIMILARITY_THRESHOLD", 1.5), \
         patch.object(config, "EMBED_PROVIDER", "bogus"):
        issues = config.validate_config()

    assert "VECTOR_TOP_K must be >= 1" in issues
    assert any("VECTOR_SIMILARITY_THRESHOLD" in issue for issue in issues)
    assert "Invalid EMBED_PROVIDER: bogus" in issues


def test_persistence_dir_reads_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("PERSISTENCE_DIR", str(tmp_path))
    assert config.get_persistence_dir() == Path(tmp_path)


def test_auto_persistence_flag(monkeypatch):
    monkeypatch.setenv("AUTO_PERSISTENCE_ENABLED", "true")
    assert config.is_auto_persistence_enabled() is True

    monkeypatch.setenv("AUTO_PERSISTENCE_ENABLED", "false")
    assert config.is_auto_persistence_enabled() is False


def test_provider_from_environment(monkeypatch):
    monkeypatch.setenv("EMBED_PROVIDER", "hash")
    assert type(config.get_embedding_provider()).__name__ == "DeterministicHashEmbedding"
