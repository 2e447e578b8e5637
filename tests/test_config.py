"""
Tests for environment-driven configuration.
"""

from spannlite.core import config
from spannlite.vector.embeddings import DeterministicHashEmbedding, SentenceTransformerEmbedding
from spannlite.vector.engine import SearchConfig


def test_search_config_defaults():
    search_config = config.get_search_config()

    assert isinstance(search_config, SearchConfig)
    assert search_config.num_clusters == config.NUM_CLUSTERS
    assert search_config.search_probe_count == config.SEARCH_PROBE_COUNT
    assert search_config.snapshot_keep_last == config.SNAPSHOT_KEEP_LAST


def test_random_seed(monkeypatch):
    monkeypatch.setenv("RANDOM_SEED", "17")
    assert config.get_random_seed() == 17

    monkeypatch.setenv("RANDOM_SEED", "")
    assert config.get_random_seed() is None


def test_embedding_provider_selection(monkeypatch):
    monkeypatch.setattr(config, "EMBED_PROVIDER", "hash")
    monkeypatch.setattr(config, "EMBED_DIM", 48)
    provider = config.get_embedding_provider()
    assert isinstance(provider, DeterministicHashEmbedding)
    assert provider.get_dimension() == 48

    monkeypatch.setattr(config, "EMBED_PROVIDER", "sentence_transformers")
    assert isinstance(config.get_embedding_provider(), SentenceTransformerEmbedding)


def test_validate_search_config(monkeypatch):
    monkeypatch.setattr(config, "EMBED_PROVIDER", "hash")
    monkeypatch.setattr(config, "EMBED_DIM", 384)
    monkeypatch.setattr(config, "NUM_CLUSTERS", 5)
    assert config.validate_search_config() == []

    monkeypatch.setattr(config, "EMBED_PROVIDER", "openai")
    monkeypatch.setattr(config, "NUM_CLUSTERS", 0)
    issues = config.validate_search_config()
    assert "Invalid EMBED_PROVIDER: openai" in issues
    assert "num_clusters must be at least 1" in issues


def test_debug_flag(monkeypatch):
    monkeypatch.setenv("DEBUG", "false")
    assert not config.debug_enabled()
