"""Tests for configuration loading and validation."""

import pytest

from rag_ingest.config import CONFIG_ENV_VAR, IngestConfig, load_config, get_config
from rag_ingest.errors import ConfigurationError


def _write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_defaults_when_default_file_missing(tmp_path, monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.chdir(tmp_path)

    cfg = IngestConfig()

    assert cfg.get('chunking.strategy') == 'sentence'
    assert cfg.get('chunking.chunk_size') == 1000
    assert cfg.get('processing.max_parallel_chunks') == 5
    assert cfg.get('processing.max_retries') == 3
    assert cfg.get('resolver.cache_size') == 10
    assert cfg.get('llm.model_path') is None
    assert cfg.get('does.not.exist', 'fallback') == 'fallback'


def test_file_values_merge_over_defaults(tmp_path):
    path = _write(tmp_path, """
chunking:
  strategy: paragraph
  chunk_size: 500
processing:
  max_parallel_chunks: 12
""")
    cfg = IngestConfig(path)

    assert cfg.get_chunking_config() == {'strategy': 'paragraph', 'chunk_size': 500, 'overlap': 200}
    assert cfg.get('processing.max_parallel_chunks') == 12
    assert cfg.get('processing.base_delay') == 1.0


def test_env_var_selects_file(tmp_path, monkeypatch):
    path = _write(tmp_path, "processing:\n  max_retries: 7\n")
    monkeypatch.setenv(CONFIG_ENV_VAR, path)

    assert IngestConfig().get('processing.max_retries') == 7


def test_explicit_missing_file_is_an_error(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        IngestConfig(str(tmp_path / "nope.yaml"))


def test_invalid_yaml_is_an_error(tmp_path):
    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        IngestConfig(_write(tmp_path, "chunking: [unclosed"))


@pytest.mark.parametrize("overrides", [
    {'chunking': {'strategy': 'token'}},
    {'chunking': {'chunk_size': 0}},
    {'chunking': {'overlap': -1}},
    {'chunking': {'chunk_size': 100, 'overlap': 100}},
    {'processing': {'max_parallel_chunks': 0}},
    {'processing': {'max_parallel_chunks': 21}},
    {'processing': {'max_retries': 0}},
    {'processing': {'base_delay': -0.5}},
    {'resolver': {'cache_size': 0}},
    {'embedding': {'backend': 'openai'}},
    {'store': {'backend': 'postgres'}},
    {'store': {'flush_interval': -1}},
])
def test_invalid_values_are_rejected(tmp_path, overrides):
    with pytest.raises(ConfigurationError):
        IngestConfig(_write(tmp_path, ""), overrides=overrides)


def test_load_config_caches_instance(tmp_path):
    path = _write(tmp_path, "logging:\n  level: debug\n")
    cfg = load_config(path)

    assert get_config() is cfg
    assert load_config() is cfg
    assert cfg.get_log_level() == 'DEBUG'
