"""YAML configuration: defaults, merging and validation."""

import pytest

from ethcore.config import DEFAULT_CONFIG, Config, config
from ethcore.constants import CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE
from ethcore.exceptions import ConfigurationError


def test_singleton():
    assert Config() is config


def test_defaults():
    config.reset()
    assert config.get('engine.backend') == "auto"
    assert config.get('engine.max_allocation_bytes') is None
    assert config.get('engine.max_partitions') == 8
    assert config.get('gpu.threads_per_block') == 128
    assert config.get('dataset_cache.enabled') is False
    assert config.data == DEFAULT_CONFIG
    assert config.data is not DEFAULT_CONFIG


def test_dot_path_get_and_set():
    assert config.get('missing.key', default=5) == 5
    assert config.get('engine.backend.deeper') is None
    config.set('gpu.device_id', 1)
    assert config.get('gpu.device_id') == 1
    config.set('new.section.value', "x")
    assert config.get('new.section.value') == "x"


def test_yaml_merges_over_defaults(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("engine:\n  max_partitions: 4\nhost:\n  chunk_items: 64\n")
    config.load(str(path))
    assert config.get('engine.max_partitions') == 4
    assert config.get('host.chunk_items') == 64
    # untouched siblings keep their values
    assert config.get('engine.backend') == "host"
    assert config.get('gpu.threads_per_block') == 128


def test_non_mapping_rejected(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigurationError):
        config.load(str(path))


def test_invalid_yaml_keeps_defaults(tmp_path):
    path = tmp_path / "engine.yaml"
    path.write_text("engine: [unclosed\n")
    config.load(str(path))
    assert config.get('engine.max_partitions') == 8


@pytest.mark.parametrize("text", [
    "engine:\n  backend: opencl\n",
    "engine:\n  max_partitions: 0\n",
    "gpu:\n  threads_per_block: many\n",
    "engine:\n  max_allocation_bytes: -1\n",
    "host:\n  workers: -2\n",
])
def test_invalid_values_rejected(tmp_path, text):
    path = tmp_path / "engine.yaml"
    path.write_text(text)
    with pytest.raises(ConfigurationError):
        config.load(str(path))


def test_missing_file_uses_current_values(tmp_path):
    config.load(str(tmp_path / "absent.yaml"))
    assert config.get('engine.backend') == "host"


def test_env_var_selects_file(tmp_path, monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    assert Config.default_path() == DEFAULT_CONFIG_FILE
    path = tmp_path / "custom.yaml"
    path.write_text("mining:\n  batch_size: 1024\n")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
    assert Config.default_path() == str(path)
    config.load()
    assert config.get('mining.batch_size') == 1024


def test_save_round_trip(tmp_path):
    path = tmp_path / "saved.yaml"
    config.set('engine.max_partitions', 3)
    config.save(str(path))
    config.reset()
    config.load(str(path))
    assert config.get('engine.max_partitions') == 3
