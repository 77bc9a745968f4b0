from __future__ import annotations

import json
from pathlib import Path

import pytest

from codedrop.config import EXAMPLE_CONFIG, Config, load_config

ENV_KEYS = [
    "CODEDROP_HOST", "CODEDROP_PORT", "CODEDROP_CONNECT_TIMEOUT",
    "CODEDROP_CHUNK_SIZE", "CODEDROP_SEND_INTERVAL", "CODEDROP_OUTPUT_DIR",
    "CODEDROP_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults():
    config = Config()
    assert config.port == 8470
    assert config.chunk_size == 16384
    assert config.send_interval == 0.1
    assert config.output_dir == Path("./downloads")
    assert config.log_level == "INFO"


def test_from_env(monkeypatch):
    monkeypatch.setenv("CODEDROP_PORT", "9000")
    monkeypatch.setenv("CODEDROP_CHUNK_SIZE", "4096")
    monkeypatch.setenv("CODEDROP_SEND_INTERVAL", "0.02")
    monkeypatch.setenv("CODEDROP_OUTPUT_DIR", "/tmp/inbox")

    config = Config.from_env()

    assert config.port == 9000
    assert config.chunk_size == 4096
    assert config.send_interval == 0.02
    assert config.output_dir == Path("/tmp/inbox")
    assert config.host == "0.0.0.0"


def test_invalid_env_value_names_the_variable(monkeypatch):
    monkeypatch.setenv("CODEDROP_PORT", "eighty")
    with pytest.raises(ValueError, match="CODEDROP_PORT"):
        Config.from_env()


def test_save_and_load_file(tmp_path):
    path = tmp_path / "config.json"
    Config(port=9100, chunk_size=1024, output_dir=Path("inbox")).save(path)

    config = Config.from_file(path)

    assert config.port == 9100
    assert config.chunk_size == 1024
    assert config.output_dir == Path("inbox")
    assert json.loads(path.read_text())["send_interval"] == 0.1


def test_missing_file_gives_defaults(tmp_path):
    assert Config.from_file(tmp_path / "absent.json") == Config()


def test_env_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"port": 9100, "chunk_size": 1024}))
    monkeypatch.setenv("CODEDROP_PORT", "9200")

    config = load_config(path)

    assert config.port == 9200
    assert config.chunk_size == 1024


def test_example_config_matches_defaults():
    example = json.loads(EXAMPLE_CONFIG)
    defaults = Config().to_dict()
    assert Path(example.pop("output_dir")) == Path(defaults.pop("output_dir"))
    assert example == defaults
