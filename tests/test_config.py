"""Settings loading: defaults, YAML, environment overlay and validation."""

import logging

import pytest

from capsulecoin.config import Settings
from capsulecoin.core.exceptions import ConfigError


def test_defaults():
    s = Settings()
    assert s.token_symbol == "CAPS"
    assert s.decimals == 18
    assert s.cap == 2_500_000_000 * 10**18
    assert s.seconds_per_block == 30
    assert s.journal_path is None
    assert s.log_level_value == logging.WARNING


def test_yaml_overrides_defaults(tmp_path):
    path = tmp_path / "capsule.yaml"
    path.write_text(
        "decimals: 6\ncap_tokens: 1000\njournal_path: replay.jsonl\nlog_level: debug\n",
        encoding="utf-8",
    )
    s = Settings.from_yaml(path)
    assert s.cap == 1000 * 10**6
    assert s.journal_path == "replay.jsonl"
    assert s.log_level_value == logging.DEBUG
    assert s.token_name == "Capsule Coin"


def test_empty_yaml_is_defaults(tmp_path):
    path = tmp_path / "capsule.yaml"
    path.write_text("", encoding="utf-8")
    assert Settings.from_yaml(path) == Settings()


def test_environment_beats_yaml(tmp_path):
    path = tmp_path / "capsule.yaml"
    path.write_text("seconds_per_block: 12\ntoken_symbol: YAML\n", encoding="utf-8")
    s = Settings.load(path, environ={"CAPSULE_SECONDS_PER_BLOCK": "2", "OTHER": "x"})
    assert s.seconds_per_block == 2
    assert s.token_symbol == "YAML"


def test_load_without_file_reads_environment():
    s = Settings.load(environ={"CAPSULE_JOURNAL_PATH": "/tmp/j.jsonl"})
    assert s.journal_path == "/tmp/j.jsonl"


@pytest.mark.parametrize("content", [
    "unknown_key: 1\n",
    "decimals: 99\n",
    "decimals: '18'\n",
    "cap_tokens: 0\n",
    "seconds_per_block: -1\n",
    "log_level: LOUD\n",
    "- a list\n",
    "decimals: [unclosed\n",
])
def test_bad_yaml_rejected(tmp_path, content):
    path = tmp_path / "capsule.yaml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        Settings.from_yaml(path)


def test_missing_file_rejected(tmp_path):
    with pytest.raises(ConfigError):
        Settings.from_yaml(tmp_path / "missing.yaml")


def test_non_integer_environment_rejected():
    with pytest.raises(ConfigError):
        Settings.from_env(environ={"CAPSULE_DECIMALS": "eighteen"})


@pytest.mark.parametrize("content", [
    "log_level: 10\n",
    "token_name: 5\n",
    "token_symbol: [CAPS]\n",
    "journal_path: 3\n",
])
def test_non_string_values_rejected(tmp_path, content):
    path = tmp_path / "capsule.yaml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        Settings.from_yaml(path)


def test_cap_must_fit_uint256():
    with pytest.raises(ConfigError):
        Settings(decimals=77)
    assert Settings(decimals=77, cap_tokens=1).cap == 10**77
