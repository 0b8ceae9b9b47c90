"""
Tests du chargement de config.yaml
"""
from pathlib import Path

import pytest

from core.config import DEFAULT_CONFIG, ConfigError, deep_merge, load_config


def write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


@pytest.mark.unit
class TestLoadConfig:
    def test_defaults_fill_missing_sections(self, tmp_path):
        config = load_config(write(tmp_path, "twitch:\n  client_id: abc\n"), environ={})

        assert config["twitch"]["client_id"] == "abc"
        assert config["token_guardian"] == {"interval": 60.0, "refresh_threshold": 3600.0}
        assert config["command_router"]["poll_interval"] == 0.1
        assert config["broadcast"]["capacity"] == 8
        assert config["announcements"]["color"] == "orange"

    def test_empty_file_is_all_defaults(self, tmp_path):
        config = load_config(write(tmp_path, ""), environ={})
        assert config == DEFAULT_CONFIG

    def test_environment_overrides(self, tmp_path):
        environ = {"CLIENT_ID": "env-id", "CLIENT_SECRET": "env-secret", "BOT_USER_ID": "1", "BOT_USER_NAME": "bot"}
        config = load_config(write(tmp_path, "twitch:\n  client_id: file-id\n"), environ=environ)

        assert config["twitch"] == {"client_id": "env-id", "client_secret": "env-secret"}
        assert config["bot"] == {"user_id": "1", "name": "bot"}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(tmp_path / "missing.yaml", environ={})

    def test_not_a_mapping(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(write(tmp_path, "- a\n- b\n"), environ={})

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(write(tmp_path, "twitch: [unclosed\n"), environ={})

    @pytest.mark.parametrize("section", [
        "token_guardian:\n  interval: 60\n  refresh_threshold: 60\n",
        "token_guardian:\n  interval: 0\n",
        "command_router:\n  poll_interval: 0\n",
        "broadcast:\n  capacity: 0\n",
        "token_guardian:\n  interval: soon\n",
    ])
    def test_invalid_values(self, tmp_path, section):
        with pytest.raises(ConfigError):
            load_config(write(tmp_path, section), environ={})

    def test_example_config_is_valid(self):
        example = Path(__file__).resolve().parent.parent / "config" / "config.example.yaml"
        config = load_config(example, environ={})
        assert config["storage"]["channels"] == "data/channels.json"


@pytest.mark.unit
def test_deep_merge_does_not_mutate_inputs():
    base = {"a": {"b": 1, "c": 2}}
    merged = deep_merge(base, {"a": {"b": 10}})

    assert merged == {"a": {"b": 10, "c": 2}}
    assert base == {"a": {"b": 1, "c": 2}}
