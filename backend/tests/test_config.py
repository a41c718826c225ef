"""Tests for YAML configuration loading."""

import pydantic
import pytest
import yaml

from app.config import AppConfig, ChatSettings, load_config


def write_yaml(path, data):
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestLoadConfig:
    """Tests for load_config()."""

    def test_missing_files_give_defaults(self, tmp_path):
        config = load_config(tmp_path / "chat.settings.yaml")

        assert config.server.port == 3000
        assert config.chat.default_room == "general"
        assert config.chat.history_limit == 50
        assert config.profile.max_avatar_image_chars == 700_000
        assert config.store.db_path == str(tmp_path / "chat.duckdb")

    def test_settings_and_secrets_are_merged(self, tmp_path):
        settings = write_yaml(tmp_path / "chat.settings.yaml", {
            "server": {"port": 8080},
            "chat": {"public_rooms": ["general", "random"]},
            "admin": {"usernames": ["root"]},
        })
        write_yaml(tmp_path / "chat.secrets.yaml", {"jwt": {"secret_key": "abc"}})

        config = load_config(settings)

        assert config.server.port == 8080
        assert config.admin.usernames == ["root"]
        assert config.secrets.jwt.secret_key == "abc"
        assert config.secrets.jwt.algorithm == "HS256"

    def test_relative_db_path_resolved_against_settings_dir(self, tmp_path):
        settings = write_yaml(tmp_path / "chat.settings.yaml", {
            "store": {"db_path": "data/chat.duckdb"},
        })
        assert load_config(settings).store.db_path == str(tmp_path / "data" / "chat.duckdb")

    def test_absolute_and_memory_db_paths_kept(self, tmp_path):
        absolute = tmp_path / "elsewhere.duckdb"
        settings = write_yaml(tmp_path / "a.yaml", {"store": {"db_path": str(absolute)}})
        assert load_config(settings).store.db_path == str(absolute)

        settings = write_yaml(tmp_path / "b.yaml", {"store": {"db_path": ":memory:"}})
        assert load_config(settings).store.db_path == ":memory:"

    def test_explicit_secrets_path(self, tmp_path):
        settings = write_yaml(tmp_path / "chat.settings.yaml", {})
        secrets = write_yaml(tmp_path / "other.yaml", {"jwt": {"secret_key": "xyz"}})
        assert load_config(settings, secrets).secrets.jwt.secret_key == "xyz"


class TestSettingsModels:
    """Tests for validation on the settings models."""

    def test_public_room_may_not_look_like_a_dm(self):
        with pytest.raises(pydantic.ValidationError):
            ChatSettings(public_rooms=["general", "dm:1:2"])

    def test_history_limit_bounds(self):
        with pytest.raises(pydantic.ValidationError):
            ChatSettings(history_limit=0)

    def test_rooms_lists_default_room_first_once(self):
        config = AppConfig(chat=ChatSettings(default_room="lobby", public_rooms=["random", "lobby"]))
        assert config.rooms == ["lobby", "random"]
