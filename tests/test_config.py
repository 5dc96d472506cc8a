"""Tests for archmemory.config."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from archmemory.config import DEFAULT_DB_PATH, Config
from archmemory.errors import ConfigurationError

ENV_KEYS = [
    "ARCHMEMORY_DB_PATH",
    "ANTHROPIC_API_KEY",
    "ARCHMEMORY_EMBEDDING_MODEL",
    "ARCHMEMORY_EMBEDDING_TIMEOUT",
    "ARCHMEMORY_POOL_SIZE",
    "ARCHMEMORY_USER_ID",
    "ARCHMEMORY_LOG_LEVEL",
]


def _clean_env() -> dict:
    return {k: v for k, v in os.environ.items() if k not in ENV_KEYS}


class TestConfigDefaults:
    def test_default_values(self):
        config = Config()
        assert config.db_path == DEFAULT_DB_PATH
        assert config.anthropic_api_key == ""
        assert config.embedding_timeout == 15.0
        assert config.pool_size == 5
        assert config.log_level == "INFO"
        assert config.has_embedding_service is False


class TestConfigLoad:
    def test_load_from_env(self):
        env = {
            "ARCHMEMORY_DB_PATH": "/tmp/memory.db",
            "ANTHROPIC_API_KEY": "sk-ant-test",
            "ARCHMEMORY_EMBEDDING_TIMEOUT": "2.5",
            "ARCHMEMORY_POOL_SIZE": "3",
            "ARCHMEMORY_USER_ID": "dev-1",
            "ARCHMEMORY_LOG_LEVEL": "debug",
        }
        with patch.dict(os.environ, env, clear=False):
            config = Config.load()
        assert config.db_path == Path("/tmp/memory.db")
        assert config.anthropic_api_key == "sk-ant-test"
        assert config.has_embedding_service is True
        assert config.embedding_timeout == 2.5
        assert config.pool_size == 3
        assert config.user_id == "dev-1"
        assert config.log_level == "DEBUG"

    def test_load_defaults_when_env_empty(self):
        with patch.dict(os.environ, _clean_env(), clear=True):
            config = Config.load()
        assert config.db_path == DEFAULT_DB_PATH
        assert config.anthropic_api_key == ""
        assert config.pool_size == 5

    def test_invalid_numbers_fall_back(self):
        env = {"ARCHMEMORY_EMBEDDING_TIMEOUT": "soon", "ARCHMEMORY_POOL_SIZE": "many"}
        with patch.dict(os.environ, env, clear=False):
            config = Config.load()
        assert config.embedding_timeout == 15.0
        assert config.pool_size == 5


class TestConfigValidate:
    def test_valid(self, tmp_path: Path):
        config = Config(db_path=tmp_path / "a.db")
        assert config.validate() == []
        assert config.require() is config

    def test_missing_directory(self, tmp_path: Path):
        issues = Config(db_path=tmp_path / "nope" / "a.db").validate()
        assert any("does not exist" in issue for issue in issues)

    def test_bad_values(self, tmp_path: Path):
        config = Config(
            db_path=tmp_path / "a.db", embedding_timeout=0, pool_size=0, log_level="LOUD"
        )
        assert len(config.validate()) == 3

    def test_require_raises(self, tmp_path: Path):
        with pytest.raises(ConfigurationError) as exc_info:
            Config(db_path=tmp_path / "a.db", pool_size=0).require()
        assert exc_info.value.code == "MISSING_CONFIG"
        assert exc_info.value.context["issues"]
