"""Shared fixtures for ConfigManager tests."""

import json
import logging
import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))

from study_planner.config_manager.config_manager import ConfigManager

_DEFAULT_ENV_VAR_MAP = dict(ConfigManager._env_var_map)
_DEFAULT_BASE_FILENAME = ConfigManager._base_config_filename


def reset_config_manager_singleton():
    """Resets the ConfigManager singleton instance and its class-level state."""
    ConfigManager._instance = None
    ConfigManager._config_dir = None
    ConfigManager._config = None
    ConfigManager._env_var_map = dict(_DEFAULT_ENV_VAR_MAP)
    ConfigManager._base_config_filename = _DEFAULT_BASE_FILENAME


@pytest.fixture(autouse=True)
def reset_singleton_before_each_test():
    """Fixture to automatically reset the ConfigManager singleton around each test."""
    reset_config_manager_singleton()
    yield
    reset_config_manager_singleton()


@pytest.fixture
def temp_config_dir(tmp_path):
    """Creates a temporary directory for config files."""
    config_dir = tmp_path / "config_test_dir"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def base_config_content():
    """Provides base configuration data."""
    return {
        "ai": {
            "provider": "openai",
            "api_key": "",
            "request_timeout": 60,
            "retry_on_status_codes": [429, 500, 502, 503, 504],
        },
        "planner": {"daily_study_minutes": 120},
        "storage": {"db_path": "data/study_planner.db"},
        "monitoring": {"logging": {"level": "INFO", "console": True}},
    }


@pytest.fixture
def env_specific_config_content():
    """Provides environment-specific configuration data for overrides."""
    return {
        "ai": {
            "provider": "deepseek",
            "retry_on_status_codes": [429],
        },
        "planner": {"daily_study_minutes": 90},
        "monitoring": {"logging": {"level": "DEBUG"}},
        "api": {"port": 9000},
    }


def write_json(path, content):
    with open(path, "w", encoding="utf-8") as f:
        json.dump(content, f)
    return path


@pytest.fixture
def create_base_config_file(temp_config_dir, base_config_content):
    """Creates a base config.json file in the temp_config_dir."""
    return write_json(temp_config_dir / "config.json", base_config_content)


@pytest.fixture
def create_env_specific_config_file(temp_config_dir, env_specific_config_content):
    """Creates an environment-specific config file (config.test_env.json)."""
    env_name = "test_env"
    path = write_json(temp_config_dir / f"config.{env_name}.json", env_specific_config_content)
    return path, env_name


@pytest.fixture
def create_invalid_json_file(temp_config_dir):
    """Creates a file with invalid JSON content."""
    invalid_file_path = temp_config_dir / "invalid_config.json"
    with open(invalid_file_path, "w") as f:
        f.write("this is not valid json {")
    return invalid_file_path


@pytest.fixture(autouse=True)
def propagate_package_logs(monkeypatch):
    """MonitoringManager detaches the package logger from root; caplog listens on root."""
    monkeypatch.setattr(logging.getLogger("study_planner"), "propagate", True)
