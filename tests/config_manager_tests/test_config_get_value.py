"""Unit tests for ConfigManager - Get Config Value aspects."""

import logging

from study_planner.config_manager.config_manager import ConfigManager


def test_get_config_existing_top_level_key(temp_config_dir, create_base_config_file, base_config_content):
    cm = ConfigManager(config_dir=str(temp_config_dir))
    assert cm.get_config("planner") == base_config_content["planner"]


def test_get_config_existing_nested_key(temp_config_dir, create_base_config_file, base_config_content):
    cm = ConfigManager(config_dir=str(temp_config_dir))
    assert cm.get_config("ai.provider") == "openai"
    assert cm.get_config("planner.daily_study_minutes") == 120
    assert cm.get_config("monitoring.logging.console") is True


def test_get_config_non_existent_key_no_default(temp_config_dir, create_base_config_file):
    cm = ConfigManager(config_dir=str(temp_config_dir))
    assert cm.get_config("this_key_does_not_exist") is None
    assert cm.get_config("ai.this_nested_key_does_not_exist") is None


def test_get_config_non_existent_key_with_default(temp_config_dir, create_base_config_file):
    cm = ConfigManager(config_dir=str(temp_config_dir))
    assert cm.get_config("api.port", 8000) == 8000
    assert cm.get_config("ai.retry_delay", 5) == 5


def test_get_config_path_through_scalar_returns_default(temp_config_dir, create_base_config_file):
    cm = ConfigManager(config_dir=str(temp_config_dir))
    assert cm.get_config("ai.provider.name", "fallback") == "fallback"


def test_get_config_key_points_to_dict_with_default_ignored(temp_config_dir, create_base_config_file, base_config_content):
    cm = ConfigManager(config_dir=str(temp_config_dir))
    assert cm.get_config("storage", default_value="should_be_ignored") == base_config_content["storage"]


def test_get_config_falsy_values_are_returned(temp_config_dir, create_base_config_file):
    cm = ConfigManager(config_dir=str(temp_config_dir))
    assert cm.get_config("ai.api_key", "default_key") == ""


def test_get_config_with_empty_key_string(temp_config_dir, create_base_config_file):
    cm = ConfigManager(config_dir=str(temp_config_dir))
    assert cm.get_config("", "default_for_empty") == "default_for_empty"
    assert cm.get_config("") == cm._config


def test_values_are_not_logged_on_get_config(temp_config_dir, create_base_config_file, caplog):
    caplog.set_level(logging.INFO)
    cm = ConfigManager(config_dir=str(temp_config_dir))
    caplog.clear()

    cm.get_config("storage.db_path")
    cm.get_config("non_existent_secret", "default_secret_val")

    for record in caplog.records:
        assert "study_planner.db" not in record.getMessage()
        assert "default_secret_val" not in record.getMessage()
