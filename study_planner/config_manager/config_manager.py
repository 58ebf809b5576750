# -*- coding: utf-8 -*-
"""配置管理器 (ConfigManager) 的主实现文件。

从 config.json、按 APP_ENV 区分的 config.<env>.json 以及环境变量
加载并合并学习计划助手的配置，通过点号路径统一对外提供配置项。
"""
import copy
import json
import logging
import os

logger = logging.getLogger(__name__)


class ConfigManager:
    _instance = None
    _config = None
    _config_dir = None
    _base_config_filename = "config.json"
    _env_var_map = {  # config key path (dot notation) -> environment variable
        "ai.provider": "STUDY_PLANNER_AI_PROVIDER",
        "ai.api_key": "STUDY_PLANNER_AI_API_KEY",
        "ai.base_url": "STUDY_PLANNER_AI_BASE_URL",
        "storage.db_path": "STUDY_PLANNER_DB_PATH",
    }
    # mapped keys whose environment values are never coerced to bool or number
    _string_keys = frozenset({"ai.provider", "ai.api_key", "ai.base_url", "ai.model", "storage.db_path"})

    def __new__(cls, config_dir=None):
        """
        Returns the single ConfigManager instance.
        The first instantiation fixes the config directory (defaults to the CWD);
        later calls with a different directory are ignored with a warning.
        """
        if cls._instance is None:
            cls._instance = super(ConfigManager, cls).__new__(cls)
            cls._config_dir = os.path.abspath(config_dir or os.getcwd())
            logger.info(f"ConfigManager initializing with config directory: {cls._config_dir}")
            cls._instance._load_config()
        elif config_dir:
            new_abs_config_dir = os.path.abspath(config_dir)
            if cls._config_dir != new_abs_config_dir:
                logger.warning(
                    f"ConfigManager already initialized with config directory {cls._config_dir}. "
                    f"Ignoring attempt to re-initialize with {new_abs_config_dir}. "
                    "Use reload_config() to change it explicitly."
                )
        return cls._instance

    @classmethod
    def _get_config_path(cls, filename):
        if not cls._config_dir:
            cls._config_dir = os.path.abspath(os.getcwd())
            logger.warning(f"Config directory was not set, falling back to CWD: {cls._config_dir}")
        return os.path.join(cls._config_dir, filename)

    @staticmethod
    def _deep_merge(source, destination):
        """Deeply merges source into destination (in place). Lists are replaced, not merged."""
        for key, value in source.items():
            if isinstance(value, dict):
                node = destination.setdefault(key, {})
                if isinstance(node, dict):
                    ConfigManager._deep_merge(value, node)
                else:
                    destination[key] = copy.deepcopy(value)
            elif isinstance(value, list):
                destination[key] = copy.deepcopy(value)
            else:
                destination[key] = value
        return destination

    def _read_json_file(self, path, required_label):
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            logger.info(f"Loaded {required_label} config from {path}")
            return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            logger.info(f"{required_label.capitalize()} config file not found at {path}.")
        except json.JSONDecodeError as e:
            logger.error(f"Could not decode JSON from {path}: {e}. Ignoring this file.")
        except OSError as e:
            logger.error(f"Could not read config file {path}: {e}. Ignoring this file.")
        return {}

    def _load_config(self):
        """Loads the base file, overlays the APP_ENV specific file and stores the merged result."""
        base_config = self._read_json_file(
            self._get_config_path(self._base_config_filename), "base"
        )

        app_env = os.environ.get("APP_ENV")
        env_config = {}
        if app_env:
            stem = os.path.splitext(self._base_config_filename)[0]
            env_config = self._read_json_file(
                self._get_config_path(f"{stem}.{app_env}.json"), "environment"
            )

        merged_config = copy.deepcopy(base_config)
        self._deep_merge(env_config, merged_config)
        self.__class__._config = merged_config

        if isinstance(merged_config.get("ENV_VAR_MAP"), dict):
            self.__class__._env_var_map = merged_config["ENV_VAR_MAP"]
            logger.info("Environment variable map replaced from configuration file.")

        logger.info(f"Configuration loaded. APP_ENV='{app_env}'. Priority: Env Vars > Env File > Base File.")

    def reload_config(self, config_dir=None, base_filename=None, app_env_override=None):
        """
        Reloads the configuration, optionally switching directory, base filename,
        or APP_ENV for the duration of this load. Intended for tests and tooling.
        """
        original_env = os.environ.get("APP_ENV")
        if app_env_override:
            os.environ["APP_ENV"] = app_env_override

        if config_dir:
            self.__class__._config_dir = os.path.abspath(config_dir)
        if base_filename:
            self.__class__._base_config_filename = base_filename

        try:
            self._load_config()
        finally:
            if app_env_override:
                if original_env is None:
                    del os.environ["APP_ENV"]
                else:
                    os.environ["APP_ENV"] = original_env

    @staticmethod
    def _convert_env_value(raw):
        if raw.lower() == "true":
            return True
        if raw.lower() == "false":
            return False
        for cast in (int, float):
            try:
                return cast(raw)
            except ValueError:
                continue
        return raw

    def get_config(self, key, default_value=None):
        """
        Retrieves a configuration value.

        Mapped environment variables win over file values; nested keys use dot
        notation (e.g. "ai.api_key"). An empty key returns the whole configuration.

        Args:
            key (str): The configuration key.
            default_value: Returned when the key is missing. Defaults to None.
        """
        env_var_name = (self.__class__._env_var_map or {}).get(key)
        if env_var_name:
            env_value = os.environ.get(env_var_name)
            if env_value is not None:
                logger.info(f"Configuration '{key}' overridden by environment variable '{env_var_name}'.")
                if key in self.__class__._string_keys:
                    return env_value
                return self._convert_env_value(env_value)

        if self.__class__._config is None:
            logger.warning("Config accessed before it was loaded. Loading now.")
            self._load_config()

        if key == "":
            return default_value if default_value is not None else self.__class__._config

        value = self.__class__._config
        try:
            for k in key.split("."):
                if not isinstance(value, dict):
                    raise KeyError(k)
                value = value[k]
            return value
        except KeyError:
            logger.debug(f"Configuration key '{key}' not found, using default.")
            return default_value
