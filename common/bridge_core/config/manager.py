"""
Configuration Manager for the MQTT graph bridge

This module collects configuration values from built-in defaults, a YAML or
JSON file and environment variables into one nested dictionary. Validation
happens afterwards in config_model.
"""

import os
import copy
import json
import yaml
import logging
from typing import Any, Dict, Optional, Union

from ..errors import ConfigurationError


ENV_PREFIX = "MQTT_BRIDGE_"
ENV_SEPARATOR = "__"


class ConfigManager:
    """
    Loads and gives access to the bridge configuration.

    Sources, later ones override earlier ones:
    - built-in defaults
    - configuration file (YAML or JSON)
    - environment variables MQTT_BRIDGE_<SECTION>__<KEY>

    Attributes:
        config_path (str): Path to the configuration file
        config (dict): The loaded configuration dictionary
    """

    DEFAULT_LOCATIONS = (
        os.path.join(os.getcwd(), 'bridge.yaml'),
        os.path.join(os.getcwd(), 'bridge.yml'),
        os.path.expanduser('~/.mqtt_graph_bridge/config.yaml'),
        '/etc/mqtt_graph_bridge/config.yaml',
    )

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        """
        Initialize the ConfigManager.

        Args:
            config_path: Path to the configuration file. If None, uses default locations.
            environ: Environment mapping (default: os.environ)
        """
        self.logger = logging.getLogger(__name__)
        self.environ = os.environ if environ is None else environ

        if config_path is None:
            for path in self.DEFAULT_LOCATIONS:
                if os.path.exists(path):
                    config_path = path
                    break

        self.config_path = config_path
        self.config = self._get_default_config()

        if config_path:
            self._load_config()

        self._load_env_vars()
        self._validate_config()

    def _get_default_config(self) -> Dict[str, Any]:
        """
        Get the default configuration.

        Source and reaction sections have required fields and no defaults.
        """
        return {
            "mqtt": {
                "broker": "localhost",
                "port": 1883,
                "username": None,
                "password": None,
                "keepalive": 60,
                "qos": 1,
            },
            "logging": {
                "level": "INFO",
                "file": None,
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            },
        }

    def _load_config(self):
        """
        Load configuration from file.

        Raises:
            ConfigurationError: File missing, unreadable or in an unsupported format
        """
        if not os.path.exists(self.config_path):
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                if self.config_path.endswith(('.yaml', '.yml')):
                    loaded_config = yaml.safe_load(f)
                elif self.config_path.endswith('.json'):
                    loaded_config = json.load(f)
                else:
                    raise ConfigurationError(f"Unsupported config file format: {self.config_path}")
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Error loading configuration from {self.config_path}: {e}") from e

        if loaded_config is None:
            return
        if not isinstance(loaded_config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self.config_path}")

        self.config = self._update_nested_dict(self.config, loaded_config)
        self.logger.info(f"Loaded configuration from {self.config_path}")

    def _load_env_vars(self):
        """Load configuration from environment variables."""
        for key, value in self.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            # MQTT_BRIDGE_SOURCE__ID_FIELD -> ["source", "id_field"]
            config_path = [part.lower() for part in key[len(ENV_PREFIX):].split(ENV_SEPARATOR) if part]
            if not config_path:
                continue

            self.set(config_path, self._parse_env_value(value))
            self.logger.debug(f"Set config {'.'.join(config_path)} from environment variable {key}")

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Interprets an environment string as JSON, bool or plain string."""
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            pass

        if value.lower() in ('true', 'yes', 'y'):
            return True
        if value.lower() in ('false', 'no', 'n'):
            return False
        return value

    def _validate_config(self):
        """Fill in defaults for missing mandatory values."""
        defaults = self._get_default_config()
        for section in ("mqtt", "logging"):
            if not isinstance(self.config.get(section), dict):
                self.config[section] = defaults[section]
                self.logger.warning(f"Missing config section '{section}'. Using defaults.")

        mqtt_config = self.config["mqtt"]
        if not mqtt_config.get("broker"):
            mqtt_config["broker"] = "localhost"
            self.logger.warning("MQTT broker not specified. Using 'localhost'.")

        if not mqtt_config.get("port"):
            mqtt_config["port"] = 1883
            self.logger.warning("MQTT port not specified. Using default port 1883.")

    def get(self, path: Union[str, list], default: Any = None) -> Any:
        """
        Get a configuration value by path.

        Args:
            path: Dot-notation string or list of keys
            default: Default value if path doesn't exist

        Returns:
            The configuration value or default
        """
        if isinstance(path, str):
            path = path.split('.')

        current = self.config
        for key in path:
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default

        return current

    def set(self, path: Union[str, list], value: Any):
        """
        Set a configuration value by path.

        Args:
            path: Dot-notation string or list of keys
            value: Value to set
        """
        if isinstance(path, str):
            path = path.split('.')

        current = self.config
        for key in path[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]

        current[path[-1]] = value

    def _update_nested_dict(self, d: dict, u: dict) -> dict:
        """
        Update a nested dictionary with another dictionary.

        Args:
            d: Base dictionary
            u: Dictionary with updates

        Returns:
            Updated dictionary
        """
        for k, v in u.items():
            if isinstance(v, dict) and k in d and isinstance(d[k], dict):
                d[k] = self._update_nested_dict(d[k], v)
            else:
                d[k] = v
        return d

    def to_dict(self) -> Dict[str, Any]:
        """
        Get the entire configuration as a dictionary.

        Returns:
            A deep copy of the configuration dictionary
        """
        return copy.deepcopy(self.config)
