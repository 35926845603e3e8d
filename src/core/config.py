"""
Configuration Management System for SOS Beacon

Handles loading configuration from environment variables, config files,
and provides validation and runtime overrides.
"""

import os
import json
import yaml
from typing import Any, Dict, List, Optional, Callable
from pathlib import Path
from dataclasses import dataclass

from .logging import get_logger


@dataclass
class ConfigSource:
    """Configuration source definition"""
    name: str
    priority: int
    loader: Callable
    path: Optional[str] = None


class ConfigurationError(Exception):
    """Configuration-related errors"""
    pass


class ConfigurationManager:
    """
    Manages system configuration with support for multiple sources,
    validation, and runtime updates.
    """

    def __init__(self, config_dir: str = "config"):
        self.config_dir = Path(config_dir)
        self.config: Dict[str, Any] = {}
        self.sources: List[ConfigSource] = []
        self.logger = get_logger("config")

        # Default configuration values
        self.defaults = {
            "app": {
                "name": "SOS Beacon",
                "version": "1.0.0",
                "debug": False,
                "log_level": "INFO"
            },
            "api": {
                "base_url": "http://localhost:8000",
                "timeout": 30,
                "max_retries": 0,
                "endpoints": {
                    "active_alert": "/api/sos/active",
                    "create_alert": "/api/sos",
                    "cancel_alert": "/api/sos/cancel",
                    "heartbeat": "/api/locations/heartbeat",
                    "signin": "/api/auth/signin",
                    "me": "/api/me"
                }
            },
            "location": {
                "fetch_timeout": 10,
                "high_accuracy": True,
                "max_cache_age_ms": 0,
                "replay_file": None,
                "replay_interval": 5
            },
            "sos": {
                "cancel_reason": "user safe"
            },
            "session": {
                "credentials_file": "~/.sosbeacon/credentials.json"
            },
            "logging": {
                "level": "INFO",
                "file": "~/.sosbeacon/logs/sosbeacon.log",
                "max_size": "10MB",
                "backup_count": 5,
                "console": True,
                "console_level": "WARNING"
            }
        }

        self._setup_sources()

    def _setup_sources(self):
        """Set up configuration sources in priority order"""
        # Environment variables (highest priority)
        self.sources.append(ConfigSource(
            name="environment",
            priority=4,
            loader=self._load_from_env
        ))

        # Local config file
        local_config_path = str(self.config_dir / "config.yaml")
        self.sources.append(ConfigSource(
            name="local_config",
            priority=3,
            loader=lambda: self._load_from_file(local_config_path),
            path=local_config_path
        ))

        # Default config file
        default_config_path = str(self.config_dir / "default.yaml")
        self.sources.append(ConfigSource(
            name="default_config",
            priority=2,
            loader=lambda: self._load_from_file(default_config_path),
            path=default_config_path
        ))

        # Built-in defaults (lowest priority)
        self.sources.append(ConfigSource(
            name="defaults",
            priority=1,
            loader=lambda: self.defaults
        ))

    def load_config(self) -> None:
        """Load configuration from all sources"""
        self.logger.info("Loading configuration from all sources")

        merged_config = {}

        # Load from each source, lowest priority first
        for source in sorted(self.sources, key=lambda x: x.priority):
            try:
                source_config = source.loader()
                if source_config:
                    merged_config = self._deep_merge(merged_config, source_config)
                    self.logger.debug(f"Loaded configuration from {source.name}")
            except Exception as e:
                self.logger.warning(f"Failed to load config from {source.name}: {e}")

        self.config = merged_config
        self._validate_config()
        self.logger.info("Configuration loaded successfully")

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables"""
        config = {}

        env_mappings = {
            "SOSBEACON_DEBUG": "app.debug",
            "SOSBEACON_LOG_LEVEL": "logging.level",
            "SOSBEACON_API_URL": "api.base_url",
            "SOSBEACON_API_TIMEOUT": "api.timeout",
            "SOSBEACON_CREDENTIALS_FILE": "session.credentials_file",
            "SOSBEACON_REPLAY_FILE": "location.replay_file"
        }

        for env_var, config_key in env_mappings.items():
            value = os.getenv(env_var)
            if value is not None:
                # Convert string values to appropriate types
                if value.lower() in ('true', 'false'):
                    value = value.lower() == 'true'
                elif value.isdigit():
                    value = int(value)
                elif config_key == "api.timeout":
                    try:
                        value = float(value)
                    except ValueError:
                        pass

                self._set_nested_value(config, config_key, value)

        return config

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from YAML or JSON file"""
        path = Path(file_path)

        if not path.exists():
            return {}

        try:
            with open(path, 'r') as f:
                if path.suffix.lower() in ['.yaml', '.yml']:
                    return yaml.safe_load(f) or {}
                elif path.suffix.lower() == '.json':
                    return json.load(f)
                else:
                    self.logger.warning(f"Unsupported config file format: {path}")
                    return {}
        except Exception as e:
            self.logger.error(f"Error loading config file {path}: {e}")
            return {}

    def _deep_merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dictionaries"""
        result = base.copy()

        for key, value in override.items():
            if isinstance(value, dict):
                existing = result.get(key)
                result[key] = self._deep_merge(existing if isinstance(existing, dict) else {}, value)
            else:
                result[key] = value

        return result

    def _set_nested_value(self, config: Dict, key_path: str, value: Any) -> None:
        """Set a nested configuration value using dot notation"""
        keys = key_path.split('.')
        current = config

        for key in keys[:-1]:
            if key not in current:
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def _validate_config(self) -> None:
        """Validate configuration values"""
        errors = []

        for section in ['app', 'api', 'location', 'sos', 'session']:
            if section not in self.config:
                errors.append(f"Missing required configuration section: {section}")

        base_url = self.get('api.base_url')
        if not isinstance(base_url, str) or not base_url.startswith(('http://', 'https://')):
            errors.append(f"Invalid API base URL: {base_url}")

        for key in ('api.timeout', 'location.fetch_timeout'):
            value = self.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                errors.append(f"Invalid {key}: {value}")

        max_retries = self.get('api.max_retries', 0)
        if isinstance(max_retries, bool) or not isinstance(max_retries, int) or max_retries < 0:
            errors.append(f"Invalid api.max_retries: {max_retries}")

        log_level = self.get('logging.level', 'INFO')
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if str(log_level).upper() not in valid_levels:
            errors.append(f"Invalid log level: {log_level}")

        if errors:
            raise ConfigurationError(f"Configuration validation failed: {'; '.join(errors)}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value using dot notation"""
        keys = key.split('.')
        current = self.config

        try:
            for k in keys:
                current = current[k]
            return current
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """Set configuration value using dot notation"""
        self._set_nested_value(self.config, key, value)

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get entire configuration section"""
        return self.get(section, {})

    def get_endpoints(self) -> Dict[str, str]:
        """Get backend endpoint paths"""
        return self.get('api.endpoints', {})

    def get_credentials_file(self) -> str:
        return os.path.expanduser(self.get('session.credentials_file'))
