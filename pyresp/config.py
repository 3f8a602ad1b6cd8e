"""Configuration management for PyResp."""

import os
import json
import yaml
from typing import Dict, Optional, Any


def _as_bool(value: str) -> bool:
    return value.lower() == "true"


class Config:
    """Configuration manager with file and environment variable support."""

    ENV_MAPPINGS = {
        "SERVER_HOST": ("server", "host"),
        "SERVER_PORT": ("server", "port", int),
        "MAX_CONNECTIONS": ("server", "max_connections", int),
        "IDLE_TIMEOUT": ("server", "idle_timeout", float),
        "READ_CHUNK_SIZE": ("protocol", "read_chunk_size", int),
        "MAX_BUFFER_SIZE": ("protocol", "max_buffer_size", int),
        "LOG_LEVEL": ("logging", "level", str.upper),
        "TLS_ENABLED": ("security", "tls_enabled", _as_bool),
        "TLS_CERT_FILE": ("security", "tls_cert_file"),
        "TLS_KEY_FILE": ("security", "tls_key_file"),
        "PROMETHEUS_ENABLED": ("monitoring", "prometheus_enabled", _as_bool),
        "PROMETHEUS_PORT": ("monitoring", "prometheus_port", int),
        "API_PORT": ("api", "port", int),
    }

    def __init__(self, config_file: Optional[str] = None):
        self.config: Dict[str, Any] = {}
        self.config_file = config_file or os.getenv('PYRESP_CONFIG', 'pyresp.yaml')
        self._load_config()
        self._load_env_overrides()

    def _load_config(self):
        """Load configuration from file, layered over the defaults."""
        self._set_defaults()
        if not os.path.exists(self.config_file):
            return

        try:
            with open(self.config_file, 'r') as f:
                if self.config_file.endswith('.yaml') or self.config_file.endswith('.yml'):
                    loaded = yaml.safe_load(f) or {}
                elif self.config_file.endswith('.json'):
                    loaded = json.load(f)
                else:
                    return
        except (OSError, yaml.YAMLError, json.JSONDecodeError):
            return

        if not isinstance(loaded, dict):
            return
        for section, values in loaded.items():
            if isinstance(values, dict):
                self.config.setdefault(section, {}).update(values)
            else:
                self.config[section] = values

    def _set_defaults(self):
        """Set default configuration values."""
        self.config = {
            "server": {
                "host": "0.0.0.0",
                "port": 6379,
                "max_connections": 1000,
                "idle_timeout": 300.0,
                "shutdown_timeout": 30.0
            },
            "protocol": {
                "read_chunk_size": 512,
                "max_buffer_size": 512 * 1024 * 1024
            },
            "logging": {
                "level": "INFO"
            },
            "security": {
                "tls_enabled": False,
                "tls_cert_file": None,
                "tls_key_file": None
            },
            "monitoring": {
                "prometheus_enabled": False,
                "prometheus_port": 9090,
                "metrics_interval": 10
            },
            "api": {
                "port": 8080
            }
        }

    def _load_env_overrides(self):
        """Override config with environment variables."""
        for env_key, (section, key, *converters) in self.ENV_MAPPINGS.items():
            value = os.getenv(env_key)
            if value is not None:
                if converters:
                    converter = converters[0]
                    try:
                        value = converter(value)
                    except (ValueError, TypeError):
                        continue
                if section not in self.config:
                    self.config[section] = {}
                self.config[section][key] = value

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self.config.get(section, {}).get(key, default)

    def set(self, section: str, key: str, value: Any):
        """Set configuration value."""
        if section not in self.config:
            self.config[section] = {}
        self.config[section][key] = value

    def save(self, filename: Optional[str] = None):
        """Save configuration to file."""
        target_file = filename or self.config_file
        with open(target_file, 'w') as f:
            if target_file.endswith('.yaml') or target_file.endswith('.yml'):
                yaml.dump(self.config, f, default_flow_style=False)
            else:
                json.dump(self.config, f, indent=2)

    def validate(self) -> tuple[bool, list[str]]:
        """Validate configuration."""
        errors = []

        port = self.get("server", "port")
        if not isinstance(port, int) or port < 0 or port > 65535:
            errors.append("Invalid server port")

        if (self.get("protocol", "read_chunk_size") or 0) < 1:
            errors.append("read_chunk_size must be positive")

        if (self.get("protocol", "max_buffer_size") or 0) < 1:
            errors.append("max_buffer_size must be positive")

        if (self.get("server", "max_connections") or 0) < 1:
            errors.append("max_connections must be positive")

        if self.get("security", "tls_enabled"):
            cert_file = self.get("security", "tls_cert_file")
            key_file = self.get("security", "tls_key_file")
            if not cert_file or not key_file:
                errors.append("TLS enabled but certificate files not provided")
            elif not os.path.exists(cert_file):
                errors.append(f"TLS certificate file not found: {cert_file}")
            elif not os.path.exists(key_file):
                errors.append(f"TLS key file not found: {key_file}")

        return len(errors) == 0, errors
