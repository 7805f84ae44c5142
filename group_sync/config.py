"""
Configuration loading and management for Group Sync.

This module handles loading configuration from YAML files and environment
variables, with validation and defaults.
"""

import os
import yaml
import logging
from typing import Dict, Any, List, Optional

from group_sync.exceptions import ConfigurationError
from group_sync.models import ProviderConfig, SyncScope

logger = logging.getLogger(__name__)

PROVIDER_KINDS = ('keycloak', 'azure')


class ConfigLoader:
    """Handles loading and validation of application configuration."""

    # Environment variable overrides for top-level settings
    ENV_OVERRIDES = {
        'secrets_file': 'SECRETS_PATH',
        'logging.level': 'LOG_LEVEL',
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses CONFIG_PATH env var or 'config.yaml'
        """
        self.config_path = config_path or os.getenv('CONFIG_PATH', 'config.yaml')
        self.config = {}

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file and apply environment overrides.

        Returns:
            Parsed and validated configuration dictionary

        Raises:
            ConfigurationError: If config file not found or validation fails
        """
        try:
            with open(self.config_path, 'r') as f:
                self.config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self.config, dict):
            raise ConfigurationError("Configuration file must contain a mapping")

        self._apply_env_overrides()
        self._validate()
        self._apply_defaults()

        logger.info(f"Configuration loaded successfully from {self.config_path}")
        return self.config

    def _apply_env_overrides(self):
        for config_key, env_var in self.ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            if env_value:
                self._set_nested_value(self.config, config_key, env_value)
                logger.debug(f"Applied environment override for {config_key}")

    def _set_nested_value(self, config: Dict, key_path: str, value: Any):
        """Set a nested configuration value using dot notation."""
        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            current = current.setdefault(key, {})
        current[keys[-1]] = value

    def _validate(self):
        """Validate required configuration fields, collecting every problem."""
        errors = []

        providers = self.config.get('providers') or []
        if not providers:
            errors.append("At least one provider must be configured")

        names = set()
        for i, provider in enumerate(providers):
            prefix = f"providers[{i}]"
            if not isinstance(provider, dict):
                errors.append(f"{prefix} must be a mapping")
                continue

            name = provider.get('name')
            if not name:
                errors.append(f"Missing required field {prefix}.name")
            elif name in names:
                errors.append(f"Duplicate provider name '{name}'")
            names.add(name)

            kinds = [kind for kind in PROVIDER_KINDS if kind in provider]
            if len(kinds) != 1:
                errors.append(f"{prefix} must define exactly one of: {', '.join(PROVIDER_KINDS)}")
                continue

            kind = kinds[0]
            settings = provider[kind] or {}
            if kind == 'keycloak':
                for field in ('url', 'realm'):
                    if not settings.get(field):
                        errors.append(f"Missing required field {prefix}.{kind}.{field}")

            secret = settings.get('credentialsSecret') or settings.get('credentials_secret')
            secret_name = secret.get('name') if isinstance(secret, dict) else secret
            if not secret_name:
                errors.append(f"Missing required field {prefix}.{kind}.credentialsSecret.name")

            try:
                SyncScope.parse(settings.get('scope'))
            except ValueError as e:
                errors.append(f"{prefix}.{kind}.scope: {e}")

        output_format = (self.config.get('output') or {}).get('format', 'yaml')
        if output_format not in ('yaml', 'json'):
            errors.append(f"Unknown output format '{output_format}', expected yaml or json")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))

    def _apply_defaults(self):
        """Apply default values for optional configuration fields."""
        logging_defaults = {
            'level': 'INFO',
            'log_dir': 'logs',
            'rotation': 'daily',
            'retention_days': 7,
            'console_output': True,
            'console_level': 'WARNING',
        }
        logging_config = self.config.setdefault('logging', {})
        for key, value in logging_defaults.items():
            logging_config.setdefault(key, value)

        output_config = self.config.setdefault('output', {})
        output_config.setdefault('format', 'yaml')
        output_config.setdefault('path', None)

        self.config.setdefault('secrets_file', None)


def provider_configs(config: Dict[str, Any]) -> List[ProviderConfig]:
    """Build ProviderConfig objects from a loaded configuration."""
    result = []
    for provider in config.get('providers', []):
        kind = next(kind for kind in PROVIDER_KINDS if kind in provider)
        result.append(ProviderConfig.from_dict(provider['name'], kind, provider[kind] or {}))
    return result


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file

    Returns:
        Loaded configuration dictionary
    """
    loader = ConfigLoader(config_path)
    return loader.load()
