"""Configuration loader with YAML support and environment variable substitution."""

import copy
import os
import re
from typing import Any, Dict
from urllib.parse import urlparse

import yaml

DEFAULT_CONFIG: Dict[str, Any] = {
    'theme': {
        'path': '',
        'file_name': 'theme.wechat.json',
    },
    'images': {
        'directory': '',
        'inline_size_limit': 500 * 1024,
        'image_service_url': '',
        'request_timeout': 30,
        'progress_bars': True,
    },
    'export': {
        'output_directory': './publish-output',
        'rewrite_all_occurrences': False,
    },
    'logging': {
        'level': 'WARNING',
        'file': '',
    },
}

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class ConfigLoader:
    """Handles loading and validation of configuration files."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}')

    @classmethod
    def load(cls, config_path: str) -> Dict[str, Any]:
        """
        Load configuration from YAML file with environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Parsed configuration dictionary, layered over the defaults

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
            ValueError: If the file does not hold a mapping
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if config_data is None:
            config_data = {}
        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a dictionary")

        config_data = cls._substitute_env_vars_recursive(config_data)

        return cls.with_defaults(config_data)

    @classmethod
    def with_defaults(cls, config: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of the defaults with the given configuration layered on top."""
        return _deep_merge(copy.deepcopy(DEFAULT_CONFIG), config)

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate configuration values.

        Args:
            config: Configuration dictionary to validate

        Raises:
            ValueError: If validation fails
        """
        theme_path = get_nested(config, 'theme.path', '')
        if theme_path is not None and not isinstance(theme_path, str):
            raise ValueError("theme.path must be a string")

        file_name = get_nested(config, 'theme.file_name', 'theme.wechat.json')
        if not isinstance(file_name, str) or not file_name.strip():
            raise ValueError("theme.file_name must be a non-empty string")

        limit = get_nested(config, 'images.inline_size_limit', 500 * 1024)
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValueError("images.inline_size_limit must be a positive integer")

        timeout = get_nested(config, 'images.request_timeout', 30)
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("images.request_timeout must be a positive number")

        progress_bars = get_nested(config, 'images.progress_bars', True)
        if not isinstance(progress_bars, bool):
            raise ValueError("images.progress_bars must be a boolean")

        directory = get_nested(config, 'images.directory')
        if directory and not os.path.isdir(directory):
            raise ValueError(f"images.directory '{directory}' is not a valid directory")

        service_url = get_nested(config, 'images.image_service_url')
        if service_url:
            cls._validate_url(service_url, 'images.image_service_url')

        output_dir = get_nested(config, 'export.output_directory')
        if output_dir and os.path.exists(output_dir) and not os.path.isdir(output_dir):
            raise ValueError(f"export.output_directory '{output_dir}' is not a directory")

        rewrite_all = get_nested(config, 'export.rewrite_all_occurrences', False)
        if not isinstance(rewrite_all, bool):
            raise ValueError("export.rewrite_all_occurrences must be a boolean")

        level = get_nested(config, 'logging.level', 'WARNING')
        if not isinstance(level, str) or level.upper() not in LOG_LEVELS:
            raise ValueError(f"logging.level must be one of: {list(LOG_LEVELS)}")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """
        Merge configuration file with CLI arguments.
        CLI arguments take precedence over config file values.

        Args:
            config: Base configuration dictionary
            args: CLI arguments with attributes matching config keys

        Returns:
            Merged configuration dictionary
        """
        merged = copy.deepcopy(config)

        for section in ('theme', 'images', 'export', 'logging'):
            if not isinstance(merged.get(section), dict):
                merged[section] = {}

        if getattr(args, 'theme', None):
            merged['theme']['path'] = args.theme

        if getattr(args, 'images_dir', None):
            merged['images']['directory'] = args.images_dir

        if getattr(args, 'timeout', None):
            merged['images']['request_timeout'] = args.timeout

        if getattr(args, 'no_progress', False):
            merged['images']['progress_bars'] = False

        if getattr(args, 'output', None):
            merged['export']['output_directory'] = args.output

        if getattr(args, 'rewrite_all', False):
            merged['export']['rewrite_all_occurrences'] = True

        if getattr(args, 'log_file', None):
            merged['logging']['file'] = args.log_file

        verbose = getattr(args, 'verbose', 0) or 0
        if verbose >= 2:
            merged['logging']['level'] = 'DEBUG'
        elif verbose == 1:
            merged['logging']['level'] = 'INFO'

        return merged

    @classmethod
    def _substitute_env_vars_recursive(cls, data: Any) -> Any:
        """Recursively substitute environment variables in data structure."""
        if isinstance(data, dict):
            return {key: cls._substitute_env_vars_recursive(value) for key, value in data.items()}
        elif isinstance(data, list):
            return [cls._substitute_env_vars_recursive(item) for item in data]
        elif isinstance(data, str):
            return cls._substitute_env_vars(data)
        else:
            return data

    @classmethod
    def _substitute_env_vars(cls, value: str) -> str:
        """Substitute environment variables in a string value."""
        def replace_match(match):
            env_value = os.getenv(match.group(1))
            return env_value if env_value is not None else match.group(0)

        return cls.ENV_VAR_PATTERN.sub(replace_match, value)

    @staticmethod
    def _validate_url(url: str, field_name: str) -> None:
        """Validate URL format."""
        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValueError(f"Invalid URL for {field_name}: {url}. Error: {str(e)}") from e
        if parsed.scheme not in ('http', 'https'):
            raise ValueError(f"{field_name} must use http or https scheme: {url}")
        if not parsed.netloc:
            raise ValueError(f"{field_name} missing hostname: {url}")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "images.inline_size_limit")
        default: Default value if path doesn't exist

    Returns:
        Value at the nested path or default
    """
    value = config

    for key in path.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value


__all__ = ['ConfigLoader', 'DEFAULT_CONFIG', 'get_nested']
