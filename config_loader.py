"""Configuration loader with YAML support and environment variable substitution."""

import copy
import os
import re
from typing import Any, Dict, List

import yaml

PLACEHOLDER_CREDENTIALS = {'key', 'token'}

EXPORT_FLAGS = [
    'remove_emoji',
    'always_use_forward_slashes',
    'single_file',
    'numbering',
    'ignore_failed_attachment_downloads',
    'scope_duplicates_by_archived_state',
    'keep_json_backups'
]

CONFIG_TEMPLATE = """\
# Trello to Markdown backup configuration.
#
# Get an API key at https://trello.com/power-ups/admin (create a Power-Up, then
# "Generate a new API key"), then authorize a read-only token by opening:
#   https://trello.com/1/authorize?name=Trello%20To%20Markdown&expiration=never&scope=read&response_type=token&key=<key>
# Values like ${TRELLO_API_KEY} are read from the environment.

trello:
  api_key: ${TRELLO_API_KEY}
  api_token: ${TRELLO_API_TOKEN}
  request_timeout: 60

export:
  output_directory: ./backup
  max_card_filename_title_length: 40
  remove_emoji: false
  always_use_forward_slashes: false
  single_file: false
  numbering: true
  ignore_failed_attachment_downloads: false
  scope_duplicates_by_archived_state: true
  keep_json_backups: true

# Board names or short links. An empty include list means every board.
boards:
  include: []
  exclude: []

links:
  # Cards in these boards are never turned into local links
  exclude_boards: []

concurrency:
  rate_limit: 10
  board_workers: 4
  card_workers: 8

logging:
  level: INFO
  file: null
"""


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
            Parsed configuration dictionary

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f)

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a dictionary")

        return cls._substitute_env_vars_recursive(config_data)

    @classmethod
    def create_template(cls, config_path: str) -> bool:
        """
        Write the template configuration if no file exists yet.

        Returns:
            True if the template was written, False if a file was already there
        """
        if os.path.exists(config_path):
            return False

        directory = os.path.dirname(config_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write(CONFIG_TEMPLATE)
        return True

    @classmethod
    def validate(cls, config: Dict[str, Any]) -> None:
        """
        Validate configuration for required fields and correct values.

        Args:
            config: Configuration dictionary to validate

        Raises:
            ValueError: If validation fails
        """
        for field in ('trello.api_key', 'trello.api_token'):
            cls._validate_required_field(config, field)
            if get_nested(config, field) in PLACEHOLDER_CREDENTIALS:
                raise ValueError(f"{field} still holds the placeholder value; set your real credentials")

        cls._validate_required_field(config, 'export.output_directory')
        output_dir = get_nested(config, 'export.output_directory')
        if os.path.exists(output_dir) and not os.path.isdir(output_dir):
            raise ValueError(f"export.output_directory '{output_dir}' is not a directory")

        title_length = get_nested(config, 'export.max_card_filename_title_length', 40)
        if not _is_int(title_length) or title_length < 1:
            raise ValueError("export.max_card_filename_title_length must be a positive integer")

        for flag in EXPORT_FLAGS:
            value = get_nested(config, f'export.{flag}', False)
            if not isinstance(value, bool):
                raise ValueError(f"export.{flag} must be a boolean")

        rate_limit = get_nested(config, 'concurrency.rate_limit', 10)
        if not _is_int(rate_limit):
            raise ValueError("concurrency.rate_limit must be an integer")

        for field in ('concurrency.board_workers', 'concurrency.card_workers'):
            workers = get_nested(config, field, 1)
            if not _is_int(workers) or workers < 1:
                raise ValueError(f"{field} must be a positive integer")

        for field in ('boards.include', 'boards.exclude', 'links.exclude_boards'):
            cls._validate_name_list(get_nested(config, field, []), field)

        timeout = get_nested(config, 'trello.request_timeout', 60)
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("trello.request_timeout must be a positive number")

    @classmethod
    def merge_with_args(cls, config: Dict[str, Any], args) -> Dict[str, Any]:
        """
        Merge configuration file with CLI arguments.
        CLI arguments take precedence over config file values.

        Args:
            config: Base configuration dictionary
            args: Parsed CLI arguments; options left unset are None

        Returns:
            Merged configuration dictionary
        """
        merged = copy.deepcopy(config)
        for section in ('trello', 'export', 'boards', 'links', 'concurrency', 'logging'):
            if not isinstance(merged.get(section), dict):
                merged[section] = {}

        if getattr(args, 'output_folder', None):
            merged['export']['output_directory'] = args.output_folder

        if getattr(args, 'max_card_filename_title_length', None) is not None:
            merged['export']['max_card_filename_title_length'] = args.max_card_filename_title_length

        for flag in EXPORT_FLAGS:
            value = getattr(args, flag, None)
            if value is not None:
                merged['export'][flag] = value

        if getattr(args, 'rate_limit', None) is not None:
            merged['concurrency']['rate_limit'] = args.rate_limit

        if getattr(args, 'include_boards', None) is not None:
            merged['boards']['include'] = args.include_boards
        if getattr(args, 'exclude_boards', None) is not None:
            merged['boards']['exclude'] = args.exclude_boards
        if getattr(args, 'link_exclude_boards', None) is not None:
            merged['links']['exclude_boards'] = args.link_exclude_boards

        verbose = getattr(args, 'verbose', 0) or 0
        if verbose >= 2:
            merged['logging']['level'] = 'DEBUG'
        elif verbose == 1:
            merged['logging']['level'] = 'INFO'

        if getattr(args, 'log_file', None):
            merged['logging']['file'] = args.log_file

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
        def replace_match(match):
            env_value = os.getenv(match.group(1))
            return env_value if env_value is not None else match.group(0)

        return cls.ENV_VAR_PATTERN.sub(replace_match, value)

    @staticmethod
    def _validate_required_field(config: dict, field: str) -> None:
        """Validate that a required field exists, has a value and has no unset ${VAR}."""
        value = get_nested(config, field)
        if value is None or value == '':
            raise ValueError(f"Missing required configuration: {field}")

        if isinstance(value, str):
            match = ConfigLoader.ENV_VAR_PATTERN.search(value)
            if match:
                raise ValueError(
                    f"Configuration field '{field}' contains unsubstituted environment variable: {value}. "
                    f"Please set the {match.group(1)} environment variable or provide a value in config file."
                )

    @staticmethod
    def _validate_name_list(value: Any, field: str) -> None:
        if value is None:
            return
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ValueError(f"{field} must be a list of board names or short links")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def split_names(value: str) -> List[str]:
    """Parse a comma-separated CLI list, ignoring blanks."""
    return [name.strip() for name in value.split(',') if name.strip()]


def get_nested(config: dict, path: str, default: Any = None) -> Any:
    """Safely retrieve nested configuration values using dot notation.

    Args:
        config: Configuration dictionary
        path: Dot-separated path (e.g., "trello.api_key")
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


__all__ = ['ConfigLoader', 'CONFIG_TEMPLATE', 'get_nested', 'split_names']
