"""Application configuration module for the dictionary sync."""
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Optional, Any

import yaml
from dotenv import load_dotenv

from txsync.logging_config import setup_logger

DEFAULT_API_URL = 'https://www.transifex.com/api/2/'


@dataclass(frozen=True)
class AppConfig:
    """Application configuration dataclass."""
    # Transifex resource
    project_slug: str = ""
    resource_slug: str = ""
    login: Optional[str] = None
    password: Optional[str] = None
    api_url: str = DEFAULT_API_URL

    # Tagging policy
    obsolete_tag: str = 'obsolete'
    skip_tags: FrozenSet[str] = frozenset()
    removal_tags: FrozenSet[str] = frozenset()

    # Request handling
    request_concurrency: int = 5
    max_requests_per_period: int = 100
    rate_period_seconds: float = 60
    request_timeout_seconds: float = 30
    default_retry_after_seconds: float = 300
    retry_margin_seconds: float = 5

    # Processing settings
    project_root: str = field(default_factory=os.getcwd)
    dictionaries_file: str = 'dictionaries.json'
    dry_run: bool = False
    show_progress: bool = False

    def __post_init__(self):
        if self.request_concurrency < 1:
            raise ValueError(f"request_concurrency must be at least 1, got {self.request_concurrency}")


def _compute_project_root() -> str:
    """Compute the project root directory."""
    script_real_path = os.path.realpath(__file__)
    script_dir = os.path.dirname(script_real_path)
    return os.path.abspath(os.path.join(script_dir, os.pardir))


def _dotenv_candidates(project_root: str) -> tuple[str, str]:
    return os.path.join(project_root, '.env'), os.path.join(project_root, 'docker', '.env')


def _load_dotenv_files(project_root: str) -> None:
    """Load .env files from project root or docker directory."""
    dotenv_path_project_root, dotenv_path_docker_dir = _dotenv_candidates(project_root)

    if os.path.exists(dotenv_path_project_root):
        load_dotenv(dotenv_path_project_root)
    elif os.path.exists(dotenv_path_docker_dir):
        load_dotenv(dotenv_path_docker_dir)


def _load_yaml_config(project_root: str) -> Dict[str, Any]:
    """Load the YAML configuration file, falling back to defaults on any problem."""
    default_config_path = os.path.join(project_root, 'config.yaml')
    config_file = os.environ.get('TXSYNC_CONFIG_FILE', default_config_path)

    if not os.path.isabs(config_file):
        config_file = os.path.abspath(config_file)

    config = {}
    try:
        if not os.path.exists(config_file):
            print(f"Warning: Configuration file '{config_file}' not found. Using default configuration.",
                  file=sys.stderr)
            print(f"Tip: Create a config.yaml file in '{project_root}' or set TXSYNC_CONFIG_FILE environment variable.",
                  file=sys.stderr)
            return config

        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
            if loaded_config is None:
                print(f"Warning: Configuration file '{config_file}' is empty. Using default configuration.",
                      file=sys.stderr)
            elif isinstance(loaded_config, dict):
                config = loaded_config
            else:
                print(f"Error: Configuration file '{config_file}' must contain a YAML dictionary. Using defaults.",
                      file=sys.stderr)

    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in configuration file '{config_file}': {e}", file=sys.stderr)
        print("Please check your YAML syntax. Using default configuration.", file=sys.stderr)
    except OSError as e:
        print(f"Error: Could not read configuration file '{config_file}': {e}", file=sys.stderr)
        print("Using default configuration.", file=sys.stderr)

    return config


def _setup_logger_from_config(config: Dict[str, Any]) -> logging.Logger:
    """Set up logger based on configuration."""
    log_config = config.get('logging', {})
    log_level_str = log_config.get('log_level', 'ERROR').upper()
    log_file_path = log_config.get('log_file_path', 'logs/txsync.log')
    log_to_console = log_config.get('log_to_console', True)
    return setup_logger(log_level_str, log_file_path, log_to_console)


def _log_dotenv_status(logger: logging.Logger, project_root: str) -> None:
    """Log the status of .env file loading."""
    dotenv_path_project_root, dotenv_path_docker_dir = _dotenv_candidates(project_root)

    if os.path.exists(dotenv_path_project_root):
        logger.info("Loaded environment variables from: %s", dotenv_path_project_root)
    elif os.path.exists(dotenv_path_docker_dir):
        logger.info("Loaded environment variables from: %s", dotenv_path_docker_dir)
    else:
        logger.info(
            "No .env file found in project root ('%s') or in docker/ ('%s'). Relying on system environment variables if any.",
            dotenv_path_project_root,
            dotenv_path_docker_dir
        )


def _as_tag_set(value: Optional[Iterable[str]]) -> FrozenSet[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset([value])
    return frozenset(tag for tag in value if tag)


def _check_credentials(login: Optional[str], password: Optional[str], dry_run: bool,
                       logger: logging.Logger) -> None:
    """Exit when credentials are missing and writes would be attempted."""
    if login and password:
        return
    if dry_run:
        logger.info("Running in dry-run mode without Transifex credentials; reads may be rejected.")
        return
    logger.critical("CRITICAL: TRANSIFEX_LOGIN and TRANSIFEX_PASSWORD environment variables not found.")
    logger.critical("Please set them (or 'login'/'password' in your config file) or enable dry_run mode.")
    sys.exit(1)


def load_app_config() -> AppConfig:
    """
    Load application configuration from YAML file and environment variables.

    Returns:
        AppConfig: The loaded application configuration.
    """
    # Compute project root
    project_root = _compute_project_root()

    # Load .env files
    _load_dotenv_files(project_root)

    # Load YAML configuration
    config = _load_yaml_config(project_root)

    # Set up logger
    logger = _setup_logger_from_config(config)

    # Log .env status now that logger is available
    _log_dotenv_status(logger, project_root)

    dry_run = config.get('dry_run', False)
    login = os.environ.get('TRANSIFEX_LOGIN', config.get('login'))
    password = os.environ.get('TRANSIFEX_PASSWORD', config.get('password'))
    _check_credentials(login, password, dry_run, logger)

    # Concurrency with environment override
    default_concurrency = config.get('request_concurrency', 5)
    request_concurrency = int(os.environ.get('TXSYNC_REQUEST_CONCURRENCY', default_concurrency))

    # Removal policy lives under string_will_remove: {tags: [...]}
    string_will_remove = config.get('string_will_remove') or {}

    return AppConfig(
        project_slug=config.get('project_slug', ''),
        resource_slug=config.get('resource_slug', ''),
        login=login,
        password=password,
        api_url=config.get('api_url', DEFAULT_API_URL),
        obsolete_tag=config.get('obsolete_tag', 'obsolete'),
        skip_tags=_as_tag_set(config.get('skip_tags')),
        removal_tags=_as_tag_set(string_will_remove.get('tags')),
        request_concurrency=request_concurrency,
        max_requests_per_period=config.get('max_requests_per_period', 100),
        rate_period_seconds=config.get('rate_period_seconds', 60),
        request_timeout_seconds=config.get('request_timeout_seconds', 30),
        default_retry_after_seconds=config.get('default_retry_after_seconds', 300),
        retry_margin_seconds=config.get('retry_margin_seconds', 5),
        project_root=project_root,
        dictionaries_file=config.get('dictionaries_file', 'dictionaries.json'),
        dry_run=dry_run,
        show_progress=config.get('show_progress', False),
    )
