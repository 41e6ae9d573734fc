"""Configuration loader for gcs-provision."""
import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional
import yaml

from .preferences import get_preference

logger = logging.getLogger(__name__)

DEFAULT_PROVISIONING = {
    "location": "US",
    "storage_class": "STANDARD",
    "max_workers": 4,
    "token_lifetime_seconds": 3600,
    "vault": "secret_manager",
}

VAULT_KINDS = ("secret_manager", "environment")

DEFAULT_LOGGING = {
    "level": "WARNING",
}


class ConfigError(Exception):
    """Configuration error exception."""
    pass


def default_config_path() -> Path:
    return Path.home() / ".config" / "gcs-provision" / "config.yml"


def _get_config_path() -> str:
    """
    Get config file path using XDG Base Directory standard.

    Priority order:
    1. User preference (stored in ~/.config/gcs-provision/preferences.json)
    2. Default location: ~/.config/gcs-provision/config.yml

    Returns:
        Absolute path to config file

    Raises:
        FileNotFoundError: If config file doesn't exist in any location
    """
    config_path_pref = get_preference("config_path")
    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            logger.info(f"Using config from preference: {config_path}")
            return str(config_path)
        logger.warning(f"Config path from preference doesn't exist: {config_path}")

    default_config = default_config_path()
    if default_config.exists():
        logger.info(f"Using default config location: {default_config}")
        return str(default_config)

    raise FileNotFoundError(
        "Configuration file not found. Please set up your config file using one of these methods:\n\n"
        "1. Use the default location:\n"
        f"   mkdir -p {default_config.parent}\n"
        f"   cp /path/to/your/config.yml {default_config}\n\n"
        "2. Point to an existing config file:\n"
        "   gcsprovision config set-path /path/to/your/config.yml\n"
    )


def _validate_authentication(auth: Any) -> None:
    if not isinstance(auth, dict):
        raise ConfigError("'authentication' must be a mapping")

    if 'type' not in auth:
        raise ConfigError("Missing 'authentication.type' in config")

    if auth['type'] != 'service_account':
        raise ConfigError(
            f"Unsupported authentication type: {auth['type']}\n"
            f"Only 'service_account' is supported."
        )

    if 'service_account_path' not in auth:
        raise ConfigError(
            "Missing 'authentication.service_account_path' in config\n"
            "Please specify the absolute path to your service account JSON file."
        )

    service_account_path = auth['service_account_path']
    if not os.path.isfile(service_account_path):
        raise ConfigError(f"Service account file not found at: {service_account_path}")


def _merge_section(config: Dict[str, Any], section: str, defaults: Dict[str, Any]) -> Dict[str, Any]:
    values = config.get(section) or {}
    if not isinstance(values, dict):
        raise ConfigError(f"'{section}' must be a mapping")
    merged = dict(defaults)
    merged.update(values)
    return merged


def load_config() -> Dict[str, Any]:
    """
    Load and validate configuration from YAML file.

    Returns:
        Dict containing configuration with keys:
        - gcp: dict with project_id
        - authentication: optional dict with type and service_account_path
        - provisioning: location, storage_class, max_workers, token_lifetime_seconds, vault
        - logging: level

    Raises:
        FileNotFoundError: If no config file exists
        ConfigError: If the config file is invalid
    """
    # Resolved on every call so preference changes apply without a restart
    config_path = _get_config_path()

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML config at {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read config file at {config_path}: {e}")

    if not config:
        raise ConfigError(f"Config file at {config_path} is empty")

    if not isinstance(config, dict):
        raise ConfigError(f"Config file at {config_path} must contain a mapping")

    if 'gcp' not in config or not isinstance(config['gcp'], dict):
        raise ConfigError(
            f"Missing 'gcp' section in config at {config_path}\n"
            f"Required format:\n"
            f"gcp:\n"
            f"  project_id: your-project-id"
        )

    if 'project_id' not in config['gcp']:
        raise ConfigError("Missing 'gcp.project_id' in config")

    if 'authentication' in config:
        _validate_authentication(config['authentication'])

    config['provisioning'] = _merge_section(config, 'provisioning', DEFAULT_PROVISIONING)
    for key in ('max_workers', 'token_lifetime_seconds'):
        value = config['provisioning'][key]
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ConfigError(f"'provisioning.{key}' must be a positive integer, got: {value!r}")
    if config['provisioning']['vault'] not in VAULT_KINDS:
        raise ConfigError(
            f"Unsupported vault: {config['provisioning']['vault']}\n"
            f"Supported vaults: {', '.join(VAULT_KINDS)}"
        )

    config['logging'] = _merge_section(config, 'logging', DEFAULT_LOGGING)

    logger.info(f"Configuration loaded successfully from {config_path}")
    logger.debug(f"Using project ID: {config['gcp']['project_id']}")
    return config


def apply_authentication(config: Dict[str, Any]) -> None:
    """Export the configured key file for Application Default Credentials."""
    auth = config.get('authentication')
    if auth:
        os.environ['GOOGLE_APPLICATION_CREDENTIALS'] = auth['service_account_path']
        logger.info(f"Set GOOGLE_APPLICATION_CREDENTIALS from config: {auth['service_account_path']}")


def get_project_id(config: Optional[Dict[str, Any]] = None) -> Optional[str]:
    """
    Get GCP project ID.

    Priority order:
    1. GCP_PROJECT environment variable (allows override)
    2. Config file

    Returns:
        Project ID string, or None if not found
    """
    gcp_project_env = os.getenv("GCP_PROJECT")
    if gcp_project_env:
        logger.debug(f"Using GCP_PROJECT from environment: {gcp_project_env}")
        return gcp_project_env

    if config and 'gcp' in config:
        return config['gcp'].get('project_id')

    logger.error("Project ID not found. Please set GCP_PROJECT environment variable or configure project_id in config file")
    return None
