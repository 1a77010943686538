"""
Configuration loader for the Finops Inbox service.

Loads configuration from YAML files and environment variables with type safety
and nested key access.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

# Global configuration cache
_config_cache: dict[str, Any] | None = None

DEFAULT_CONFIG_PATH = "config/app.yaml"


def load_config(config_path: str | None = None) -> dict[str, Any]:
    """Load configuration from YAML file with environment variable support.

    A missing file yields an empty configuration so every ``cfg`` lookup falls
    back to its default.
    """
    global _config_cache

    if _config_cache is not None:
        return _config_cache

    # Load environment variables
    load_dotenv()

    config_path = config_path or os.getenv("FINOPS_CONFIG", DEFAULT_CONFIG_PATH)
    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file) as f:
            config = yaml.safe_load(f) or {}
    else:
        config = {}

    # Cache the configuration
    _config_cache = config
    return config


def cfg(key: str, default: Any = None) -> Any:
    """
    Get configuration value using dot notation.

    Args:
        key: Dot-separated key path (e.g., "extraction.timeout_seconds")
        default: Default value if key is not found

    Returns:
        Configuration value or default

    Examples:
        cfg("global.log_level", "INFO")
        cfg("drive.root_folder_name", "TechPros Shared")
    """
    config = load_config()

    # Handle simple key
    if "." not in key:
        return config.get(key, default)

    # Handle nested key with dot notation
    keys = key.split(".")
    value = config

    try:
        for k in keys:
            value = value[k]
        return value
    except (KeyError, TypeError):
        return default


def env(key: str, default: str | None = None) -> str | None:
    """Get environment variable with optional default."""
    return os.getenv(key, default)


def get_database_url() -> str:
    """Get database URL from environment."""
    db_url = env("DATABASE_URL")
    if not db_url:
        raise ValueError("DATABASE_URL environment variable is required")
    return db_url


def get_required_env(key: str) -> str:
    """
    Get required environment variable or raise error.

    Raises:
        ValueError: If environment variable is not set
    """
    value = env(key)
    if not value:
        raise ValueError(f"{key} environment variable is required")
    return value


def get_drive_config() -> dict[str, Any]:
    """Get Google Drive configuration from environment and app config.

    OAuth client credentials with a refresh token are preferred; a bare access
    token is accepted for short-lived local runs.
    """
    client_id = env("GOOGLE_CLIENT_ID")
    client_secret = env("GOOGLE_CLIENT_SECRET")
    refresh_token = env("GOOGLE_REFRESH_TOKEN")
    access_token = env("GOOGLE_ACCESS_TOKEN")

    config: dict[str, Any] = {
        "root_folder_name": cfg("drive.root_folder_name", "TechPros Shared"),
        "timeout": cfg("drive.timeout", 30),
    }

    if client_id and client_secret and refresh_token:
        config.update(
            {
                "client_id": client_id,
                "client_secret": client_secret,
                "refresh_token": refresh_token,
            }
        )
        if access_token:
            config["access_token"] = access_token
        return config
    elif access_token:
        config["access_token"] = access_token
        return config
    else:
        raise ValueError(
            "Google Drive: Either GOOGLE_CLIENT_ID+GOOGLE_CLIENT_SECRET+GOOGLE_REFRESH_TOKEN "
            "or GOOGLE_ACCESS_TOKEN is required"
        )


def get_extraction_config() -> dict[str, Any]:
    """Get document extraction service configuration."""
    return {
        "api_key": get_required_env("OPENAI_API_KEY"),
        "model": cfg("extraction.model", "gpt-4o-mini"),
        "timeout": float(cfg("extraction.timeout_seconds", 60)),
        "max_tokens": int(cfg("extraction.max_tokens", 4096)),
    }


def get_confidence_threshold() -> float:
    """Confidence at or above which an extraction is marked completed."""
    return float(cfg("extraction.confidence_threshold", 0.85))


def get_upload_dir() -> Path:
    """Directory holding directly uploaded document bytes."""
    return Path(cfg("storage.upload_dir", "uploads"))


# Configuration validation
def validate_config(require_drive: bool = True, require_extraction: bool = True) -> None:
    """Validate configuration and required environment variables."""
    errors = []

    # Check database URL
    try:
        get_database_url()
    except ValueError as e:
        errors.append(str(e))

    if require_drive:
        try:
            get_drive_config()
        except ValueError as e:
            errors.append(str(e))

    if require_extraction:
        try:
            get_extraction_config()
        except ValueError as e:
            errors.append(f"Extraction: {e}")

    if errors:
        raise ValueError(
            "Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors)
        )


def reload_config() -> None:
    """Force reload of configuration cache."""
    global _config_cache
    _config_cache = None
