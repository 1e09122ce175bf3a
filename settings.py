"""
Runtime settings for the engine and registry clients.

Values come from environment variables, optionally overridden by a JSON file
validated against SETTINGS_SCHEMA.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import jsonschema

logger = logging.getLogger('imgcompat.settings')

LOGGER_NAME = 'imgcompat'
LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR']

DEFAULT_DOCKER_SOCKET = '/var/run/docker.sock'
DEFAULT_REQUEST_TIMEOUT = 30

# Configuration schema
SETTINGS_SCHEMA = {
    "type": "object",
    "properties": {
        "docker_socket": {"type": "string", "minLength": 1},
        "docker_api_version": {"type": "string"},
        "request_timeout": {"type": "number", "exclusiveMinimum": 0},
        "insecure_registries": {
            "type": "array",
            "items": {"type": "string"}
        },
        "log_level": {"enum": LOG_LEVELS}
    },
    "additionalProperties": False
}


@dataclass
class Settings:
    """Connection settings shared by the engine and registry clients."""
    docker_socket: str = DEFAULT_DOCKER_SOCKET
    docker_api_version: str = ''
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    insecure_registries: List[str] = field(default_factory=list)
    log_level: str = 'INFO'


def _settings_from_env() -> Settings:
    return Settings(
        docker_socket=os.environ.get('DOCKER_SOCKET', DEFAULT_DOCKER_SOCKET),
        docker_api_version=os.environ.get('DOCKER_API_VERSION', ''),
        request_timeout=float(os.environ.get('REQUEST_TIMEOUT', DEFAULT_REQUEST_TIMEOUT)),
        log_level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
    )


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Load settings from environment defaults and an optional JSON file.

    Args:
        path: Path to a JSON settings file; keys present there win over env

    Returns:
        Settings instance
    """
    settings = _settings_from_env()
    if path is None:
        return settings

    settings_file = Path(path)
    try:
        with open(settings_file, 'r') as f:
            data = json.load(f)
        jsonschema.validate(data, SETTINGS_SCHEMA)
    except FileNotFoundError:
        logger.error(f"Settings file {settings_file} not found")
        raise
    except json.JSONDecodeError as e:
        logger.error(f"Error parsing settings file: {e}")
        raise
    except jsonschema.ValidationError as e:
        logger.error(f"Settings validation failed: {e.message}")
        raise

    for key, value in data.items():
        setattr(settings, key, value)
    return settings


def setup_logging(level: str = 'INFO') -> logging.Logger:
    """Setup logging configuration."""
    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(getattr(logging, level.upper()))

    if not root.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)

    return root
