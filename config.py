"""
ApiKit Configuration Management

Handles process settings with environment variable support and default
values, loading of the declarative JSON configuration file, and logging
setup shared by the API server and the CLI.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import ValidationError

from errors import ConfigurationError
from models import ServerConfig

# Load environment variables from .env file if it exists
load_dotenv()

VERSION = "1.0.0"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass
class Config:
    """Process settings for ApiKit"""

    # Declarative configuration file
    CONFIG_PATH: str = os.getenv('APIKIT_CONFIG_PATH', 'config.json')

    # Server bind address used when the file has no "host" entry
    HOST: str = os.getenv('APIKIT_HOST', '0.0.0.0')
    PORT: int = int(os.getenv('APIKIT_PORT', '8000'))

    # Logging Configuration
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE: str = os.getenv('LOG_FILE', 'apikit.log')

    # User Agent for outbound source requests
    USER_AGENT: str = os.getenv('USER_AGENT', f'ApiKit/{VERSION}')

    def validate(self) -> None:
        """Validate configuration settings"""
        if self.LOG_LEVEL.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f"Unknown LOG_LEVEL: {self.LOG_LEVEL}")

        if not 1 <= self.PORT <= 65535:
            raise ValueError(f"APIKIT_PORT out of range: {self.PORT}")


# Global config instance
config = Config()

# Validate configuration on import
config.validate()


def load_server_config(path: Optional[Union[str, Path]] = None) -> ServerConfig:
    """
    Load and validate the declarative configuration file

    Args:
        path: JSON file location, defaults to ``config.CONFIG_PATH``

    Returns:
        Validated ServerConfig

    Raises:
        ConfigurationError: the file is missing, malformed or invalid
    """
    config_path = Path(path or config.CONFIG_PATH)

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            raw = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"failed to read the config file {config_path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"failed to parse the config file {config_path}: {e}") from e

    return parse_server_config(raw)


def parse_server_config(raw: dict) -> ServerConfig:
    """Validate an already decoded configuration document"""
    try:
        return ServerConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(f"configuration validation failed: {e}") from e


def configure_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """
    Configure root logging for the server and CLI

    Args:
        verbose: Force DEBUG level regardless of LOG_LEVEL
        log_file: Additionally append records to this file when given
    """
    level = logging.DEBUG if verbose else getattr(logging, config.LOG_LEVEL.upper())

    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    # Suppress verbose loggers
    logging.getLogger('urllib3').setLevel(logging.WARNING)
