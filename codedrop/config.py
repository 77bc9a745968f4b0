"""
Configuration Management

Handles loading configuration from environment variables and config files.
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional
import json

from dotenv import load_dotenv

from .file.chunker import CHUNK_SIZE
from .transfer.pacing import DEFAULT_SEND_INTERVAL


def _env_number(name: str, default, cast):
    """Read a numeric environment variable, naming it on bad input."""
    raw = os.getenv(name)
    if raw is None or raw == '':
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from e


@dataclass
class Config:
    """
    codedrop configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (CODEDROP_*)
    2. Config file (config.json)
    3. Default values
    """
    # Network
    host: str = '0.0.0.0'
    port: int = 8470
    connect_timeout: float = 10.0

    # Transfer
    chunk_size: int = CHUNK_SIZE
    send_interval: float = DEFAULT_SEND_INTERVAL  # seconds between chunks

    # Output
    output_dir: Path = field(default_factory=lambda: Path('./downloads'))

    # Logging
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        load_dotenv()

        config = cls()

        # Network
        config.host = os.getenv('CODEDROP_HOST', config.host)
        config.port = _env_number('CODEDROP_PORT', config.port, int)
        config.connect_timeout = _env_number(
            'CODEDROP_CONNECT_TIMEOUT', config.connect_timeout, float
        )

        # Transfer
        config.chunk_size = _env_number('CODEDROP_CHUNK_SIZE', config.chunk_size, int)
        config.send_interval = _env_number(
            'CODEDROP_SEND_INTERVAL', config.send_interval, float
        )

        # Output
        output_dir = os.getenv('CODEDROP_OUTPUT_DIR')
        if output_dir:
            config.output_dir = Path(output_dir)

        # Logging
        config.log_level = os.getenv('CODEDROP_LOG_LEVEL', config.log_level)

        return config

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from a JSON file."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = json.load(f)

        config = cls()

        # Network
        config.host = data.get('host', config.host)
        config.port = data.get('port', config.port)
        config.connect_timeout = data.get('connect_timeout', config.connect_timeout)

        # Transfer
        config.chunk_size = data.get('chunk_size', config.chunk_size)
        config.send_interval = data.get('send_interval', config.send_interval)

        # Output
        if 'output_dir' in data:
            config.output_dir = Path(data['output_dir'])

        # Logging
        config.log_level = data.get('log_level', config.log_level)

        return config

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'host': self.host,
            'port': self.port,
            'connect_timeout': self.connect_timeout,
            'chunk_size': self.chunk_size,
            'send_interval': self.send_interval,
            'output_dir': str(self.output_dir),
            'log_level': self.log_level,
        }

    def save(self, path: Path):
        """Save configuration to a JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment.

    Environment variables override file settings.
    """
    # Start with defaults
    config = Config()

    # Load from file if provided
    if config_path and config_path.exists():
        config = Config.from_file(config_path)

    # Override with environment variables
    env_config = Config.from_env()

    # Merge (env takes precedence for non-default values)
    defaults = Config()
    for key in ['host', 'port', 'connect_timeout', 'chunk_size',
                'send_interval', 'output_dir', 'log_level']:
        env_val = getattr(env_config, key)
        if env_val != getattr(defaults, key):
            setattr(config, key, env_val)

    return config


# Example config file template
EXAMPLE_CONFIG = """
{
  "host": "0.0.0.0",
  "port": 8470,
  "connect_timeout": 10.0,
  "chunk_size": 16384,
  "send_interval": 0.1,
  "output_dir": "./downloads",
  "log_level": "INFO"
}
"""
