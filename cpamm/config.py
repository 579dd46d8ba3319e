"""
Configuration management for the pool.
"""
import json
import logging
import os
from typing import Optional
from dataclasses import dataclass, asdict

from cpamm.crypto import POOL_ADDRESS


@dataclass
class PoolConfig:
    """Pool deployment configuration."""
    address: str = POOL_ADDRESS.hex()
    asset_a: Optional[str] = None
    asset_b: Optional[str] = None
    owner_public_key: Optional[str] = None  # PEM; only this key may init the pool


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 9090


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"


@dataclass
class Config:
    """Main configuration."""
    pool: PoolConfig
    monitoring: MonitoringConfig
    logging: LoggingConfig

    @classmethod
    def default(cls) -> 'Config':
        """Create default configuration."""
        return cls(
            pool=PoolConfig(),
            monitoring=MonitoringConfig(),
            logging=LoggingConfig()
        )

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)

        return cls(
            pool=PoolConfig(**data.get('pool', {})),
            monitoring=MonitoringConfig(**data.get('monitoring', {})),
            logging=LoggingConfig(**data.get('logging', {}))
        )

    def to_file(self, path: str):
        """Save configuration to JSON file."""
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'pool': asdict(self.pool),
            'monitoring': asdict(self.monitoring),
            'logging': asdict(self.logging)
        }


def configure_logging(config: LoggingConfig):
    """Install the root handler and apply the configured level to the package loggers."""
    level = getattr(logging, config.level.upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {config.level}")
    logging.basicConfig(level=level)
    logging.getLogger('cpamm').setLevel(level)
