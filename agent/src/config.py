"""
Configuration management for the agent.
"""
import os
import uuid
import yaml
import logging
from typing import Optional
from dataclasses import dataclass

from shared.constants import (
    AGENT_ID_DIRNAME,
    AGENT_ID_FILENAME,
    DEFAULT_CONFIG_DIR,
    DEFAULT_DISK_PATH,
    DEFAULT_ENCRYPTION_KEY,
    DEFAULT_LOG_DIR,
    HANDSHAKE_TIMEOUT_SECONDS,
    METRIC_INTERVAL_SECONDS,
    PROBE_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)


@dataclass
class CollectorConfig:
    """Collector connection configuration."""
    url: str
    encryption_key: Optional[str]
    handshake_timeout: float = HANDSHAKE_TIMEOUT_SECONDS
    probe_timeout: float = PROBE_TIMEOUT_SECONDS


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    interval: int = METRIC_INTERVAL_SECONDS
    disk_path: str = DEFAULT_DISK_PATH


@dataclass
class IdentityConfig:
    """Where the agent keeps its persistent identifier."""
    id_file: str


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    max_size_mb: int = 10
    backup_count: int = 3


@dataclass
class AgentConfig:
    """Complete agent configuration."""
    collector: CollectorConfig
    monitoring: MonitoringConfig
    agent: IdentityConfig
    logging: LoggingConfig


def default_id_file() -> str:
    """Per-user location of the agent id file."""
    config_home = os.getenv("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(config_home, AGENT_ID_DIRNAME, AGENT_ID_FILENAME)


def load_config(config_path: str = None) -> AgentConfig:
    """
    Load configuration from file or environment variables.

    Args:
        config_path: Path to YAML config file

    Returns:
        AgentConfig object
    """
    if config_path is None:
        config_path = os.getenv("AGENT_CONFIG", os.path.join(DEFAULT_CONFIG_DIR, "agent.yaml"))

    # Start with defaults
    config_data = {
        'collector': {
            'url': os.getenv('COLLECTOR_URL', 'ws://localhost:8080/ws'),
            'encryption_key': os.getenv('ENCRYPTION_KEY', DEFAULT_ENCRYPTION_KEY),
            'handshake_timeout': float(os.getenv('HANDSHAKE_TIMEOUT', str(HANDSHAKE_TIMEOUT_SECONDS))),
            'probe_timeout': float(os.getenv('PROBE_TIMEOUT', str(PROBE_TIMEOUT_SECONDS)))
        },
        'monitoring': {
            'interval': int(os.getenv('METRIC_INTERVAL', str(METRIC_INTERVAL_SECONDS))),
            'disk_path': os.getenv('DISK_PATH', DEFAULT_DISK_PATH)
        },
        'agent': {
            'id_file': os.getenv('AGENT_ID_FILE', default_id_file())
        },
        'logging': {
            'level': os.getenv('LOG_LEVEL', 'INFO'),
            'file': os.getenv('LOG_FILE', os.path.join(DEFAULT_LOG_DIR, 'agent.log')),
            'max_size_mb': int(os.getenv('LOG_MAX_SIZE_MB', '10')),
            'backup_count': int(os.getenv('LOG_BACKUP_COUNT', '3'))
        }
    }

    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                file_config = yaml.safe_load(f)
                if file_config:
                    # File takes precedence over environment
                    for section in config_data:
                        if section in file_config and file_config[section]:
                            config_data[section].update(file_config[section])

            logger.info(f"Loaded configuration from {config_path}")
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Error loading config file {config_path}: {e}")

    return AgentConfig(
        collector=CollectorConfig(**config_data['collector']),
        monitoring=MonitoringConfig(**config_data['monitoring']),
        agent=IdentityConfig(**config_data['agent']),
        logging=LoggingConfig(**config_data['logging'])
    )


def get_or_create_agent_id(id_file: str) -> str:
    """
    Read the persisted agent id, generating and storing one on first run.

    The id never changes for the lifetime of the file.
    """
    if os.path.exists(id_file):
        with open(id_file, 'r') as f:
            agent_id = f.read().strip()
        if agent_id:
            return agent_id
        logger.warning(f"Agent id file {id_file} is empty, generating a new id")

    id_dir = os.path.dirname(id_file)
    if id_dir:
        os.makedirs(id_dir, exist_ok=True)

    agent_id = str(uuid.uuid4())
    with open(id_file, 'w') as f:
        f.write(agent_id)

    logger.info(f"Generated new agent id {agent_id} at {id_file}")
    return agent_id
