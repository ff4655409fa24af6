"""
Configuration management for the collector.
"""
import os
import yaml
import logging
from typing import Optional
from dataclasses import dataclass

from shared.constants import (
    ALERT_SWEEP_SECONDS,
    CLEANUP_INTERVAL_HOURS,
    CPU_OVERLOAD_PERCENT,
    DATA_RETENTION_DAYS,
    DEFAULT_API_KEY,
    DEFAULT_COLLECTOR_PORT,
    DEFAULT_CONFIG_DIR,
    DEFAULT_DATA_DIR,
    DEFAULT_ENCRYPTION_KEY,
    MAX_FRAME_BYTES,
    OFFLINE_ALERT_SECONDS,
    ONLINE_THRESHOLD_SECONDS,
    OVERLOAD_DURATION_SECONDS,
    PING_INTERVAL_SECONDS,
    READ_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)


@dataclass
class ServerConfig:
    """HTTP and WebSocket listener."""
    host: str = "0.0.0.0"
    port: int = DEFAULT_COLLECTOR_PORT
    ping_interval: float = PING_INTERVAL_SECONDS
    read_timeout: float = READ_TIMEOUT_SECONDS
    max_frame_size: int = MAX_FRAME_BYTES


@dataclass
class DatabaseConfig:
    path: str = os.path.join(DEFAULT_DATA_DIR, "metrics.db")


@dataclass
class SecurityConfig:
    """Shared secrets and the plaintext acceptance policy."""
    encryption_key: str = DEFAULT_ENCRYPTION_KEY
    api_key: str = DEFAULT_API_KEY
    accept_plaintext: bool = True


@dataclass
class AlertConfig:
    """Alert sweep thresholds. Online display and offline alert thresholds stay distinct."""
    interval: int = ALERT_SWEEP_SECONDS
    online_threshold: int = ONLINE_THRESHOLD_SECONDS
    offline_threshold: int = OFFLINE_ALERT_SECONDS
    cpu_threshold: float = CPU_OVERLOAD_PERCENT
    overload_duration: int = OVERLOAD_DURATION_SECONDS


@dataclass
class RetentionConfig:
    days: int = DATA_RETENTION_DAYS
    interval_hours: float = CLEANUP_INTERVAL_HOURS


@dataclass
class FilesConfig:
    """Externally owned JSON files."""
    webhook_file: str = os.path.join(DEFAULT_DATA_DIR, "webhook.json")
    hostname_file: str = os.path.join(DEFAULT_DATA_DIR, "hostname.json")


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None
    max_size_mb: int = 10
    backup_count: int = 3


@dataclass
class CollectorConfig:
    """Complete collector configuration."""
    server: ServerConfig
    database: DatabaseConfig
    security: SecurityConfig
    alerts: AlertConfig
    retention: RetentionConfig
    files: FilesConfig
    logging: LoggingConfig


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(config_path: str = None) -> CollectorConfig:
    """
    Load configuration from file or environment variables.

    Args:
        config_path: Path to YAML config file

    Returns:
        CollectorConfig object
    """
    if config_path is None:
        config_path = os.getenv("COLLECTOR_CONFIG", os.path.join(DEFAULT_CONFIG_DIR, "collector.yaml"))

    data_dir = os.getenv("DATA_DIR", DEFAULT_DATA_DIR)

    # Start with defaults
    config_data = {
        'server': {
            'host': os.getenv('HOST', '0.0.0.0'),
            'port': int(os.getenv('PORT', str(DEFAULT_COLLECTOR_PORT))),
            'ping_interval': float(os.getenv('PING_INTERVAL', str(PING_INTERVAL_SECONDS))),
            'read_timeout': float(os.getenv('READ_TIMEOUT', str(READ_TIMEOUT_SECONDS))),
            'max_frame_size': int(os.getenv('MAX_FRAME_SIZE', str(MAX_FRAME_BYTES)))
        },
        'database': {
            'path': os.getenv('DATABASE_PATH', os.path.join(data_dir, 'metrics.db'))
        },
        'security': {
            'encryption_key': os.getenv('ENCRYPTION_KEY', DEFAULT_ENCRYPTION_KEY),
            'api_key': os.getenv('API_KEY', DEFAULT_API_KEY),
            'accept_plaintext': _env_bool('ACCEPT_PLAINTEXT', True)
        },
        'alerts': {
            'interval': int(os.getenv('ALERT_INTERVAL', str(ALERT_SWEEP_SECONDS))),
            'online_threshold': int(os.getenv('ONLINE_THRESHOLD', str(ONLINE_THRESHOLD_SECONDS))),
            'offline_threshold': int(os.getenv('OFFLINE_THRESHOLD', str(OFFLINE_ALERT_SECONDS))),
            'cpu_threshold': float(os.getenv('CPU_THRESHOLD', str(CPU_OVERLOAD_PERCENT))),
            'overload_duration': int(os.getenv('OVERLOAD_DURATION', str(OVERLOAD_DURATION_SECONDS)))
        },
        'retention': {
            'days': int(os.getenv('RETENTION_DAYS', str(DATA_RETENTION_DAYS))),
            'interval_hours': float(os.getenv('CLEANUP_INTERVAL_HOURS', str(CLEANUP_INTERVAL_HOURS)))
        },
        'files': {
            'webhook_file': os.getenv('WEBHOOK_FILE', os.path.join(data_dir, 'webhook.json')),
            'hostname_file': os.getenv('HOSTNAME_FILE', os.path.join(data_dir, 'hostname.json'))
        },
        'logging': {
            'level': os.getenv('LOG_LEVEL', 'INFO'),
            'file': os.getenv('LOG_FILE'),
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

    return CollectorConfig(
        server=ServerConfig(**config_data['server']),
        database=DatabaseConfig(**config_data['database']),
        security=SecurityConfig(**config_data['security']),
        alerts=AlertConfig(**config_data['alerts']),
        retention=RetentionConfig(**config_data['retention']),
        files=FilesConfig(**config_data['files']),
        logging=LoggingConfig(**config_data['logging'])
    )
