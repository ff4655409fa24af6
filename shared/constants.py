"""
Shared constants for Fleet Monitor.
"""

# API Configuration
DEFAULT_COLLECTOR_PORT = 8080
API_PREFIX = "/api"
INGEST_PATH = "/ws"

# Sampling Configuration
METRIC_INTERVAL_SECONDS = 5
DEFAULT_DISK_PATH = "/"

# Link Configuration
HANDSHAKE_TIMEOUT_SECONDS = 10
PROBE_TIMEOUT_SECONDS = 2

# Collector liveness
PING_INTERVAL_SECONDS = 10
READ_TIMEOUT_SECONDS = 60
MAX_FRAME_BYTES = 65536

# Agent status
ONLINE_THRESHOLD_SECONDS = 10     # UI display: online while last_seen is this fresh
OFFLINE_ALERT_SECONDS = 30        # alerting: offline notification after this long

# Alerting
ALERT_SWEEP_SECONDS = 60
CPU_OVERLOAD_PERCENT = 90.0
OVERLOAD_DURATION_SECONDS = 600

# Data Retention
DATA_RETENTION_DAYS = 30
CLEANUP_INTERVAL_HOURS = 1

# Query defaults
DEFAULT_QUERY_LIMIT = 100

# Transport
KEY_SIZE_BYTES = 32               # AES-256
IV_SIZE_BYTES = 16                # AES block size
DEFAULT_ENCRYPTION_KEY = "default-encryption-key-change-me"
DEFAULT_API_KEY = "change-me-in-production"

# Registry defaults
UNKNOWN_HOSTNAME = "unknown-host"
UNKNOWN_PLATFORM = "Unknown"

# Notification target types
WEBHOOK_SERVERCHAN = "serverchan"
WEBHOOK_CUSTOM = "custom"
SERVERCHAN_URL = "https://sctapi.ftqq.com/{sendkey}.send"

# Paths
DEFAULT_CONFIG_DIR = "/etc/fleet-monitor"
DEFAULT_DATA_DIR = "/var/lib/fleet-monitor"
DEFAULT_LOG_DIR = "/var/log/fleet-monitor"
AGENT_ID_DIRNAME = "fleet-monitor"
AGENT_ID_FILENAME = "agent-id"

# CLI
CLI_NAME = "fleetmon"
CLI_VERSION = "1.0.0"
