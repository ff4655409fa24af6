"""
Shared fixtures for collector tests.
"""
import pytest

from shared.schemas import (
    DiskInfo,
    LoadAverage,
    MemoryInfo,
    MetricsSnapshot,
    NetworkInfo,
    SystemInfo,
)
from collector.src.config import (
    AlertConfig,
    CollectorConfig,
    DatabaseConfig,
    FilesConfig,
    LoggingConfig,
    RetentionConfig,
    SecurityConfig,
    ServerConfig,
)
from collector.src.database import Database
from collector.src.overrides import HostnameOverrides
from collector.src.registry import AgentRegistry
from collector.src.store import TimeSeriesStore

TEST_KEY = "test-encryption-key"
TEST_API_KEY = "test-api-key"


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def database(tmp_path):
    db = Database(str(tmp_path / "metrics.db"))
    yield db
    db.close()


@pytest.fixture
def overrides(tmp_path):
    store = HostnameOverrides(str(tmp_path / "hostname.json"))
    store.ensure_exists()
    return store


@pytest.fixture
def store(database, clock):
    return TimeSeriesStore(database, clock=clock)


@pytest.fixture
def registry(database, store, overrides, clock):
    return AgentRegistry(database, store, overrides, online_threshold=10, clock=clock)


@pytest.fixture
def make_snapshot():
    """Factory for snapshots with realistic defaults."""
    def _make(agent_id="a1", timestamp=1000, cpu=45.2, hostname="web-1", platform="ubuntu", **overrides):
        fields = dict(
            agent_id=agent_id,
            timestamp=timestamp,
            cpu_usage=cpu,
            memory_info=MemoryInfo(total=8 * 1024 ** 3, used=3 * 1024 ** 3, percent=37.5),
            disk_info=DiskInfo(total=100 * 1024 ** 3, used=40 * 1024 ** 3, percent=40.0),
            network_info=NetworkInfo(bytes_sent=123456, bytes_recv=654321, tcp_connections=12, udp_connections=3),
            load_average=LoadAverage(load1=0.5, load5=0.4, load15=0.3),
            process_count=210,
            system_info=SystemInfo(hostname=hostname, os="linux", platform=platform, kernel_version="6.8.0"),
            uptime_seconds=3600,
        )
        fields.update(overrides)
        return MetricsSnapshot(**fields)

    return _make


@pytest.fixture
def collector_config(tmp_path):
    """Collector configuration rooted in a temporary directory."""
    return CollectorConfig(
        server=ServerConfig(read_timeout=5),
        database=DatabaseConfig(path=str(tmp_path / "metrics.db")),
        security=SecurityConfig(encryption_key=TEST_KEY, api_key=TEST_API_KEY, accept_plaintext=True),
        alerts=AlertConfig(),
        retention=RetentionConfig(),
        files=FilesConfig(
            webhook_file=str(tmp_path / "webhook.json"),
            hostname_file=str(tmp_path / "hostname.json")
        ),
        logging=LoggingConfig(),
    )
