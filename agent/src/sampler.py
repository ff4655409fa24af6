"""
Host metrics sampling for the agent.
"""
import psutil
import platform
import socket
import time
import logging
from typing import Optional

from shared.constants import DEFAULT_DISK_PATH
from shared.schemas import (
    DiskInfo,
    LoadAverage,
    MemoryInfo,
    MetricsSnapshot,
    NetworkInfo,
    SystemInfo,
)

logger = logging.getLogger(__name__)


class Sampler:
    """Read OS counters once per tick and build a MetricsSnapshot."""

    def __init__(self, agent_id: str, disk_path: str = DEFAULT_DISK_PATH, cpu_interval: float = 1.0):
        """
        Initialize the sampler.

        Args:
            agent_id: Persistent agent identifier stamped on every snapshot
            disk_path: Filesystem whose usage is reported
            cpu_interval: Seconds psutil blocks to measure CPU usage
        """
        self.agent_id = agent_id
        self.disk_path = disk_path
        self.cpu_interval = cpu_interval
        self.system_info = self._get_system_info()

        logger.info(f"Sampler initialized: hostname={self.system_info.hostname}, "
                    f"platform={self.system_info.platform}, disk={self.disk_path}")

    def _get_system_info(self) -> SystemInfo:
        """Collect static host identity."""
        os_name = platform.system().lower()
        platform_name = os_name
        try:
            platform_name = platform.freedesktop_os_release().get("ID", os_name)
        except (OSError, AttributeError):
            pass

        return SystemInfo(
            hostname=socket.gethostname(),
            os=os_name,
            platform=platform_name,
            kernel_version=platform.release()
        )

    def get_cpu_usage(self) -> float:
        try:
            return psutil.cpu_percent(interval=self.cpu_interval)
        except Exception as e:
            logger.error(f"Error reading CPU usage: {e}")
            return 0.0

    def get_memory(self) -> MemoryInfo:
        try:
            mem = psutil.virtual_memory()
            return MemoryInfo(total=mem.total, used=mem.used, percent=mem.percent)
        except Exception as e:
            logger.error(f"Error reading memory: {e}")
            return MemoryInfo()

    def get_disk(self) -> DiskInfo:
        try:
            usage = psutil.disk_usage(self.disk_path)
            return DiskInfo(total=usage.total, used=usage.used, percent=usage.percent)
        except Exception as e:
            logger.error(f"Error reading disk usage for {self.disk_path}: {e}")
            return DiskInfo()

    def _count_connections(self, kind: str) -> int:
        try:
            return len(psutil.net_connections(kind=kind))
        except (psutil.AccessDenied, PermissionError):
            logger.debug(f"Permission denied listing {kind} connections")
            return 0
        except Exception as e:
            logger.error(f"Error listing {kind} connections: {e}")
            return 0

    def get_network(self) -> NetworkInfo:
        """Host-wide network counters plus socket counts."""
        bytes_sent = bytes_recv = 0
        try:
            counters = psutil.net_io_counters()
            if counters is not None:
                bytes_sent = counters.bytes_sent
                bytes_recv = counters.bytes_recv
        except Exception as e:
            logger.error(f"Error reading network counters: {e}")

        return NetworkInfo(
            bytes_sent=bytes_sent,
            bytes_recv=bytes_recv,
            tcp_connections=self._count_connections("tcp"),
            udp_connections=self._count_connections("udp")
        )

    def get_load_average(self) -> LoadAverage:
        try:
            load1, load5, load15 = psutil.getloadavg()
            return LoadAverage(load1=load1, load5=load5, load15=load15)
        except Exception as e:
            logger.error(f"Error reading load average: {e}")
            return LoadAverage()

    def get_process_count(self) -> int:
        try:
            return len(psutil.pids())
        except Exception as e:
            logger.error(f"Error counting processes: {e}")
            return 0

    def get_uptime(self) -> int:
        try:
            return max(0, int(time.time() - psutil.boot_time()))
        except Exception as e:
            logger.error(f"Error reading boot time: {e}")
            return 0

    def sample(self) -> Optional[MetricsSnapshot]:
        """
        Take one snapshot.

        Returns:
            MetricsSnapshot, or None if the snapshot could not be built
        """
        try:
            captured_at = int(time.time())
            snapshot = MetricsSnapshot(
                agent_id=self.agent_id,
                timestamp=captured_at,
                cpu_usage=self.get_cpu_usage(),
                memory_info=self.get_memory(),
                disk_info=self.get_disk(),
                network_info=self.get_network(),
                load_average=self.get_load_average(),
                process_count=self.get_process_count(),
                system_info=self.system_info,
                uptime_seconds=self.get_uptime()
            )

            logger.debug(f"Sampled: cpu={snapshot.cpu_usage:.1f}%, "
                         f"mem={snapshot.memory_info.percent:.1f}%, "
                         f"disk={snapshot.disk_info.percent:.1f}%")

            return snapshot

        except Exception as e:
            logger.error(f"Error building snapshot: {e}")
            return None
