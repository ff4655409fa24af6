"""
Time-series store for metric samples.
"""
import logging
import time
from typing import Callable, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from shared.schemas import (
    DiskInfo,
    LoadAverage,
    MemoryInfo,
    MetricSampleView,
    MetricsSnapshot,
    NetworkInfo,
)
from .database import Database, MetricSample

logger = logging.getLogger(__name__)

# SQLite INTEGER is a signed 64-bit value
COUNTER_MODULUS = 2 ** 63


def wrap_counter(value: int) -> int:
    """Fold an unsigned 64-bit counter into the signed INTEGER range.

    Readers already treat a decrease as a counter reset.
    """
    return value % COUNTER_MODULUS


def sample_row(snapshot: MetricsSnapshot, timestamp: int) -> dict:
    """Flatten a snapshot into metrics table columns."""
    return {
        "agent_id": snapshot.agent_id,
        "timestamp": timestamp,
        "cpu_usage": snapshot.cpu_usage,
        "memory_total": wrap_counter(snapshot.memory_info.total),
        "memory_used": wrap_counter(snapshot.memory_info.used),
        "memory_percent": snapshot.memory_info.percent,
        "disk_total": wrap_counter(snapshot.disk_info.total),
        "disk_used": wrap_counter(snapshot.disk_info.used),
        "disk_percent": snapshot.disk_info.percent,
        "network_sent": wrap_counter(snapshot.network_info.bytes_sent),
        "network_recv": wrap_counter(snapshot.network_info.bytes_recv),
        "tcp_connections": snapshot.network_info.tcp_connections,
        "udp_connections": snapshot.network_info.udp_connections,
        "load_avg_1": snapshot.load_average.load1,
        "load_avg_5": snapshot.load_average.load5,
        "load_avg_15": snapshot.load_average.load15,
        "process_count": snapshot.process_count,
    }


def to_view(row: MetricSample) -> MetricSampleView:
    """Rebuild the nested view of a stored sample. Values are returned as stored."""
    return MetricSampleView(
        timestamp=row.timestamp,
        cpu_usage=row.cpu_usage or 0.0,
        memory_info=MemoryInfo(
            total=row.memory_total or 0,
            used=row.memory_used or 0,
            percent=row.memory_percent or 0.0
        ),
        disk_info=DiskInfo(
            total=row.disk_total or 0,
            used=row.disk_used or 0,
            percent=row.disk_percent or 0.0
        ),
        network_info=NetworkInfo(
            bytes_sent=row.network_sent or 0,
            bytes_recv=row.network_recv or 0,
            tcp_connections=row.tcp_connections or 0,
            udp_connections=row.udp_connections or 0
        ),
        load_average=LoadAverage(
            load1=row.load_avg_1 or 0.0,
            load5=row.load_avg_5 or 0.0,
            load15=row.load_avg_15 or 0.0
        ),
        process_count=row.process_count or 0
    )


class TimeSeriesStore:
    """
    Append-only metric rows keyed by (agent_id, timestamp).

    Every operation is its own short transaction. A second sample for an
    already stored (agent_id, timestamp) key is ignored.
    """

    def __init__(self, database: Database, clock: Callable[[], float] = time.time):
        self.database = database
        self.clock = clock

    def append(self, snapshot: MetricsSnapshot) -> bool:
        """
        Store one snapshot.

        Returns:
            True if a row was written, False if the key already existed

        Raises:
            StorageError: if the write failed
        """
        timestamp = snapshot.timestamp or int(self.clock())
        stmt = (
            sqlite_insert(MetricSample)
            .values(**sample_row(snapshot, timestamp))
            .on_conflict_do_nothing(index_elements=["agent_id", "timestamp"])
        )
        with self.database.session_scope() as session:
            result = session.execute(stmt)
            written = result.rowcount > 0

        if not written:
            logger.debug(f"Duplicate sample {snapshot.agent_id}@{timestamp} ignored")
        return written

    def query(self, agent_id: str, start: int, end: int, limit: int) -> List[MetricSampleView]:
        """
        Samples in [start, end], most recent first, at most `limit` rows.

        An agent with no rows in range yields an empty list.
        """
        stmt = (
            select(MetricSample)
            .where(
                MetricSample.agent_id == agent_id,
                MetricSample.timestamp >= start,
                MetricSample.timestamp <= end
            )
            .order_by(MetricSample.timestamp.desc())
            .limit(limit)
        )
        with self.database.session_scope() as session:
            return [to_view(row) for row in session.scalars(stmt)]

    def latest(self, agent_id: str) -> Optional[MetricSampleView]:
        """The single most recent sample of an agent, if any."""
        stmt = (
            select(MetricSample)
            .where(MetricSample.agent_id == agent_id)
            .order_by(MetricSample.timestamp.desc())
            .limit(1)
        )
        with self.database.session_scope() as session:
            row = session.scalars(stmt).first()
            return to_view(row) if row is not None else None

    def purge_older_than(self, cutoff: int) -> int:
        """Delete samples with timestamp < cutoff. Returns rows deleted."""
        with self.database.session_scope() as session:
            result = session.execute(delete(MetricSample).where(MetricSample.timestamp < cutoff))
            deleted = result.rowcount or 0

        if deleted:
            logger.info(f"Retention sweep deleted {deleted} samples older than {cutoff}")
        return deleted

    def purge_for_agent(self, agent_id: str, session: Session = None) -> int:
        """
        Delete every sample of one agent. Returns rows deleted.

        Pass the caller's session to make this part of a larger transaction.
        """
        with self.database.session_scope(session) as scoped:
            result = scoped.execute(delete(MetricSample).where(MetricSample.agent_id == agent_id))
            return result.rowcount or 0

    def count(self, agent_id: str = None) -> int:
        """Number of stored samples, optionally for one agent."""
        stmt = select(func.count()).select_from(MetricSample)
        if agent_id is not None:
            stmt = stmt.where(MetricSample.agent_id == agent_id)
        with self.database.session_scope() as session:
            return session.scalar(stmt) or 0
