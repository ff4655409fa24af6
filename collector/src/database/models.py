"""
Database models for the collector.

Timestamps are stored as integer unix seconds.
"""
from sqlalchemy import Column, Integer, String, Float, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Agent(Base):
    """Registered agent. Online status is derived from last_seen, never stored."""
    __tablename__ = "agents"

    id = Column(String, primary_key=True)  # agent-generated UUID
    name = Column(String, nullable=True)  # operator display name
    hostname = Column(String, nullable=True, index=True)
    platform = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    last_seen = Column(Integer, nullable=True)
    created_at = Column(Integer, nullable=True, default=0)
    updated_at = Column(Integer, nullable=True, default=0)


class MetricSample(Base):
    """One immutable snapshot, identified by (agent_id, timestamp)."""
    __tablename__ = "metrics"

    agent_id = Column(String, primary_key=True)
    timestamp = Column(Integer, primary_key=True)

    cpu_usage = Column(Float, nullable=False, default=0.0)

    memory_total = Column(Integer, nullable=False, default=0)
    memory_used = Column(Integer, nullable=False, default=0)
    memory_percent = Column(Float, nullable=False, default=0.0)

    disk_total = Column(Integer, nullable=False, default=0)
    disk_used = Column(Integer, nullable=False, default=0)
    disk_percent = Column(Float, nullable=False, default=0.0)

    # Raw counters
    network_sent = Column(Integer, nullable=False, default=0)
    network_recv = Column(Integer, nullable=False, default=0)
    tcp_connections = Column(Integer, nullable=False, default=0)
    udp_connections = Column(Integer, nullable=False, default=0)

    load_avg_1 = Column(Float, nullable=False, default=0.0)
    load_avg_5 = Column(Float, nullable=False, default=0.0)
    load_avg_15 = Column(Float, nullable=False, default=0.0)

    process_count = Column(Integer, nullable=False, default=0)

    # Range scans by agent use the primary key; retention scans by time
    __table_args__ = (
        Index('idx_metrics_timestamp', 'timestamp'),
    )
