"""
Shared data models and schemas for Fleet Monitor.
Used by the agent, the collector and the CLI.

Every numeric field defaults to an explicit zero so a frame that omits a
category still decodes; unknown keys are ignored.
"""
from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base for field-tagged wire records."""
    model_config = ConfigDict(extra="ignore")


class MemoryInfo(WireModel):
    """Physical memory usage."""
    total: int = Field(0, description="Total memory in bytes")
    used: int = Field(0, description="Used memory in bytes")
    percent: float = Field(0.0, description="Used memory percent as reported")


class DiskInfo(WireModel):
    """Root filesystem usage."""
    total: int = Field(0, description="Total disk space in bytes")
    used: int = Field(0, description="Used disk space in bytes")
    percent: float = Field(0.0, description="Used disk percent as reported")


class NetworkInfo(WireModel):
    """Network counters. Byte counters are monotonic but may reset."""
    bytes_sent: int = Field(0, description="Bytes sent since boot")
    bytes_recv: int = Field(0, description="Bytes received since boot")
    tcp_connections: int = Field(0, description="Open TCP sockets")
    udp_connections: int = Field(0, description="Open UDP sockets")


class LoadAverage(WireModel):
    """System load averages."""
    load1: float = 0.0
    load5: float = 0.0
    load15: float = 0.0


class SystemInfo(WireModel):
    """Self-reported host identity."""
    hostname: str = ""
    os: str = ""
    platform: str = ""
    kernel_version: str = ""


class MetricsSnapshot(WireModel):
    """One sampling tick, as sent from agent to collector."""
    agent_id: str = Field("", description="Stable agent identifier")
    timestamp: int = Field(0, description="Agent wall-clock unix seconds at capture")
    cpu_usage: float = Field(0.0, description="CPU usage percent")
    memory_info: MemoryInfo = Field(default_factory=MemoryInfo)
    disk_info: DiskInfo = Field(default_factory=DiskInfo)
    network_info: NetworkInfo = Field(default_factory=NetworkInfo)
    load_average: LoadAverage = Field(default_factory=LoadAverage)
    process_count: int = 0
    system_info: SystemInfo = Field(default_factory=SystemInfo)
    uptime_seconds: int = 0


class MetricSampleView(BaseModel):
    """Stored sample as returned by GET /api/agents/{id}/metrics."""
    timestamp: int
    cpu_usage: float
    memory_info: MemoryInfo
    disk_info: DiskInfo
    network_info: NetworkInfo
    load_average: LoadAverage
    process_count: int


class AgentView(BaseModel):
    """Agent as returned by GET /api/agents."""
    id: str = Field(..., description="Stable agent ID")
    name: str = Field(..., description="Display name")
    hostname: str = Field(..., description="Last reported hostname")
    platform: str = Field(..., description="Last reported platform")
    ip_address: str = Field(..., description="Last remote address")
    is_online: bool = Field(..., description="Derived from last_seen on every read")
    last_seen: Optional[datetime] = Field(None, description="Last ingested frame")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AgentUpdate(BaseModel):
    """Body of PUT /api/agents/{id}. Only the display name is writable."""
    name: str = Field(..., min_length=1, max_length=255)


class AgentDeleteResponse(BaseModel):
    """Response to DELETE /api/agents/{id}."""
    message: str
    agent_id: str
    metrics_deleted: int


class WebhookTarget(BaseModel):
    """One notification target from the webhook configuration file."""
    name: str = ""
    type: Literal["serverchan", "custom"]
    sendkey: Optional[str] = None
    url: Optional[str] = None
    enabled: bool = False


class WebhookTestResponse(BaseModel):
    """Result of POST /api/webhook/test."""
    message: str
    detail: Optional[str] = None
