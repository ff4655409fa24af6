"""
Agent registry: durable identity and liveness records.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from shared.constants import ONLINE_THRESHOLD_SECONDS, UNKNOWN_HOSTNAME, UNKNOWN_PLATFORM
from shared.schemas import AgentView
from .database import Agent, Database
from .errors import AgentNotFoundError
from .overrides import HostnameOverrides
from .store import TimeSeriesStore

logger = logging.getLogger(__name__)


def is_online(last_seen: Optional[int], now: float, threshold: float = ONLINE_THRESHOLD_SECONDS) -> bool:
    """An agent is online while its last contact is younger than the threshold."""
    if not last_seen:
        return False
    return now - last_seen < threshold


def strip_port(remote_addr: str) -> str:
    """Drop the port from "host:port" or "[v6]:port"."""
    if not remote_addr:
        return ""
    if remote_addr.startswith("["):
        return remote_addr[1:].split("]", 1)[0]
    if remote_addr.count(":") == 1:
        return remote_addr.rsplit(":", 1)[0]
    return remote_addr


def _as_datetime(epoch: Optional[int]) -> Optional[datetime]:
    if not epoch:
        return None
    return datetime.fromtimestamp(epoch, tz=timezone.utc)


class AgentRegistry:
    """
    Owns the agents table.

    Display names are first-write-wins: once an agent has a name, only an
    explicit rename changes it. Hostname, platform and address are
    last-write-wins from the agent's own reports.
    """

    def __init__(
        self,
        database: Database,
        store: TimeSeriesStore,
        overrides: HostnameOverrides,
        online_threshold: float = ONLINE_THRESHOLD_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.database = database
        self.store = store
        self.overrides = overrides
        self.online_threshold = online_threshold
        self.clock = clock

    def _view(self, agent: Agent, now: float) -> AgentView:
        hostname = agent.hostname or UNKNOWN_HOSTNAME
        return AgentView(
            id=agent.id,
            name=agent.name or hostname,
            hostname=hostname,
            platform=agent.platform or UNKNOWN_PLATFORM,
            ip_address=agent.ip_address or "",
            is_online=is_online(agent.last_seen, now, self.online_threshold),
            last_seen=_as_datetime(agent.last_seen),
            created_at=_as_datetime(agent.created_at),
            updated_at=_as_datetime(agent.updated_at)
        )

    def upsert(self, agent_id: str, hostname: str, platform: str, ip_address: str, now: int = None):
        """
        Insert or refresh an agent from a frame it sent.

        Raises:
            StorageError: if the write failed
        """
        now = int(now if now is not None else self.clock())
        hostname = hostname or UNKNOWN_HOSTNAME
        platform = platform or UNKNOWN_PLATFORM
        ip_address = strip_port(ip_address)
        initial_name = self.overrides.get(agent_id) or hostname

        stmt = sqlite_insert(Agent).values(
            id=agent_id,
            name=initial_name,
            hostname=hostname,
            platform=platform,
            ip_address=ip_address,
            last_seen=now,
            created_at=now,
            updated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[Agent.id],
            set_={
                "name": func.coalesce(func.nullif(Agent.name, ""), stmt.excluded.name),
                "hostname": stmt.excluded.hostname,
                "platform": stmt.excluded.platform,
                "ip_address": stmt.excluded.ip_address,
                "last_seen": stmt.excluded.last_seen,
                "updated_at": stmt.excluded.updated_at,
            }
        )
        with self.database.session_scope() as session:
            session.execute(stmt)

    def touch_last_seen(self, agent_id: str, now: int = None) -> bool:
        """
        Refresh last contact time without touching anything else.

        Returns:
            True if the agent exists
        """
        now = int(now if now is not None else self.clock())
        with self.database.session_scope() as session:
            result = session.execute(
                update(Agent).where(Agent.id == agent_id).values(last_seen=now)
            )
            return result.rowcount > 0

    def list(self) -> List[AgentView]:
        """All agents, newest registration first, with online state computed now."""
        now = self.clock()
        stmt = select(Agent).order_by(Agent.created_at.desc(), Agent.id)
        with self.database.session_scope() as session:
            return [self._view(agent, now) for agent in session.scalars(stmt)]

    def exists(self, agent_id: str) -> bool:
        with self.database.session_scope() as session:
            return session.get(Agent, agent_id) is not None

    def get(self, agent_id: str) -> AgentView:
        """
        Get one agent.

        Raises:
            AgentNotFoundError: if the id is unknown
        """
        now = self.clock()
        with self.database.session_scope() as session:
            agent = session.get(Agent, agent_id)
            if agent is None:
                raise AgentNotFoundError(agent_id)
            return self._view(agent, now)

    def last_seen(self, agent_id: str) -> Optional[int]:
        with self.database.session_scope() as session:
            return session.scalar(select(Agent.last_seen).where(Agent.id == agent_id))

    def rename(self, agent_id: str, name: str) -> AgentView:
        """
        Set the operator display name. Reported fields are left alone.

        The name is also written to the override map so it survives the
        agent being deleted and registering again.

        Raises:
            AgentNotFoundError: if the id is unknown
        """
        now = int(self.clock())
        with self.database.session_scope() as session:
            result = session.execute(
                update(Agent).where(Agent.id == agent_id).values(name=name, updated_at=now)
            )
            if result.rowcount == 0:
                raise AgentNotFoundError(agent_id)

        try:
            self.overrides.set(agent_id, name)
        except OSError as e:
            logger.warning(f"Renamed agent {agent_id} but could not persist override: {e}")

        logger.info(f"Agent {agent_id} renamed to {name!r}")
        return self.get(agent_id)

    def delete(self, agent_id: str) -> int:
        """
        Delete an agent and all of its samples in one transaction.

        Returns:
            Number of samples deleted

        Raises:
            AgentNotFoundError: if the id is unknown
        """
        with self.database.session_scope() as session:
            metrics_deleted = self.store.purge_for_agent(agent_id, session=session)
            result = session.execute(delete(Agent).where(Agent.id == agent_id))
            if result.rowcount == 0:
                raise AgentNotFoundError(agent_id)

        logger.info(f"Deleted agent {agent_id} and {metrics_deleted} samples")
        return metrics_deleted
