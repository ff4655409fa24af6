"""
Ingestion of agent frames arriving over WebSocket connections.
"""
import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from fastapi import WebSocket, status
from starlette.concurrency import run_in_threadpool

from shared.codec import DecodeError, decode
from shared.constants import READ_TIMEOUT_SECONDS
from shared.schemas import MetricsSnapshot
from .errors import StorageError
from .registry import AgentRegistry
from .store import TimeSeriesStore

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Lifecycle of one inbound connection."""
    UPGRADED = "upgraded"
    IDENTIFIED = "identified"
    STREAMING = "streaming"
    CLOSED = "closed"


@dataclass
class ConnectionSession:
    """Per-connection bookkeeping, owned by the task serving that connection."""
    remote_addr: str
    connection: Any = None
    agent_id: Optional[str] = None
    state: ConnectionState = ConnectionState.UPGRADED
    frames: int = 0
    dropped: int = 0


class ConnectionRegistry:
    """Routing map of agent id to its live connection."""

    def __init__(self):
        self._lock = threading.Lock()
        self._connections: Dict[str, Any] = {}

    def bind(self, agent_id: str, connection: Any):
        with self._lock:
            self._connections[agent_id] = connection

    def release(self, agent_id: str, connection: Any) -> bool:
        """Remove the mapping, but only if it still points at this connection."""
        with self._lock:
            if self._connections.get(agent_id) is connection:
                del self._connections[agent_id]
                return True
            return False

    def get(self, agent_id: str) -> Optional[Any]:
        with self._lock:
            return self._connections.get(agent_id)

    def count(self) -> int:
        with self._lock:
            return len(self._connections)


class IngestionHandler:
    """
    Decodes frames and fans them out to the registry and the store.

    The registry upsert and the sample append are independent: a failure
    in one is logged and does not prevent the other. A frame that cannot be
    decoded is dropped and the connection stays open.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        store: TimeSeriesStore,
        connections: ConnectionRegistry,
        encryption_key: Optional[str],
        accept_plaintext: bool = True,
        read_timeout: float = READ_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.registry = registry
        self.store = store
        self.connections = connections
        self.encryption_key = encryption_key or None
        self.accept_plaintext = accept_plaintext
        self.read_timeout = read_timeout
        self.clock = clock

    def _identify(self, session: ConnectionSession, agent_id: str):
        if session.agent_id and session.agent_id != agent_id:
            logger.warning(f"Connection {session.remote_addr} switched agent id {session.agent_id} -> {agent_id}")
            self.connections.release(session.agent_id, session.connection)

        if session.agent_id != agent_id:
            logger.info(f"Agent {agent_id} identified on {session.remote_addr}")
        session.agent_id = agent_id
        self.connections.bind(agent_id, session.connection)
        if session.state == ConnectionState.UPGRADED:
            session.state = ConnectionState.IDENTIFIED

    def ingest_frame(self, payload: Union[bytes, str], session: ConnectionSession) -> Optional[MetricsSnapshot]:
        """
        Process one inbound frame.

        Returns:
            The decoded snapshot, or None if the frame was dropped
        """
        now = int(self.clock())
        session.frames += 1

        if session.agent_id:
            try:
                self.registry.touch_last_seen(session.agent_id, now)
            except StorageError as e:
                logger.error(f"Failed to refresh last_seen for {session.agent_id}: {e}")
            except Exception:
                logger.exception(f"Unexpected error refreshing last_seen for {session.agent_id}")

        try:
            frame = decode(payload, self.encryption_key, accept_plaintext=self.accept_plaintext)
        except DecodeError as e:
            session.dropped += 1
            logger.warning(f"Dropping undecodable frame from {session.remote_addr}: {e}")
            return None

        snapshot = frame.snapshot
        if not snapshot.agent_id:
            session.dropped += 1
            logger.warning(f"Dropping frame without agent id from {session.remote_addr}")
            return None

        self._identify(session, snapshot.agent_id)

        try:
            self.registry.upsert(
                snapshot.agent_id,
                snapshot.system_info.hostname,
                snapshot.system_info.platform,
                session.remote_addr,
                now
            )
        except StorageError as e:
            logger.error(f"Failed to update agent {snapshot.agent_id}: {e}")
        except Exception:
            logger.exception(f"Unexpected error updating agent {snapshot.agent_id}")

        try:
            self.store.append(snapshot)
        except StorageError as e:
            logger.error(f"Failed to store metrics for {snapshot.agent_id}: {e}")
        except Exception:
            logger.exception(f"Unexpected error storing metrics for {snapshot.agent_id}")

        session.state = ConnectionState.STREAMING
        logger.debug(f"Ingested {frame.mode.value} frame from {snapshot.agent_id}")
        return snapshot

    async def serve(self, websocket: WebSocket):
        """
        Serve one agent connection until it closes or goes silent.

        Frames of one connection are processed strictly in arrival order.
        """
        await websocket.accept()

        client = websocket.client
        remote_addr = f"{client.host}:{client.port}" if client else ""
        session = ConnectionSession(remote_addr=remote_addr, connection=websocket)
        logger.info(f"Connection opened from {remote_addr}")

        try:
            while True:
                try:
                    message = await asyncio.wait_for(websocket.receive(), timeout=self.read_timeout)
                except asyncio.TimeoutError:
                    logger.warning(f"No frame from {remote_addr} in {self.read_timeout}s, closing")
                    await self._close(websocket)
                    break

                if message["type"] == "websocket.disconnect":
                    break

                payload = message.get("bytes")
                if payload is None:
                    payload = message.get("text")
                if not payload:
                    continue

                # Database work runs off the event loop
                await run_in_threadpool(self.ingest_frame, payload, session)
        finally:
            session.state = ConnectionState.CLOSED
            if session.agent_id:
                self.connections.release(session.agent_id, websocket)
            logger.info(
                f"Connection closed from {remote_addr} (agent={session.agent_id}, "
                f"frames={session.frames}, dropped={session.dropped})"
            )

    async def _close(self, websocket: WebSocket):
        try:
            await websocket.close(code=status.WS_1001_GOING_AWAY)
        except RuntimeError as e:
            logger.debug(f"Connection already closed: {e}")
