"""
Persistent WebSocket link from the agent to the collector.
"""
import logging
import threading
from enum import Enum
from typing import Any, Callable

from websockets.exceptions import WebSocketException
from websockets.sync.client import connect

from shared.constants import HANDSHAKE_TIMEOUT_SECONDS, PROBE_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

# Failures that mean "this connection is unusable, drop it and retry next tick"
LINK_ERRORS = (OSError, TimeoutError, WebSocketException)


class LinkState(str, Enum):
    """Connection lifecycle as seen by the agent."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class LinkManager:
    """
    Owns the single outbound connection of an agent process.

    Before every send the existing connection is probed with a control
    ping. A dead connection is torn down and one new handshake is
    attempted; if that fails the frame is dropped and the caller retries
    on the next tick. There is no backoff beyond the sampling interval.

    The connection handle is guarded by a lock so overlapping ticks never
    use it concurrently.
    """

    def __init__(
        self,
        server_url: str,
        handshake_timeout: float = HANDSHAKE_TIMEOUT_SECONDS,
        probe_timeout: float = PROBE_TIMEOUT_SECONDS,
        connector: Callable[..., Any] = connect,
    ):
        """
        Initialize the link.

        Args:
            server_url: Collector ingestion URL (e.g., ws://10.0.0.5:8080/ws)
            handshake_timeout: Upper bound on opening a connection
            probe_timeout: How long to wait for the pong of a liveness probe
            connector: Factory returning a connected websocket, for tests
        """
        self.server_url = server_url
        self.handshake_timeout = handshake_timeout
        self.probe_timeout = probe_timeout
        self._connector = connector
        self._lock = threading.Lock()
        self._conn = None
        self.state = LinkState.DISCONNECTED

    def _set_state(self, state: LinkState, reason: str = ""):
        if state != self.state:
            suffix = f" ({reason})" if reason else ""
            logger.info(f"Link {self.state.value} -> {state.value}{suffix}")
        self.state = state

    def _open(self):
        """Perform a bounded handshake. Caller holds the lock."""
        self._set_state(LinkState.CONNECTING)
        try:
            conn = self._connector(self.server_url, open_timeout=self.handshake_timeout)
        except LINK_ERRORS as e:
            logger.warning(f"Failed to connect to {self.server_url}: {e}")
            self._set_state(LinkState.DISCONNECTED, "handshake failure")
            return None

        self._conn = conn
        self._set_state(LinkState.CONNECTED)
        return conn

    def _probe(self, conn) -> bool:
        """Send a control ping and wait for its pong."""
        try:
            pong = conn.ping()
            return pong.wait(self.probe_timeout)
        except LINK_ERRORS as e:
            logger.debug(f"Liveness probe failed: {e}")
            return False

    def _teardown(self, reason: str):
        """Close and forget the current connection. Caller holds the lock."""
        conn, self._conn = self._conn, None
        if conn is not None:
            try:
                conn.close()
            except LINK_ERRORS as e:
                logger.debug(f"Error closing connection: {e}")
        self._set_state(LinkState.DISCONNECTED, reason)

    def _acquire(self):
        """Return a live connection, reconnecting once if needed. Caller holds the lock."""
        if self._conn is not None:
            if self._probe(self._conn):
                return self._conn
            self._teardown("ping failure")
            logger.info("Connection lost, reconnecting...")
        return self._open()

    def send(self, frame: bytes) -> bool:
        """
        Send one encoded frame.

        Returns:
            True if the frame was written, False if it was dropped
        """
        with self._lock:
            conn = self._acquire()
            if conn is None:
                return False

            try:
                conn.send(frame)
            except LINK_ERRORS as e:
                logger.warning(f"Failed to send frame: {e}")
                self._teardown("write failure")
                return False

        return True

    def close(self):
        """Close the connection on shutdown."""
        with self._lock:
            if self._conn is not None:
                self._teardown("shutdown")
