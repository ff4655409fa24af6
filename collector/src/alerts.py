"""
Periodic alert evaluation over the registry and the store.
"""
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from shared.constants import CPU_OVERLOAD_PERCENT, OFFLINE_ALERT_SECONDS, OVERLOAD_DURATION_SECONDS
from shared.schemas import AgentView
from .errors import FleetMonitorError
from .notifier import Notifier
from .registry import AgentRegistry
from .store import TimeSeriesStore

logger = logging.getLogger(__name__)

ALERT_OFFLINE = "offline"
ALERT_OVERLOAD = "overload"


@dataclass
class AlertState:
    """Per-agent notification bookkeeping. Lost on restart."""
    offline_alerted: bool = False
    overload_start: Optional[int] = None
    overload_alerted: bool = False


@dataclass
class Alert:
    """A notification fired by a sweep."""
    agent_id: str
    kind: str
    title: str
    message: str


class AlertEvaluator:
    """
    Edge-triggered offline and sustained-overload detection.

    Each condition notifies once when it starts and re-arms only after it
    clears. The overload window is measured on sample timestamps, so it
    does not depend on how often the sweep runs.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        store: TimeSeriesStore,
        notifier: Notifier,
        offline_threshold: float = OFFLINE_ALERT_SECONDS,
        cpu_threshold: float = CPU_OVERLOAD_PERCENT,
        overload_duration: int = OVERLOAD_DURATION_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.registry = registry
        self.store = store
        self.notifier = notifier
        self.offline_threshold = offline_threshold
        self.cpu_threshold = cpu_threshold
        self.overload_duration = overload_duration
        self.clock = clock
        self._states: Dict[str, AlertState] = {}
        self._lock = threading.Lock()

    def state_for(self, agent_id: str) -> AlertState:
        return self._states.setdefault(agent_id, AlertState())

    def _fire(self, agent: AgentView, kind: str, title: str, message: str) -> Alert:
        logger.warning(f"{title}: {message}")
        self.notifier.dispatch(title, message)
        return Alert(agent_id=agent.id, kind=kind, title=title, message=message)

    def _check_offline(self, agent: AgentView, state: AlertState, now: float) -> Optional[Alert]:
        last_seen = agent.last_seen.timestamp() if agent.last_seen else 0
        if now - last_seen > self.offline_threshold:
            if state.offline_alerted:
                return None
            state.offline_alerted = True
            seen = agent.last_seen.isoformat() if agent.last_seen else "never"
            return self._fire(
                agent,
                ALERT_OFFLINE,
                "Agent offline",
                f"Agent {agent.name} ({agent.id}) is offline, last seen {seen}"
            )

        if state.offline_alerted:
            logger.info(f"Agent {agent.id} is back online")
        state.offline_alerted = False
        return None

    def _check_overload(self, agent: AgentView, state: AlertState) -> Optional[Alert]:
        sample = self.store.latest(agent.id)
        if sample is None or sample.cpu_usage <= self.cpu_threshold:
            if state.overload_start is not None:
                logger.info(f"Agent {agent.id} CPU back under {self.cpu_threshold}%")
            state.overload_start = None
            state.overload_alerted = False
            return None

        if state.overload_start is None:
            state.overload_start = sample.timestamp
            logger.info(f"Agent {agent.id} CPU above {self.cpu_threshold}% since {sample.timestamp}")

        lasted = sample.timestamp - state.overload_start
        if lasted < self.overload_duration or state.overload_alerted:
            return None

        state.overload_alerted = True
        return self._fire(
            agent,
            ALERT_OVERLOAD,
            "Agent overloaded",
            f"Agent {agent.name} ({agent.id}) has been above {self.cpu_threshold:.0f}% CPU "
            f"for {lasted // 60} minutes, current CPU: {sample.cpu_usage:.2f}%"
        )

    def sweep(self, now: float = None) -> List[Alert]:
        """
        Evaluate every known agent once.

        A failure while evaluating one agent is logged and the sweep moves
        on to the next.

        Returns:
            Notifications fired during this sweep
        """
        now = now if now is not None else self.clock()
        fired = []

        with self._lock:
            try:
                agents = self.registry.list()
            except FleetMonitorError as e:
                logger.error(f"Alert sweep could not list agents: {e}")
                return fired

            for agent in agents:
                state = self.state_for(agent.id)
                try:
                    alert = self._check_offline(agent, state, now)
                    if alert is not None:
                        fired.append(alert)
                    alert = self._check_overload(agent, state)
                    if alert is not None:
                        fired.append(alert)
                except FleetMonitorError as e:
                    logger.error(f"Alert evaluation failed for agent {agent.id}: {e}")
                except Exception:
                    logger.exception(f"Unexpected error evaluating agent {agent.id}")

            # Forget agents that were deleted
            known = {agent.id for agent in agents}
            for agent_id in list(self._states):
                if agent_id not in known:
                    del self._states[agent_id]

        if fired:
            logger.info(f"Alert sweep at {datetime.fromtimestamp(now, tz=timezone.utc).isoformat()} fired {len(fired)} notifications")
        return fired
