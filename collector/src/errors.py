"""
Collector exceptions.
"""


class FleetMonitorError(Exception):
    """Base class for collector errors."""


class AgentNotFoundError(FleetMonitorError):
    """The referenced agent id is not in the registry."""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent {agent_id} not found")


class StorageError(FleetMonitorError):
    """A registry or store operation failed in the database."""
