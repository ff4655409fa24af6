"""
Operator-assigned display names, persisted as a JSON map of agent id to name.
"""
import json
import logging
import os
import threading
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class HostnameOverrides:
    """JSON-file backed name overrides keyed by agent id."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def ensure_exists(self):
        """Create an empty map file if none exists yet."""
        with self._lock:
            if not os.path.exists(self.path):
                self._write({})

    def _read(self) -> Dict[str, str]:
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read hostname overrides from {self.path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed hostname overrides in {self.path}")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: Dict[str, str]):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)

    def get(self, agent_id: str) -> Optional[str]:
        with self._lock:
            name = self._read().get(agent_id)
        return name or None

    def set(self, agent_id: str, name: str):
        """Record a display name, replacing any previous one."""
        with self._lock:
            data = self._read()
            data[agent_id] = name
            self._write(data)

