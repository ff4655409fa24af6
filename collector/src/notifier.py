"""
Outbound webhook notifications.
"""
import json
import logging
import os
import threading
from typing import Dict, List, Optional, Tuple

import requests
from pydantic import TypeAdapter, ValidationError

from shared.constants import SERVERCHAN_URL, WEBHOOK_CUSTOM, WEBHOOK_SERVERCHAN
from shared.schemas import WebhookTarget, WebhookTestResponse

logger = logging.getLogger(__name__)

TEST_TITLE = "Webhook test"
TEST_MESSAGE = "This is a test message from Fleet Monitor. The webhook is configured correctly."

_targets_adapter = TypeAdapter(List[WebhookTarget])


class WebhookConfigStore:
    """The externally owned webhook list, a JSON array of targets."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def ensure_exists(self):
        with self._lock:
            if not os.path.exists(self.path):
                self._write([])

    def load(self) -> List[WebhookTarget]:
        """
        Read the configured targets.

        A missing or malformed file yields an empty list.
        """
        with self._lock:
            try:
                with open(self.path, "r") as f:
                    raw = f.read()
            except FileNotFoundError:
                return []
            except OSError as e:
                logger.error(f"Could not read webhook config {self.path}: {e}")
                return []

        try:
            return _targets_adapter.validate_json(raw or "[]")
        except ValidationError as e:
            logger.error(f"Malformed webhook config {self.path}: {e}")
            return []

    def save(self, targets: List[WebhookTarget]):
        with self._lock:
            self._write([t.model_dump() for t in targets])
        logger.info(f"Saved {len(targets)} webhook targets")

    def _write(self, data: list):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)


class Notifier:
    """
    Delivers alert messages to every enabled webhook target.

    A failure for one target is logged and does not stop delivery to the
    others.
    """

    def __init__(
        self,
        config_store: WebhookConfigStore,
        session: Optional[requests.Session] = None,
        timeout: float = 10,
    ):
        self.config_store = config_store
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': 'FleetMonitorCollector/1.0'})

    def send_serverchan(self, sendkey: str, title: str, message: str) -> Tuple[bool, Optional[str]]:
        """ServerChan reports success as {"code": 0} in the response body."""
        url = SERVERCHAN_URL.format(sendkey=sendkey)
        response = self.session.post(
            url,
            data={"title": title, "desp": message},
            timeout=self.timeout
        )
        try:
            body = response.json()
        except ValueError:
            return False, f"Unparseable response: {response.text[:200]}"

        if not isinstance(body, dict):
            return False, f"Unexpected response: {response.text[:200]}"
        if body.get("code") == 0:
            return True, None
        return False, body.get("message") or f"code={body.get('code')}"

    def send_custom(self, url: str, title: str, message: str) -> Tuple[bool, Optional[str]]:
        response = self.session.post(
            url,
            json={"title": title, "desc": message},
            timeout=self.timeout
        )
        if response.status_code >= 400:
            return False, f"HTTP {response.status_code}"
        return True, None

    def send(self, target: WebhookTarget, title: str, message: str) -> Tuple[bool, Optional[str]]:
        """
        Deliver one message to one target.

        Raises:
            ValueError: if the target type is unsupported or lacks its key/url
            requests.RequestException: on transport failure
        """
        if target.type == WEBHOOK_SERVERCHAN and target.sendkey:
            return self.send_serverchan(target.sendkey, title, message)
        if target.type == WEBHOOK_CUSTOM and target.url:
            return self.send_custom(target.url, title, message)
        raise ValueError(f"Unsupported webhook type or missing parameters for {target.name or target.type}")

    def dispatch(self, title: str, message: str) -> Dict[str, bool]:
        """
        Send to all enabled targets.

        Returns:
            Delivery outcome per target name
        """
        results = {}
        for index, target in enumerate(self.config_store.load()):
            if not target.enabled:
                continue

            label = target.name or f"{target.type}#{index}"
            try:
                ok, detail = self.send(target, title, message)
            except ValueError as e:
                logger.warning(f"Skipping webhook {label}: {e}")
                continue
            except requests.RequestException as e:
                logger.error(f"Webhook {label} delivery failed: {e}")
                ok, detail = False, str(e)
            except Exception as e:
                logger.exception(f"Webhook {label} failed unexpectedly")
                ok, detail = False, str(e)

            if not ok:
                logger.warning(f"Webhook {label} rejected notification: {detail}")
            results[label] = ok

        logger.info(f"Dispatched '{title}' to {sum(results.values())}/{len(results)} targets")
        return results

    def test_target(self, target: WebhookTarget) -> WebhookTestResponse:
        """
        Send a test message through one target, enabled or not.

        Raises:
            ValueError: if the target cannot be used
            requests.RequestException: on transport failure
        """
        ok, detail = self.send(target, TEST_TITLE, TEST_MESSAGE)
        logger.info(f"Webhook test via {target.type}: {'SUCCESS' if ok else 'FAIL'}")
        return WebhookTestResponse(message="SUCCESS" if ok else "FAIL", detail=detail)
