"""
Voice call provider interface and an HTTP gateway implementation.

The provider is push-based: lifecycle and transcript events arrive
through the /sessions/{id}/events webhook and are fed to the call
session. This module only covers the imperative control side.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from prepwise.utils.config import config
from prepwise.utils.errors import ProviderConnectionError

logger = logging.getLogger(__name__)


class VoiceCallProvider(ABC):
    """Imperative control surface of a real-time voice provider."""

    @abstractmethod
    def connect(
        self,
        agent_config: Dict[str, Any],
        variables: Dict[str, str],
        attempt_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Start a call with the given agent.

        Events for the call must carry `attempt_id` back so that callbacks
        from an earlier, abandoned call can be told apart.

        Returns:
            Provider call id, if the provider issues one

        Raises:
            ProviderConnectionError: if the call could not be started
        """

    @abstractmethod
    def disconnect(self) -> None:
        """Stop the current call."""

    @abstractmethod
    def mute(self) -> None:
        """Mute the user's microphone."""

    @abstractmethod
    def unmute(self) -> None:
        """Unmute the user's microphone."""


class HttpVoiceProvider(VoiceCallProvider):
    """
    Talks to a voice gateway over REST.

    The gateway is told to deliver call events to this service's webhook
    for the owning session.
    """

    def __init__(
        self,
        session_id: str,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        http: Optional[requests.Session] = None,
    ):
        self.session_id = session_id
        self.base_url = (base_url or config.voice.base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else config.voice.api_key
        self.timeout = config.voice.timeout
        self.http = http or requests.Session()
        self.call_id: Optional[str] = None

    @property
    def webhook_url(self) -> str:
        return f"{config.voice.webhook_base_url.rstrip('/')}/sessions/{self.session_id}/events"

    def event_url(self, attempt_id: Optional[str]) -> str:
        if not attempt_id:
            return self.webhook_url
        return f"{self.webhook_url}?attempt={attempt_id}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post(self, path: str, operation: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.http.post(url, json=payload or {}, headers=self._headers(), timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ProviderConnectionError(f"Voice gateway {operation} failed: {e}", operation=operation) from e

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def _require_call(self, operation: str) -> str:
        if not self.call_id:
            raise ProviderConnectionError(f"Cannot {operation}: no call in progress", operation=operation)
        return self.call_id

    def connect(
        self,
        agent_config: Dict[str, Any],
        variables: Dict[str, str],
        attempt_id: Optional[str] = None,
    ) -> Optional[str]:
        logger.info(f"Connecting voice call for session {self.session_id}")
        body = self._post(
            "/calls",
            "connect",
            {
                "assistant": agent_config,
                "assistantOverrides": {"variableValues": variables},
                "serverUrl": self.event_url(attempt_id),
                "metadata": {"sessionId": self.session_id, "attemptId": attempt_id},
            },
        )
        self.call_id = body.get("id")
        logger.info(f"Voice call created: {self.call_id}")
        return self.call_id

    def disconnect(self) -> None:
        call_id = self._require_call("disconnect")
        self._post(f"/calls/{call_id}/stop", "disconnect")

    def mute(self) -> None:
        call_id = self._require_call("mute")
        self._post(f"/calls/{call_id}/control", "mute", {"control": "mute"})

    def unmute(self) -> None:
        call_id = self._require_call("unmute")
        self._post(f"/calls/{call_id}/control", "unmute", {"control": "unmute"})
