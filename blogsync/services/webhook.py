"""Webhook used to restart the container serving the local mirror."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

import httpx

from blogsync.config import WebhookSettings

LOGGER = logging.getLogger(__name__)

_SUCCESS_CODES = {200, 204}


class WebhookClient:
    """POST ``{"action", "timestamp"}`` payloads to the configured URL."""

    def __init__(
        self,
        url: str,
        token: str = "",
        *,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not url:
            raise ValueError("A webhook URL is required")
        self.url = url
        self._token = token.strip()
        self._client = client or httpx.Client(timeout=timeout)
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: WebhookSettings, **kwargs) -> "WebhookClient":
        return cls(settings.url, settings.token, timeout=settings.timeout, **kwargs)

    def trigger_restart(self) -> bool:
        """Ask the server to restart; only 200 and 204 count as success."""

        response = self._post("restart")
        if response is None:
            return False
        if response.status_code in _SUCCESS_CODES:
            LOGGER.info("Restart webhook accepted (%s)", response.status_code)
            return True
        LOGGER.error("Restart webhook failed with status %s: %s", response.status_code, response.text[:200])
        return False

    def test_connection(self) -> bool:
        """Return ``True`` when the endpoint answers, including 4xx for an unimplemented test action."""

        response = self._post("test")
        if response is None:
            return False
        if response.status_code in _SUCCESS_CODES:
            return True
        if 400 <= response.status_code < 500:
            LOGGER.warning("Webhook endpoint returned client error: %s", response.status_code)
            return True
        return False

    def _post(self, action: str) -> httpx.Response | None:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        payload = {"action": action, "timestamp": int(self._clock() * 1000)}
        try:
            return self._client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            LOGGER.error("Webhook %s request failed: %s", action, exc)
            return None


__all__ = ["WebhookClient"]
