"""Push delivery clients."""

from __future__ import annotations

import time
from typing import Any, Optional, Protocol

import httpx

from dnp.config import Settings
from dnp.utils.logging import get_logger


logger = get_logger(__name__)


class PushSender(Protocol):
    """Delivers one push to all devices of a user; returns True when delivered."""

    def send(self, user_id: str, title: str, body: str, data: dict[str, Any]) -> bool:
        ...


class HttpPushSender:
    """POST pushes as JSON to a gateway that fans out to the user's devices."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
        backoff_seconds: float = 1.0,
    ) -> None:
        self.settings = settings or Settings()
        if not self.settings.push_api_url:
            raise ValueError("PUSH_API_URL must be set for push delivery")
        self._client = client
        self.backoff_seconds = backoff_seconds

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.push_api_key:
            headers["Authorization"] = f"Bearer {self.settings.push_api_key}"
        return headers

    def send(self, user_id: str, title: str, body: str, data: dict[str, Any]) -> bool:
        payload = {"userId": user_id, "title": title, "body": body, "data": data}
        try:
            if self._client is not None:
                response = self._post_with_retry(self._client, payload)
            else:
                with httpx.Client(timeout=self.settings.push_timeout_seconds) as client:
                    response = self._post_with_retry(client, payload)
        except httpx.RequestError as exc:
            logger.warning("push.request_failed user_id=%s error=%s", user_id, exc)
            return False

        if response.status_code >= 400:
            logger.warning(
                "push.rejected user_id=%s status=%s body=%s",
                user_id,
                response.status_code,
                response.text[:200],
            )
            return False
        return True

    def _post_with_retry(self, client: httpx.Client, payload: dict[str, Any]) -> httpx.Response:
        """POST with simple retry and backoff on 5xx and network errors."""
        retries = self.settings.push_max_retries
        attempt = 0
        while True:
            try:
                response = client.post(
                    self.settings.push_api_url, json=payload, headers=self._headers()
                )
                if response.status_code >= 500 and attempt < retries:
                    attempt += 1
                    time.sleep(min(self.backoff_seconds * 2**attempt, 8))
                    continue
                return response
            except httpx.RequestError:
                attempt += 1
                if attempt > retries:
                    raise
                time.sleep(min(self.backoff_seconds * 2**attempt, 8))
