"""LINE Messaging API push client.

Pushes structured (flex) messages to a LINE user. ``send`` never raises:
transport errors and non-2xx responses are logged and reported as False.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from nutricoach.config.settings import settings

HTTP_TIMEOUT = 10.0


class LineMessagingClient:
    """Push-message client over ``httpx.AsyncClient``."""

    def __init__(
        self,
        access_token: str | None = None,
        api_base: str | None = None,
        timeout: float = HTTP_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            access_token: Channel access token. Reads from settings when not provided.
            api_base: API root, e.g. https://api.line.me/v2
            timeout: Per-request timeout in seconds
            client: Pre-built HTTP client (tests pass one with a mock transport)
        """
        self.access_token = (access_token if access_token is not None else settings.line_channel_access_token).strip()
        self.api_base = (api_base or settings.line_api_base).rstrip("/")
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def send(self, external_user_id: str, message: dict[str, Any]) -> bool:
        """Push one message to a LINE user.

        Returns:
            True on a 2xx response, False otherwise
        """
        if not self.access_token:
            logger.warning("LINE channel access token not configured, message not sent")
            return False

        try:
            response = await self._get_client().post(
                f"{self.api_base}/bot/message/push",
                headers={"Authorization": f"Bearer {self.access_token}"},
                json={"to": external_user_id, "messages": [message]},
            )
        except httpx.HTTPError as e:
            logger.warning("LINE push failed", error_type=type(e).__name__, error=str(e))
            return False

        if not response.is_success:
            logger.warning("LINE push rejected", status_code=response.status_code, body=response.text[:200])
            return False
        return True
