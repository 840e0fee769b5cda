"""Webhook dispatch channel: hands messages to an external email/SMS relay over HTTP."""

from __future__ import annotations

import asyncio
import logging

import httpx

from gymagent.channels.base import DispatchChannel, DispatchResult

logger = logging.getLogger(__name__)

# Relay responses worth retrying
_TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}


class WebhookChannel(DispatchChannel):
    """POSTs ``{"destination": ..., "text": ...}`` JSON to a relay URL."""

    def __init__(
        self,
        url: str,
        timeout: float = 15.0,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the webhook channel.

        Args:
            url: Relay endpoint receiving outbound messages
            timeout: Request timeout in seconds
            max_retries: Extra attempts after a transient failure
            retry_delay: Initial backoff in seconds (doubled per retry)
            http_client: Preconfigured client, e.g. one with a custom transport
        """
        self.url = url
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)
        logger.info("Initialized webhook channel: %s", url)

    async def send(self, destination: str, text: str) -> DispatchResult:
        payload = {"destination": destination, "text": text}

        delay = self.retry_delay
        for attempt in range(self.max_retries + 1):
            try:
                response = await self.http_client.post(self.url, json=payload)
                response.raise_for_status()
                return self._handle_send_response(response, destination, text)

            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                logger.error(
                    "Webhook dispatch failed: status: %d, body: %s", status, e.response.text[:200]
                )
                if status in _TRANSIENT_STATUS_CODES and attempt < self.max_retries:
                    logger.info(
                        "Transient relay error, retrying in %.2fs (attempt %d/%d)",
                        delay,
                        attempt + 1,
                        self.max_retries,
                    )
                    await asyncio.sleep(delay)
                    delay *= 2
                    continue
                return DispatchResult(ok=False, error=f"HTTP {status}")

            except httpx.HTTPError as e:
                logger.error("Webhook dispatch error: %s", e)
                return DispatchResult(ok=False, error=str(e) or e.__class__.__name__)

        return DispatchResult(ok=False, error="retries exhausted")

    def _handle_send_response(
        self, response: httpx.Response, destination: str, text: str
    ) -> DispatchResult:
        external_id = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("id") is not None:
                external_id = str(body["id"])

        logger.info(
            "Dispatched message to %s (length: %d, id: %s), status: %d",
            destination,
            len(text),
            external_id,
            response.status_code,
        )
        return DispatchResult(ok=True, external_id=external_id)

    async def close(self) -> None:
        await self.http_client.aclose()
