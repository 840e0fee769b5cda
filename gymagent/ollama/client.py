"""Async chat client for the Ollama server."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

import ollama

from gymagent.ollama.models import ChatResponse

if TYPE_CHECKING:
    from gymagent.database import Database

logger = logging.getLogger(__name__)


class OllamaClient:
    """Chat completions with retries, each exchange recorded in the prompt log.

    Callers share one instance. Errors from the server are retried up to
    ``max_retries`` times in total and the final one is re-raised.
    """

    def __init__(
        self,
        api_url: str,
        model: str,
        db: Database | None = None,
        *,
        max_retries: int,
        retry_delay: float,
    ):
        self.model = model
        self.db = db
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.client = ollama.AsyncClient(host=api_url.rstrip("/"))
        logger.info("Ollama client ready: %s (%s)", api_url, model)

    async def chat(self, messages: list[dict], format: dict | str | None = None) -> ChatResponse:
        """Send ``messages`` and return the completion.

        Args:
            messages: Chat messages, each a dict with ``role`` and ``content``
            format: ``"json"`` or a JSON schema to constrain the output

        Raises:
            Exception: Whatever the SDK raised on the last attempt
        """
        attempt = 1
        while True:
            try:
                return await self._exchange(list(messages), format)
            except Exception as e:
                if attempt >= self.max_retries:
                    logger.error("Ollama chat gave up after %d attempts: %s", attempt, e)
                    raise
                logger.warning("Ollama chat attempt %d/%d failed: %s", attempt, self.max_retries, e)
                attempt += 1
                await asyncio.sleep(self.retry_delay)

    async def _exchange(self, messages: list[dict], format: dict | str | None) -> ChatResponse:
        request: dict = {"model": self.model, "messages": messages}
        if format is not None:
            request["format"] = format

        started = time.monotonic()
        raw = await self.client.chat(**request)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        response = ChatResponse.model_validate(raw.model_dump())
        if response.reasoning:
            logger.debug("Model reasoning: %s", response.reasoning[:200])
        logger.debug("Model replied in %dms: %s", elapsed_ms, response.content)

        if self.db is not None:
            self.db.log_prompt(
                model=self.model,
                messages=messages,
                response=response.model_dump(mode="json"),
                thinking=response.reasoning,
                duration_ms=elapsed_ms,
            )
        return response
