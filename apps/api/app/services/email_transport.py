"""Outbound mail transport.

Campaign sends go through a ``MailTransport``: ``send`` takes an
``OutboundEmail`` and returns the provider message id, or raises
``EmailTransportError`` with a human-readable message. ``ResendTransport``
talks to the Resend HTTP API; ``DryRunTransport`` only logs and is used in
dev when no API key is configured.
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from dataclasses import dataclass
from typing import Protocol

import httpx

from app.core.config import settings
from app.jobs.utils import mask_email

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0
RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})


class EmailTransportError(Exception):
    """Delivery failed; the message is safe to store on the recipient row."""


@dataclass
class OutboundEmail:
    to: str
    subject: str
    html: str | None = None
    text: str | None = None
    from_name: str | None = None
    from_email: str | None = None
    reply_to: str | None = None
    idempotency_key: str | None = None

    @property
    def from_address(self) -> str:
        sender = self.from_email or settings.EMAIL_FROM
        if self.from_name:
            return f"{self.from_name} <{sender}>"
        return sender


class MailTransport(Protocol):
    async def send(self, message: OutboundEmail) -> str: ...


def _backoff(attempt: int) -> float:
    delay = min(RESEND_RETRY_MAX_DELAY, RESEND_RETRY_BASE_DELAY * (2**attempt))
    return delay + random.uniform(0, delay / 2)


def _error_detail(response: httpx.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        return data.get("message") or data.get("error")
    return None


class ResendTransport:
    """Send through the Resend API with retries on transient failures."""

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = 10.0,
        max_attempts: int = 3,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self._client = client

    def _payload(self, message: OutboundEmail) -> dict[str, object]:
        payload: dict[str, object] = {
            "from": message.from_address,
            "to": [message.to],
            "subject": message.subject,
        }
        if message.html:
            payload["html"] = message.html
        if message.text:
            payload["text"] = message.text
        if message.reply_to:
            payload["reply_to"] = message.reply_to
        return payload

    def _headers(self, message: OutboundEmail) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if message.idempotency_key:
            headers["Idempotency-Key"] = message.idempotency_key
        return headers

    async def _post(self, client: httpx.AsyncClient, message: OutboundEmail) -> httpx.Response:
        payload = self._payload(message)
        headers = self._headers(message)
        attempt = 0
        while True:
            try:
                response = await client.post(RESEND_SEND_URL, headers=headers, json=payload)
            except httpx.TimeoutException as exc:
                if attempt >= self.max_attempts - 1:
                    raise EmailTransportError("Connection timeout") from exc
                logger.warning("Resend timeout, retrying (attempt %s)", attempt + 1)
            except httpx.RequestError as exc:
                if attempt >= self.max_attempts - 1:
                    raise EmailTransportError(
                        f"Connection error: {exc.__class__.__name__}"
                    ) from exc
                logger.warning("Resend request failed, retrying", exc_info=exc)
            else:
                if (
                    response.status_code not in RETRYABLE_STATUSES
                    or attempt >= self.max_attempts - 1
                ):
                    return response
                logger.warning("Resend returned %s, retrying", response.status_code)
            await asyncio.sleep(_backoff(attempt))
            attempt += 1

    async def send(self, message: OutboundEmail) -> str:
        if self._client is not None:
            response = await self._post(self._client, message)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await self._post(client, message)

        if 200 <= response.status_code < 300 or response.status_code == 409:
            # 409: idempotency conflict, the message was already accepted
            message_id = None
            try:
                data = response.json()
                if isinstance(data, dict):
                    message_id = data.get("id")
            except ValueError:
                pass
            logger.info(
                "Email sent to %s, message_id=%s", mask_email(message.to), message_id
            )
            return message_id or ""

        error_msg = f"Resend API error: {response.status_code}"
        detail = _error_detail(response)
        if detail:
            error_msg = f"{error_msg} ({detail})"
        raise EmailTransportError(error_msg)


class DryRunTransport:
    """Log instead of sending (dev without an API key)."""

    async def send(self, message: OutboundEmail) -> str:
        message_id = f"dryrun-{uuid.uuid4()}"
        logger.info(
            "[dry-run] email to %s subject=%r id=%s",
            mask_email(message.to),
            message.subject,
            message_id,
        )
        return message_id


class UnconfiguredTransport:
    async def send(self, message: OutboundEmail) -> str:
        raise EmailTransportError("Email provider not configured (RESEND_API_KEY missing)")


def get_transport() -> MailTransport:
    """Transport for the current environment."""
    if settings.RESEND_API_KEY:
        return ResendTransport(
            settings.RESEND_API_KEY,
            timeout=settings.RESEND_TIMEOUT_SECONDS,
            max_attempts=settings.RESEND_MAX_ATTEMPTS,
        )
    if settings.is_dev:
        return DryRunTransport()
    return UnconfiguredTransport()
