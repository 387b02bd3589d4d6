"""
Out-of-band user notifications (SMS).

``HttpSmsSender`` posts to the configured gateway with httpx; without a
gateway URL the ``LoggingSmsSender`` only logs, which is what local runs
and tests use.  Delivery errors propagate to the caller.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from src.config import settings

logger = logging.getLogger(__name__)


class SmsSender(Protocol):
    async def send(self, mobile: Optional[str], text: str) -> None: ...


class HttpSmsSender:
    def __init__(self, url: str, api_key: Optional[str] = None, timeout: float = 10.0):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    async def send(self, mobile: Optional[str], text: str) -> None:
        if not mobile:
            raise ValueError("User has no mobile number to text")
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.url, json={"to": mobile, "text": text}, headers=headers
            )
            response.raise_for_status()
        logger.info("SMS sent to %s", mobile)


class LoggingSmsSender:
    async def send(self, mobile: Optional[str], text: str) -> None:
        logger.info("SMS to %s: %s", mobile, text)


def activation_message(code: str) -> str:
    return f"Your activation code: {code}"


def build_sms_sender() -> SmsSender:
    if settings.sms_api_url:
        return HttpSmsSender(settings.sms_api_url, settings.sms_api_key)
    return LoggingSmsSender()
