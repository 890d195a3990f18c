#!/usr/bin/env python3
"""
Transactional email client for the Resend HTTP API.

One POST per recipient. Any non-2xx answer raises ``DeliveryError`` carrying
the status and response body so callers can decide whether to count, log or
propagate it. A 2xx answer is a delivery even when its body is not
JSON.
"""

from asyncio import TimeoutError
from typing import Any, Dict, Optional

from aiohttp import ClientError, ClientSession, ClientTimeout

from config import Config, get_logger
from errors import DeliveryError
from utils import session_scope

logger = get_logger("email_client")

EMAIL_TIMEOUT = 30


class EmailClient:
    """Sends single HTML emails through the configured email API."""

    def __init__(self, config: Config, session: Optional[ClientSession] = None):
        config.require("RESEND_API_KEY", "EMAIL_FROM")
        self.config = config
        self.session = session

    def _payload(self, to: str, subject: str, html: str, reply_to: Optional[str]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "from": self.config.EMAIL_FROM,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        reply_to = self.config.REPLY_TO if reply_to is None else reply_to
        if reply_to:
            payload["reply_to"] = reply_to
        return payload

    async def send_email(self, to: str, subject: str, html: str, reply_to: Optional[str] = None) -> Dict[str, Any]:
        """Send one email and return the API's JSON answer.

        Raises:
            DeliveryError: the API rejected the request or could not be reached
        """
        headers = {
            "Authorization": f"Bearer {self.config.RESEND_API_KEY}",
            "Content-Type": "application/json",
        }
        try:
            async with session_scope(self.session, EMAIL_TIMEOUT) as session:
                async with session.post(
                    self.config.EMAIL_API_URL,
                    json=self._payload(to, subject, html, reply_to),
                    headers=headers,
                    timeout=ClientTimeout(total=EMAIL_TIMEOUT),
                ) as resp:
                    if not 200 <= resp.status < 300:
                        body = await resp.text()
                        raise DeliveryError(f"Email API error ({resp.status}): {body}", status=resp.status, body=body)
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError:
                        # Accepted; the body just is not JSON (proxies, gateways)
                        logger.warning(f"Email API accepted {to} with a non-JSON body (HTTP {resp.status})")
                        data = {}
        except (ClientError, TimeoutError) as e:
            raise DeliveryError(f"Email API request failed: {e or type(e).__name__}") from e
        logger.debug(f"Email accepted for {to}: {data}")
        return data if isinstance(data, dict) else {}
