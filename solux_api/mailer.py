"""
Mail dispatch for login codes.

`ResendMailer` posts to the Resend HTTP API. `LogMailer` is used when no
Resend key is configured and writes the message to the log instead.
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx
import structlog

logger = structlog.get_logger()

CODE_EMAIL_SUBJECT = "Solux - Your Login Code"

_CODE_EMAIL_TEMPLATE = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 40px 20px;">
  <h1 style="color: #000; font-size: 28px; margin-bottom: 10px;">SOLUX</h1>
  <p style="color: #3b82f6; font-size: 12px; letter-spacing: 2px; margin-bottom: 30px;">THE NEW STANDARD OF CREDIT</p>
  <p style="color: #333; font-size: 16px; margin-bottom: 20px;">Your verification code is:</p>
  <div style="background: #f5f5f5; border-radius: 12px; padding: 30px; text-align: center; margin-bottom: 30px;">
    <span style="font-size: 36px; font-weight: bold; letter-spacing: 8px; color: #000;">{code}</span>
  </div>
  <p style="color: #666; font-size: 14px;">This code will expire in {ttl_minutes} minutes.</p>
  <p style="color: #666; font-size: 14px;">If you didn't request this code, please ignore this email.</p>
</div>
"""


def render_code_email(code: str, ttl_minutes: int = 10) -> tuple[str, str]:
    """Return (subject, html body) for a login code email."""
    return CODE_EMAIL_SUBJECT, _CODE_EMAIL_TEMPLATE.format(code=code, ttl_minutes=ttl_minutes)


class Mailer(Protocol):
    """Mail dispatch collaborator. `send` raises on any failure."""

    async def send(self, to_address: str, subject: str, html_body: str) -> None:
        ...


@dataclass
class ResendConfig:
    """Resend API configuration."""

    api_key: str
    from_email: str = "support@solux.cash"
    base_url: str = "https://api.resend.com"
    timeout: float = 30.0


class ResendMailer:
    """
    Async Resend API client.
    """

    def __init__(self, config: ResendConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers={"Authorization": f"Bearer {self.config.api_key}"},
                timeout=self.config.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def send(self, to_address: str, subject: str, html_body: str) -> None:
        client = await self._get_client()
        logger.info("Sending email", from_email=self.config.from_email, to=to_address)
        response = await client.post(
            "/emails",
            json={
                "from": self.config.from_email,
                "to": [to_address],
                "subject": subject,
                "html": html_body,
            },
        )
        response.raise_for_status()
        result: Any = response.json()
        logger.info("Resend response", id=result.get("id") if isinstance(result, dict) else None)


class LogMailer:
    """Development mailer: logs messages instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, to_address: str, subject: str, html_body: str) -> None:
        self.sent.append((to_address, subject, html_body))
        logger.warning("Mail not sent (no RESEND_API_KEY)", to=to_address, subject=subject, body=html_body)

    async def close(self) -> None:
        return
