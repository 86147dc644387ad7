"""
Transactional Email via Resend

Only the digest job sends mail. A failed send raises EmailSendError so the
job can record the address and move on to the next subscriber.
"""

import asyncio
from typing import Optional

import resend
from tenacity import retry, stop_after_attempt, wait_exponential

from hsa_tracker.config import get_settings


class EmailSendError(Exception):
    """Resend rejected the message or could not be reached."""
    pass


class ResendEmailService:
    """Thin wrapper over the resend SDK with retries."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
    ):
        if api_key is None or from_email is None:
            settings = get_settings().resend
            api_key = api_key or settings.api_key
            from_email = from_email or settings.from_email
        self._api_key = api_key
        self._from_email = from_email

    async def send(self, to: str, subject: str, html: str) -> str:
        """
        Send one HTML email.

        Returns:
            The Resend message id

        Raises:
            EmailSendError: If the address is empty or the send fails
        """
        if not to:
            raise EmailSendError("No recipient address")
        return await self._send(to, subject, html)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _send(self, to: str, subject: str, html: str) -> str:
        resend.api_key = self._api_key
        params: resend.Emails.SendParams = {
            "from": self._from_email,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        try:
            response = await asyncio.to_thread(resend.Emails.send, params)
        except Exception as e:
            raise EmailSendError(f"Failed to send email to {to}: {e}")

        return response.get("id", "") if isinstance(response, dict) else ""
