"""Guest notification dispatch for waitlist events.

Subscribed to the event bus in ``rms.main``. Messages go to an SMS/WhatsApp
relay configured by ``sms_webhook_url``; without one they are only logged.
"""

import logging
from typing import Optional

import httpx

from rms.core.config import settings
from rms.services.events import DomainEvent, EventType

logger = logging.getLogger(__name__)


def table_ready_message(guest_name: str) -> str:
    return f"Hi {guest_name}, your table is ready! Please come to the host stand."


class WaitlistNotifier:
    """Sends the table-ready message when an entry is notified."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ):
        self.webhook_url = webhook_url if webhook_url is not None else settings.sms_webhook_url
        self._client = client
        self.timeout = timeout or settings.gateway_timeout_seconds

    def __call__(self, event: DomainEvent) -> None:
        if event.type != EventType.WAITLIST_NOTIFIED:
            return
        self.send(
            phone=event.data["guest_phone"],
            message=table_ready_message(event.data["guest_name"]),
            channel=event.data.get("method", "SMS"),
            entry_id=event.data.get("entry_id"),
        )

    def send(self, phone: str, message: str, channel: str = "SMS", entry_id=None) -> bool:
        """Deliver one message. Returns False when no relay is configured.

        Relay errors propagate so the event bus logs them.
        """
        if not self.webhook_url:
            logger.info(f"No SMS relay configured; {channel} for entry {entry_id} not sent")
            return False

        payload = {"to": phone, "channel": channel, "message": message}
        if self._client is not None:
            response = self._client.post(self.webhook_url, json=payload)
        else:
            response = httpx.post(self.webhook_url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        logger.info(f"Sent {channel} table-ready notice for waitlist entry {entry_id}")
        return True
