import logging
from typing import Any, Dict, Optional, Protocol

import requests

from .config import settings
from .exceptions import DeliveryFailure
from .metrics import reminders_dispatch_success_total, reminders_dispatch_failed_total

logger = logging.getLogger(__name__)


class MessagingGateway(Protocol):
    def send(self, destination: str, text: str) -> Dict[str, Any]:
        """Deliver ``text`` to ``destination``; raise DeliveryFailure otherwise."""
        ...


class FonnteGateway:
    """WhatsApp delivery through the Fonnte HTTP API."""

    def __init__(
        self,
        token: Optional[str] = None,
        url: Optional[str] = None,
        timeout: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self.token = token if token is not None else settings.FONNTE_TOKEN
        self.url = url or settings.FONNTE_URL
        self.timeout = timeout or settings.FONNTE_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _build_headers(self) -> Dict[str, str]:
        return {"Authorization": self.token or "", "Content-Type": "application/json"}

    def send(self, destination: str, text: str) -> Dict[str, Any]:
        if not self.token:
            reminders_dispatch_failed_total.inc()
            raise DeliveryFailure("REMINDER_FONNTE_TOKEN not set")
        if not destination:
            reminders_dispatch_failed_total.inc()
            raise DeliveryFailure("No destination phone number")

        payload = {"target": destination, "message": text}
        try:
            r = self.session.post(self.url, json=payload, headers=self._build_headers(), timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            reminders_dispatch_failed_total.inc()
            logger.error(f"❌ [Fonnte] Request to {self.url} failed: {e!r}")
            raise DeliveryFailure(f"Fonnte request failed: {e}") from e

        try:
            body = r.json()
        except ValueError:
            body = {"raw": r.text}

        # Fonnte answers 200 with {"status": false, "reason": ...} on rejected sends
        if isinstance(body, dict) and body.get("status") is False:
            reminders_dispatch_failed_total.inc()
            reason = str(body.get("reason") or "rejected by gateway")
            logger.error(f"❌ [Fonnte] Send rejected for target={destination}: {reason}")
            raise DeliveryFailure(reason, response=body)

        reminders_dispatch_success_total.inc()
        logger.info(f"✅ [Fonnte] Message sent to target={destination}")
        return body if isinstance(body, dict) else {"response": body}
