"""
Notification Dispatcher Abstraction Layer.

Delivers lifecycle transition events (at_risk, lost, recovered) to the
messaging automation webhook, which turns them into WhatsApp messages for the
customer or the business owner.

Dispatch is fire-and-forget: one bounded-timeout call, no retry. The result is
returned for logging only and never raised to the caller.
"""
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any

import httpx
from pydantic import BaseModel

from backend.app.core.logging import get_logger
from backend.app.models.lifecycle_orm import CustomerStatus

logger = get_logger(__name__)

# Customer-facing messages go to the client; recoveries are reported to the owner
_ACTION_BY_TRIGGER = {
    CustomerStatus.AT_RISK: "client",
    CustomerStatus.LOST: "client",
    CustomerStatus.RECOVERED: "owner",
}


class NotificationEvent(BaseModel):
    """Outbound transition event."""
    customer_name: str
    customer_phone: Optional[str] = None
    business_name: str
    business_type: str = "general"
    customer_service: str = ""
    business_owner_phone: Optional[str] = None
    last_visit_date: Optional[str] = None
    whatsapp_phone: Optional[str] = None
    trigger_type: CustomerStatus
    previous_status: Optional[CustomerStatus] = None
    future_appointment: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = self.model_dump(mode="json")
        payload["action"] = _ACTION_BY_TRIGGER.get(self.trigger_type, "client")
        payload["customer_status"] = self.trigger_type.value
        payload["whatsapp_phone"] = self.whatsapp_phone or self.customer_phone
        return payload


class DispatchResult(BaseModel):
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    skipped: bool = False


class NotificationDispatcher(ABC):
    """Abstract outbound notification channel."""

    @abstractmethod
    async def dispatch(self, event: NotificationEvent) -> DispatchResult:
        """Deliver one event. Implementations must not raise."""
        ...


class WebhookNotificationDispatcher(NotificationDispatcher):
    """POSTs events as JSON to the automation webhook."""

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def _post(self, client: httpx.AsyncClient, payload: Dict[str, Any]) -> httpx.Response:
        return await client.post(self.webhook_url, json=payload, timeout=self.timeout_seconds)

    async def dispatch(self, event: NotificationEvent) -> DispatchResult:
        if not self.webhook_url:
            logger.info(f"Notification webhook not configured; skipping {event.trigger_type.value} event")
            return DispatchResult(success=False, skipped=True, error="webhook_not_configured")

        payload = event.to_payload()
        try:
            if self._client is not None:
                response = await self._post(self._client, payload)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Notification webhook rejected {event.trigger_type.value} event: {e.response.status_code}"
            )
            return DispatchResult(success=False, status_code=e.response.status_code, error=str(e))
        except httpx.HTTPError as e:
            logger.error(f"Notification webhook call failed for {event.trigger_type.value} event: {e!r}")
            return DispatchResult(success=False, error=repr(e))

        logger.info(
            f"Notification sent: {event.trigger_type.value} for {event.customer_name} ({event.business_name})",
            extra={"extra_data": {"status_code": response.status_code}},
        )
        return DispatchResult(success=True, status_code=response.status_code)


class NullNotificationDispatcher(NotificationDispatcher):
    """Used when notifications are disabled by configuration."""

    async def dispatch(self, event: NotificationEvent) -> DispatchResult:
        return DispatchResult(success=False, skipped=True, error="notifications_disabled")


def build_notification_dispatcher(settings) -> NotificationDispatcher:
    if not settings.notifications_enabled:
        return NullNotificationDispatcher()
    return WebhookNotificationDispatcher(
        webhook_url=settings.notification_webhook_url,
        timeout_seconds=settings.notification_timeout_seconds,
    )
