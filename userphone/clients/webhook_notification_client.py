from typing import Any, Dict, Optional

import httpx
import structlog

from userphone.clients.base_notification_client import BaseNotificationClient
from userphone.models.api.webhooks import DeliveryResult, WebhookMessage

logger = structlog.get_logger(__name__)


class WebhookNotificationClient(BaseNotificationClient):
    """Discord webhook delivery using httpx."""

    def __init__(
        self,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.transport = transport

    def _build_payload(self, message: WebhookMessage) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "content": message.content,
            "allowed_mentions": message.allowed_mentions,
        }
        if message.username:
            payload["username"] = message.username
        if message.avatar_url:
            payload["avatar_url"] = message.avatar_url
        if message.components:
            payload["components"] = message.components
        return payload

    async def send(self, webhook_url: str, message: WebhookMessage) -> DeliveryResult:
        """POST the message to the webhook and wait for Discord's confirmation."""
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport
        ) as client:
            try:
                response = await client.post(
                    webhook_url,
                    params={"wait": "true"},
                    json=self._build_payload(message),
                )
            except httpx.HTTPError as e:
                logger.warning("Webhook delivery failed", error=str(e))
                return DeliveryResult(success=False, error=str(e))

        if response.is_error:
            logger.warning(
                "Webhook rejected message",
                status_code=response.status_code,
                body=response.text[:200],
            )
            return DeliveryResult(
                success=False,
                status_code=response.status_code,
                error=response.text[:200] or response.reason_phrase,
            )

        message_id: Optional[str] = None
        if response.content:
            data: Dict[str, Any] = response.json()
            message_id = str(data["id"]) if data.get("id") else None

        return DeliveryResult(
            success=True, status_code=response.status_code, message_id=message_id
        )
