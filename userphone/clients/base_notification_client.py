from abc import ABC, abstractmethod

from userphone.models.api.webhooks import DeliveryResult, WebhookMessage


class BaseNotificationClient(ABC):
    """Abstract base class for delivering messages into a channel."""

    @abstractmethod
    async def send(self, webhook_url: str, message: WebhookMessage) -> DeliveryResult:
        """Deliver a message through a channel-bound webhook.

        Args:
            webhook_url: The channel's webhook endpoint
            message: Content, display name, avatar and components to send

        Returns:
            A DeliveryResult. Delivery failures are reported here rather than
            raised, so callers can treat notifications as best effort.
        """
