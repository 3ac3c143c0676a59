from abc import ABC, abstractmethod
from typing import Optional

from userphone.models.api.calls import CallChannel


class BaseChannelProvisioner(ABC):
    """Abstract base class for obtaining a channel's webhook endpoint."""

    @abstractmethod
    async def get_or_create_webhook(self, channel: CallChannel) -> Optional[str]:
        """Return the webhook URL for a channel, creating one if needed.

        Returns:
            The webhook URL, or None when the bot cannot obtain one
            (missing permissions, unknown channel, API outage).
        """
