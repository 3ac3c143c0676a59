from typing import Any, Dict, List, Optional

import httpx
import structlog

from userphone.clients.base_channel_provisioner import BaseChannelProvisioner
from userphone.models.api.calls import CallChannel

logger = structlog.get_logger(__name__)


class DiscordChannelProvisioner(BaseChannelProvisioner):
    """Finds or creates the bot-owned webhook of a channel via the Discord REST API."""

    def __init__(
        self,
        api_base: str,
        bot_token: str,
        webhook_name: str = "InterChat Calls",
        avatar_url: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.bot_token = bot_token
        self.webhook_name = webhook_name
        self.avatar_url = avatar_url
        self.timeout = timeout
        self.transport = transport
        self._bot_user_id: Optional[str] = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_base,
            headers={
                "Authorization": f"Bot {self.bot_token}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            transport=self.transport,
        )

    def _webhook_url(self, webhook: Dict[str, Any]) -> Optional[str]:
        if webhook.get("url"):
            return str(webhook["url"])
        if webhook.get("id") and webhook.get("token"):
            return f"{self.api_base}/webhooks/{webhook['id']}/{webhook['token']}"
        return None

    async def _get_bot_user_id(self, client: httpx.AsyncClient) -> str:
        if self._bot_user_id is None:
            response = await client.get("/users/@me")
            response.raise_for_status()
            self._bot_user_id = str(response.json()["id"])
        return self._bot_user_id

    async def get_or_create_webhook(self, channel: CallChannel) -> Optional[str]:
        async with self._client() as client:
            try:
                bot_user_id = await self._get_bot_user_id(client)

                response = await client.get(f"/channels/{channel.id}/webhooks")
                response.raise_for_status()
                webhooks: List[Dict[str, Any]] = response.json()

                for webhook in webhooks:
                    owner = webhook.get("user") or {}
                    if str(owner.get("id")) == bot_user_id:
                        url = self._webhook_url(webhook)
                        if url:
                            return url

                payload: Dict[str, Any] = {"name": self.webhook_name}
                if self.avatar_url:
                    payload["avatar"] = self.avatar_url
                response = await client.post(
                    f"/channels/{channel.id}/webhooks", json=payload
                )
                response.raise_for_status()
                return self._webhook_url(response.json())
            except httpx.HTTPStatusError as e:
                logger.warning(
                    "Could not provision channel webhook",
                    channel_id=channel.id,
                    guild_id=channel.guild_id,
                    status_code=e.response.status_code,
                )
                return None
            except httpx.HTTPError as e:
                logger.warning(
                    "Could not reach Discord API",
                    channel_id=channel.id,
                    error=str(e),
                )
                return None
