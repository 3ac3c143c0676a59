"""In-memory stand-ins for the call engine's outbound collaborators."""

from typing import Any, Dict, List, Optional, Set, Tuple

from userphone.clients.base_channel_provisioner import BaseChannelProvisioner
from userphone.clients.base_event_sink import BaseEventSink
from userphone.clients.base_leaderboard_updater import (
    BaseLeaderboardUpdater,
    LeaderboardKind,
)
from userphone.clients.base_notification_client import BaseNotificationClient
from userphone.models.api.calls import CallChannel, CallRequest
from userphone.models.api.webhooks import DeliveryResult, WebhookMessage

class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier(BaseNotificationClient):
    def __init__(self) -> None:
        self.sent: List[Tuple[str, WebhookMessage]] = []

    async def send(self, webhook_url: str, message: WebhookMessage) -> DeliveryResult:
        self.sent.append((webhook_url, message))
        return DeliveryResult(success=True, status_code=200, message_id="1")

    def sent_to(self, channel_id: str) -> List[WebhookMessage]:
        return [m for url, m in self.sent if url == webhook_url_for(channel_id)]


class FakeProvisioner(BaseChannelProvisioner):
    def __init__(self) -> None:
        self.fail_for: Set[str] = set()
        self.calls: List[str] = []

    async def get_or_create_webhook(self, channel: CallChannel) -> Optional[str]:
        self.calls.append(channel.id)
        if channel.id in self.fail_for:
            return None
        return webhook_url_for(channel.id)


class RecordingLeaderboard(BaseLeaderboardUpdater):
    def __init__(self) -> None:
        self.updates: List[Tuple[str, str]] = []

    async def update_leaderboard(self, kind: LeaderboardKind, target_id: str) -> None:
        self.updates.append((kind, target_id))

    async def get_leaderboard(
        self, kind: LeaderboardKind, limit: int = 10
    ) -> List[Tuple[str, float]]:
        return []


class RecordingEventSink(BaseEventSink):
    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    async def process_event(self, event_type: str, payload: Dict[str, Any]) -> None:
        self.events.append((event_type, payload))

    def types(self) -> List[str]:
        return [event_type for event_type, _ in self.events]


def webhook_url_for(channel_id: str) -> str:
    return f"https://discord.test/api/webhooks/{channel_id}/token"


def channel(channel_id: str, guild_id: str) -> CallChannel:
    return CallChannel(id=channel_id, guild_id=guild_id)


def make_request(
    request_id: str, channel_id: str, guild_id: str, initiator_id: str
) -> CallRequest:
    return CallRequest(
        id=request_id,
        channel_id=channel_id,
        guild_id=guild_id,
        initiator_id=initiator_id,
        webhook_url=webhook_url_for(channel_id),
    )
