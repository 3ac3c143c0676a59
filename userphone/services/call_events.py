"""Typed lifecycle events for calls and the bus that fans them out.

Handlers are registered once, by type, when the call manager is built. A
``CallEnded`` can only be built from a ``ClearedCall``, which the manager
hands out after the call has been removed from the cache and distributed
state, so ended-call handlers never run while the call still looks active.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, DefaultDict, List, Type, TypeVar, Union

import structlog

from userphone.models.api.calls import ActiveCall

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ClearedCall:
    """Receipt that a call's active state has been removed everywhere."""

    call: ActiveCall


@dataclass(frozen=True)
class CallMatched:
    call: ActiveCall
    match_time_ms: float


@dataclass(frozen=True)
class CallEnded:
    cleared: ClearedCall
    ended_by_channel_id: str
    duration_ms: float

    @property
    def call(self) -> ActiveCall:
        return self.cleared.call


@dataclass(frozen=True)
class ParticipantJoined:
    call_id: str
    channel_id: str
    guild_id: str
    user_id: str


@dataclass(frozen=True)
class ParticipantLeft:
    call_id: str
    channel_id: str
    guild_id: str
    user_id: str


@dataclass(frozen=True)
class MessageThresholdReached:
    """A call side sent enough messages to be credited on the leaderboards."""

    call_id: str
    channel_id: str
    guild_id: str
    user_id: str
    message_count: int


CallEvent = Union[
    CallMatched, CallEnded, ParticipantJoined, ParticipantLeft, MessageThresholdReached
]
EventT = TypeVar("EventT", bound=CallEvent)


class CallEventBus:
    """Delivers each event to the handlers subscribed to its type, in order."""

    def __init__(self) -> None:
        self._handlers: DefaultDict[
            Type[Any], List[Callable[[Any], Awaitable[None]]]
        ] = defaultdict(list)

    def subscribe(
        self, event_type: Type[EventT], handler: Callable[[EventT], Awaitable[None]]
    ) -> None:
        self._handlers[event_type].append(handler)

    async def publish(self, event: CallEvent) -> None:
        """Run every handler; a failing handler is logged and skipped."""
        for handler in self._handlers[type(event)]:
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "Call event handler failed",
                    event_type=type(event).__name__,
                    handler=getattr(handler, "__qualname__", repr(handler)),
                )
