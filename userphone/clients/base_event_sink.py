from abc import ABC, abstractmethod
from typing import Any, Dict


class BaseEventSink(ABC):
    """Abstract base class for achievement and analytics hand-off."""

    @abstractmethod
    async def process_event(self, event_type: str, payload: Dict[str, Any]) -> None:
        """Handle a call event such as ``call_started`` or ``call_ended``.

        Called in the background; failures are logged by the caller and never
        affect the call operation that produced the event.
        """
