from typing import Any, Dict

import structlog

from userphone.clients.base_event_sink import BaseEventSink

logger = structlog.get_logger(__name__)


class LoggingEventSink(BaseEventSink):
    """Event sink that records call events in the structured log."""

    async def process_event(self, event_type: str, payload: Dict[str, Any]) -> None:
        logger.info("Call event", event_type=event_type, payload=payload)
