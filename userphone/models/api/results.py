from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, computed_field

from userphone import call_texts
from userphone.errors import CallErrorCode


class CallOutcome(str, Enum):
    """Tag describing what a call operation did."""

    QUEUED = "QUEUED"
    CONNECTED = "CONNECTED"
    ENDED = "ENDED"
    LEFT_QUEUE = "LEFT_QUEUE"
    FAILED = "FAILED"


class CallResult(BaseModel):
    """Result returned by every CallManager operation.

    Callers branch on ``outcome``; ``message`` is display text only.
    """

    outcome: CallOutcome
    message: str
    call_id: Optional[str] = None
    position: Optional[int] = None
    queue_length: Optional[int] = None
    duration_ms: Optional[float] = None
    reason: Optional[CallErrorCode] = None

    model_config = ConfigDict(frozen=True)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        return self.outcome != CallOutcome.FAILED

    @classmethod
    def queued(
        cls, position: int, queue_length: int, message: Optional[str] = None
    ) -> "CallResult":
        return cls(
            outcome=CallOutcome.QUEUED,
            message=message or call_texts.queued_text(position, queue_length),
            position=position,
            queue_length=queue_length,
        )

    @classmethod
    def connected(cls, call_id: str, message: Optional[str] = None) -> "CallResult":
        return cls(
            outcome=CallOutcome.CONNECTED,
            message=message or call_texts.connected_text(),
            call_id=call_id,
        )

    @classmethod
    def ended(cls, call_id: str, duration_ms: float) -> "CallResult":
        return cls(
            outcome=CallOutcome.ENDED,
            message=call_texts.ended_text(duration_ms),
            call_id=call_id,
            duration_ms=duration_ms,
        )

    @classmethod
    def left_queue(cls) -> "CallResult":
        return cls(outcome=CallOutcome.LEFT_QUEUE, message=call_texts.left_queue_text())

    @classmethod
    def failed(
        cls, reason: CallErrorCode, message: str, call_id: Optional[str] = None
    ) -> "CallResult":
        return cls(
            outcome=CallOutcome.FAILED, message=message, reason=reason, call_id=call_id
        )
