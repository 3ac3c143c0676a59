from enum import Enum
from typing import Any, Dict, Optional


class CallErrorCode(str, Enum):
    """Reasons a call operation can fail."""

    CHANNEL_ALREADY_IN_CALL = "CHANNEL_ALREADY_IN_CALL"
    CHANNEL_ALREADY_IN_QUEUE = "CHANNEL_ALREADY_IN_QUEUE"
    WEBHOOK_CREATION_FAILED = "WEBHOOK_CREATION_FAILED"
    CALL_NOT_FOUND = "CALL_NOT_FOUND"
    SKIP_REMATCH_FAILED = "SKIP_REMATCH_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class CallError(Exception):
    """Raised inside the call engine; converted to a failed result at the boundary."""

    def __init__(
        self,
        message: str,
        code: CallErrorCode,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.context = context or {}
