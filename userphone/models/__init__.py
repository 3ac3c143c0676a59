# Export all models
from .api import (
    ActiveCall,
    CallMessage,
    CallOutcome,
    CallParticipant,
    CallRequest,
    CallResult,
    CallStatus,
)
from .db import (
    CallMessageModel,
    CallModel,
    CallParticipantModel,
    CallParticipantUserModel,
)

__all__ = [
    # API models
    "ActiveCall",
    "CallMessage",
    "CallOutcome",
    "CallParticipant",
    "CallRequest",
    "CallResult",
    "CallStatus",
    # DB models
    "CallMessageModel",
    "CallModel",
    "CallParticipantModel",
    "CallParticipantUserModel",
]
