# SQLAlchemy database models
from .call_message_model import CallMessageModel
from .call_model import CallModel
from .call_participant_model import CallParticipantModel, CallParticipantUserModel

__all__ = [
    "CallModel",
    "CallMessageModel",
    "CallParticipantModel",
    "CallParticipantUserModel",
]
