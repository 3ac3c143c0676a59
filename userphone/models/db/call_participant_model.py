import uuid

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from userphone.database import Base


class CallParticipantModel(Base):
    """SQLAlchemy model for call_participants table (one row per call side)."""

    __tablename__ = "call_participants"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    call_id = Column(
        UUID(as_uuid=True),
        ForeignKey("calls.id", ondelete="CASCADE"),
        nullable=False,
    )
    channel_id = Column(String(32), nullable=False)
    guild_id = Column(String(32), nullable=False)
    webhook_url = Column(Text, nullable=False)
    message_count = Column(Integer, nullable=False, default=0)
    joined_at = Column(DateTime(timezone=True), default=func.now())
    left_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    call = relationship("CallModel", back_populates="participants")
    users = relationship(
        "CallParticipantUserModel",
        back_populates="participant",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("call_id", "channel_id", name="uq_call_participant_channel"),
    )


class CallParticipantUserModel(Base):
    """SQLAlchemy model for call_participant_users table."""

    __tablename__ = "call_participant_users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    participant_id = Column(
        UUID(as_uuid=True),
        ForeignKey("call_participants.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = Column(String(32), nullable=False)
    joined_at = Column(DateTime(timezone=True), default=func.now())
    # NULL while the user is present; reset to NULL when they rejoin
    left_at = Column(DateTime(timezone=True), nullable=True)

    participant = relationship("CallParticipantModel", back_populates="users")

    __table_args__ = (
        UniqueConstraint(
            "participant_id", "user_id", name="uq_call_participant_user"
        ),
    )
