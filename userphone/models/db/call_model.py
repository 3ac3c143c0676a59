import uuid

from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from userphone.database import Base


class CallModel(Base):
    """SQLAlchemy model for calls table."""

    __tablename__ = "calls"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    initiator_id = Column(String(32), nullable=False)
    status = Column(String(10), nullable=False, default="QUEUED")
    start_time = Column(DateTime(timezone=True), default=func.now())
    end_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=func.now())
    updated_at = Column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    # Relationships
    participants = relationship(
        "CallParticipantModel",
        back_populates="call",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    messages = relationship(
        "CallMessageModel",
        back_populates="call",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    # Constraints (enforced by database CHECK constraints in migrations)
    # status IN ('QUEUED', 'ACTIVE', 'ENDED')
