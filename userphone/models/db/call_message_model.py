import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from userphone.database import Base


class CallMessageModel(Base):
    """SQLAlchemy model for call_messages table."""

    __tablename__ = "call_messages"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    call_id = Column(
        UUID(as_uuid=True),
        ForeignKey("calls.id", ondelete="CASCADE"),
        nullable=False,
    )
    author_id = Column(String(32), nullable=False)
    author_username = Column(String(100), nullable=False)
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime(timezone=True), default=func.now())
    attachment_url = Column(Text, nullable=True)

    # Relationships
    call = relationship("CallModel", back_populates="messages")
