"""Session model."""
from sqlalchemy import Column, String, DateTime, func
from sqlalchemy.orm import relationship
from sessionguard.database import Base
from sessionguard.constants import SessionStatus


class Session(Base):
    """A single-participant video session."""
    __tablename__ = "sessions"

    id = Column(String, primary_key=True)  # Opaque id chosen by the web layer
    room_name = Column(String, nullable=False)
    started_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    egress_id = Column(String, nullable=True)  # Recording job id
    status = Column(String(20), nullable=False, default=SessionStatus.ACTIVE, server_default=SessionStatus.ACTIVE, index=True)  # active|ended

    # Relationships
    events = relationship("SessionEvent", back_populates="session", order_by="SessionEvent.id")
