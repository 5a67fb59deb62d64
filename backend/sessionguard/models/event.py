"""Session event model for the append-only safety/analysis log."""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, JSON, func, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sessionguard.database import Base


class SessionEvent(Base):
    """Append-only event row belonging to a session."""
    __tablename__ = "session_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String, ForeignKey("sessions.id"), nullable=False, index=True)
    event_type = Column(String, nullable=False)  # safety|analysis
    payload = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    session = relationship("Session", back_populates="events")

    __table_args__ = (
        Index("idx_session_events_session_type", "session_id", "event_type"),
    )
