"""Schemas for session management."""
from pydantic import BaseModel, Field
from typing import Optional, Dict
from datetime import datetime


class SessionStartRequest(BaseModel):
    """Request schema for /api/sessions/start endpoint."""
    sessionId: str = Field(..., min_length=1, description="Session ID")
    roomName: str = Field(..., min_length=1, description="Room the session runs in")


class SessionStartResponse(BaseModel):
    """Response schema for /api/sessions/start endpoint."""
    success: bool
    message: str
    session_id: str


class SessionStatusResponse(BaseModel):
    """Response schema for session status."""
    session_id: str
    room_name: str
    status: str
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    egress_id: Optional[str] = None
    event_counts: Dict[str, int] = Field(default_factory=dict)
