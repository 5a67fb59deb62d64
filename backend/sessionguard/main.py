"""Main FastAPI application."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sessionguard.api import recordings, safety, sessions
from sessionguard.config import settings

app = FastAPI(
    title="SessionGuard API",
    description="Session recording analysis and realtime safety events",
    version="0.1.0",
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(sessions.router)
app.include_router(safety.router)
app.include_router(recordings.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "SessionGuard API",
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "environment": settings.environment}
