"""HTTP API routes."""

from api.routes import router

__all__ = ["router"]
