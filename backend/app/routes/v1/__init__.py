# backend/app/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1.
"""

from . import credits, health, prometheus, sessions

__all__ = ["credits", "health", "prometheus", "sessions"]
