# backend/app/api/dependencies/auth.py
"""
Authentication dependencies.

The core never authenticates; routes receive the caller id resolved here.
"""

from ...auth import get_current_user_id

__all__ = ["get_current_user_id"]
