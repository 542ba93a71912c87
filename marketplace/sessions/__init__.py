"""
Sessions Package

Endpoints for reading and ending the session created at sign-in.
"""

from .routes import sessions_router

__all__ = [
    "sessions_router",
]
