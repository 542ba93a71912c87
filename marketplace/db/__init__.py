"""
Persistence Package

Async SQLAlchemy tables, the engine/session manager, and the ``Connection``
repository consumed by the authentication flow.
"""

from .connection import Connection
from .database import DatabaseSessionManager

__all__ = [
    "Connection",
    "DatabaseSessionManager",
]
