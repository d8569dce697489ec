"""
Sparkmatch — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from sparkmatch.models.user import User
from sparkmatch.models.match import Match, Swipe
from sparkmatch.models.message import Message

__all__ = [
    "User",
    "Match",
    "Swipe",
    "Message",
]
