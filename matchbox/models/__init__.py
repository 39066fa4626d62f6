"""
Matchbox — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from matchbox.models.profile import Profile
from matchbox.models.match import Match, Swipe
from matchbox.models.message import Message
from matchbox.models.notification import Notification

__all__ = [
    "Profile",
    "Swipe",
    "Match",
    "Message",
    "Notification",
]
