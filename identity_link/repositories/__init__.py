"""
Repository Layer Package.

All database operations flow through repositories: services never access
db.supabase or db.sqlite directly.
"""

from identity_link.repositories.base_repository import BaseRepository
from identity_link.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "UserRepository",
]
