# Repository classes for database operations
from .base_repository import BaseRepository
from .call_repository import CallRepository

__all__ = [
    "BaseRepository",
    "CallRepository",
]
