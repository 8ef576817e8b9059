"""
Repositories Layer
MongoDB persistence for the delivery outbox.
"""
from .connection import db_manager, DatabaseManager
from .messages import MessageRepository
from .queue import QueueRepository
from .store import MongoOutboxStore
from .base import BaseRepository

__all__ = [
    "db_manager",
    "DatabaseManager",
    "MessageRepository",
    "QueueRepository",
    "MongoOutboxStore",
    "BaseRepository",
]
