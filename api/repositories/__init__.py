"""Repository layer for database operations.

Repositories encapsulate all database queries, keeping routes and services
free of SQL. Each takes an injected AsyncSession and never commits; the
caller owns the transaction.
"""

from repositories.completion_repository import CompletionRepository
from repositories.habit_repository import HabitRepository
from repositories.utils import StorageError, log_slow_query

__all__ = [
    "CompletionRepository",
    "HabitRepository",
    "StorageError",
    "log_slow_query",
]
