"""
Storage Module
==============

Persistent store contract and its implementations:
- PostgresStore: psycopg2, JSONB vectors, optional pgvector ordering
- InMemoryStore: thread-safe, for tests and local runs
"""

from .base import RAGStore
from .memory import InMemoryStore
from .postgres import PostgresStore

__all__ = [
    "RAGStore",
    "InMemoryStore",
    "PostgresStore",
]
