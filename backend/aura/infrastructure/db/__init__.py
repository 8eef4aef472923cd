"""
Database Infrastructure Package for Aura

Exports database utilities and document store strategies.
"""

from aura.infrastructure.db.database import DatabaseManager
from aura.infrastructure.db.repositories import (
    DocumentStore,
    LocalDocumentStore,
    SqlDocumentStore,
    FallbackDocumentStore,
)


__all__ = [
    # Database management
    "DatabaseManager",
    # Stores
    "DocumentStore",
    "LocalDocumentStore",
    "SqlDocumentStore",
    "FallbackDocumentStore",
]
