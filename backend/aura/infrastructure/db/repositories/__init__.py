"""
Document Store Layer for Aura

Exports the store interface and its strategies for dependency injection.
"""

from aura.infrastructure.db.repositories.base_repository import DocumentStore
from aura.infrastructure.db.repositories.local_document_store import LocalDocumentStore
from aura.infrastructure.db.repositories.sql_document_store import SqlDocumentStore
from aura.infrastructure.db.repositories.fallback_document_store import FallbackDocumentStore


__all__ = [
    # Base
    "DocumentStore",
    # Strategies
    "LocalDocumentStore",
    "SqlDocumentStore",
    "FallbackDocumentStore",
]
