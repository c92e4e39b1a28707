"""Persistence backends."""

from subfy_api.storage.sqlite import SQLiteDocumentStore

__all__ = ["SQLiteDocumentStore"]
