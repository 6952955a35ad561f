# src/async_docstore/__init__.py

"""
Async Document Store Library Initialization.

This package provides one asynchronous CRUD/query contract over document
database drivers, with identifier normalization of caller queries.

It initializes a logger with a NullHandler and makes the store interface,
exceptions, backend implementations and the connection helpers available at
the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging for "async_docstore".
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Core Interface and Exception Exports
# --------------------------------------------------------------------------
from .base.interfaces import ConnectionState, DocumentStore
from .base.exceptions import (InvalidStateError, KeyAlreadyExistsError,
                              PersistenceError, StoreConnectionError,
                              StoreError)

# --------------------------------------------------------------------------
# Query Helpers
# --------------------------------------------------------------------------
from .base.cursor import FindOptions, parse_sort
from .base.identifiers import IdentifierCodec, ObjectIdCodec
from .base.normalizer import normalize_query

# --------------------------------------------------------------------------
# Store Implementation Exports
# --------------------------------------------------------------------------
from .db_implementations.mongodb_store import MongoDBStore
from .memory.base import MemoryStore

# --------------------------------------------------------------------------
# Connection Helpers
# --------------------------------------------------------------------------
from .factory import connect, register_backend
from .config import StoreSettings, connect_with_settings

__all__ = [
    # Core
    "DocumentStore",
    "ConnectionState",
    # Exceptions
    "StoreError",
    "StoreConnectionError",
    "InvalidStateError",
    "PersistenceError",
    "KeyAlreadyExistsError",
    # Query
    "FindOptions",
    "parse_sort",
    "normalize_query",
    "IdentifierCodec",
    "ObjectIdCodec",
    # Implementations
    "MongoDBStore",
    "MemoryStore",
    # Connection
    "connect",
    "register_backend",
    "StoreSettings",
    "connect_with_settings",
    # Logging
    "logger",
]

__version__ = "0.1.0"
