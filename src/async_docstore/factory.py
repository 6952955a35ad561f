# src/async_docstore/factory.py

import logging
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse

from async_docstore.base.exceptions import StoreConnectionError
from async_docstore.base.interfaces import DocumentStore
from async_docstore.db_implementations.mongodb_store import MongoDBStore
from async_docstore.memory.base import MemoryStore

base_logger = logging.getLogger(__name__)

# URL scheme -> store class. Extend with `register_backend`.
BACKENDS: Dict[str, Callable[[], DocumentStore]] = {
    "mongodb": MongoDBStore,
    "mongodb+srv": MongoDBStore,
    "memory": MemoryStore,
}


def register_backend(scheme: str, store_factory: Callable[[], DocumentStore]) -> None:
    """Make `connect` open URLs with `scheme` using `store_factory()`."""
    BACKENDS[scheme.lower()] = store_factory


def url_scheme(url: str) -> str:
    return urlparse(url).scheme.lower()


def store_for_url(url: str) -> DocumentStore:
    """Create an unconnected store for the backend matching the URL scheme."""
    scheme = url_scheme(url)
    store_factory = BACKENDS.get(scheme)
    if store_factory is None:
        raise StoreConnectionError(
            f"No document store backend registered for scheme '{scheme}' "
            f"(known: {', '.join(sorted(BACKENDS))})",
            operation="connect",
        )
    return store_factory()


async def connect(
    url: str, database_name: Optional[str] = None, **options: Any
) -> DocumentStore:
    """
    Open a document store for `url`.

    Args:
        url: Connection URL; its scheme selects the backend.
        database_name: Database to use instead of the URL's default.
        **options: Passed through to the backend driver.

    Returns:
        A connected DocumentStore.
    """
    store = store_for_url(url)
    base_logger.debug(f"Opening {type(store).__name__} for '{url}'")
    if database_name is not None:
        options["database_name"] = database_name
    return await store.connect(url, **options)
