# tests/conftest.py
import logging
import os
from typing import Any, Dict, List

import pytest
import pytest_asyncio
from pydantic import BaseModel, Field
from pymongo import MongoClient
from pymongo.errors import ConnectionFailure

from async_docstore.base.interfaces import DocumentStore
from async_docstore.db_implementations.mongodb_store import MongoDBStore
from async_docstore.memory.base import MemoryStore

# Silence verbose loggers
logging.getLogger("pymongo").setLevel(logging.ERROR)
logging.getLogger("motor").setLevel(logging.ERROR)


# --- Constants ---
TEST_MONGO_DB_NAME = "pytest_async_docstore_db"
MONGO_URI = os.getenv("TEST_MONGO_URI", "mongodb://localhost:27017")
MEMORY_URI = "memory://pytest"


# --- Availability Checks ---
def is_mongodb_available():
    """Check if MongoDB is available (quick ping)."""
    client = None
    try:
        client = MongoClient(MONGO_URI, serverSelectionTimeoutMS=1000)
        client.admin.command("ping")
        logging.info(f"MongoDB found and responsive at {MONGO_URI}")
        return True
    except ConnectionFailure:
        logging.warning(
            f"MongoDB not found or not responsive at {MONGO_URI}. "
            "Skipping MongoDB tests."
        )
        return False
    except Exception as e:
        logging.warning(
            f"Error checking MongoDB connection at {MONGO_URI}: {e}. "
            "Skipping MongoDB tests."
        )
        return False
    finally:
        if client is not None:
            client.close()


AVAILABLE_IMPLEMENTATIONS = ["memory"]  # In-process, always available
if is_mongodb_available():
    AVAILABLE_IMPLEMENTATIONS.append("mongodb")


# --- Store Fixtures ---


@pytest_asyncio.fixture
async def memory_store():
    """Provides a connected in-memory store."""
    store = MemoryStore()
    await store.connect(MEMORY_URI)
    yield store
    if store.is_connected:
        await store.close()


@pytest_asyncio.fixture
async def mongodb_store():
    """Provides a MongoDB store on a freshly dropped test database."""
    if "mongodb" not in AVAILABLE_IMPLEMENTATIONS:
        pytest.skip("MongoDB not available or connection failed.")
    store = MongoDBStore(database_name=TEST_MONGO_DB_NAME)
    await store.connect(MONGO_URI, serverSelectionTimeoutMS=2000)
    await store.drop_database()
    yield store
    if store.is_connected:
        await store.drop_database()
        await store.close()


@pytest.fixture(params=AVAILABLE_IMPLEMENTATIONS)
def store(request) -> DocumentStore:
    """Parametrized fixture returning a connected store for each backend."""
    impl_key = request.param
    if impl_key == "memory":
        return request.getfixturevalue("memory_store")
    elif impl_key == "mongodb":
        return request.getfixturevalue("mongodb_store")
    raise ValueError(f"Unknown store implementation key: {impl_key}")


# --- Logger Fixture ---


@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_docstore_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})


# --- Test Documents ---


class Person(BaseModel):
    """A document body given as a pydantic model."""

    name: str
    age: int = 30
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


PEOPLE = [
    {"name": "Alice", "age": 31, "team": "red"},
    {"name": "Bob", "age": 45, "team": "blue"},
    {"name": "Carol", "age": 27, "team": "red"},
    {"name": "Dave", "age": 52, "team": "green"},
    {"name": "Eve", "age": 38, "team": "blue"},
]


@pytest.fixture
def collection() -> str:
    return "people"


@pytest_asyncio.fixture
async def people(store, collection, logger) -> Dict[str, Any]:
    """Stores PEOPLE and returns a name -> identifier map."""
    ids = {}
    for person in PEOPLE:
        ids[person["name"]] = await store.save(collection, None, dict(person), logger)
    return ids
