# src/async_docstore/base/interfaces.py

import asyncio
import enum
import logging
from abc import ABC, abstractmethod
from logging import LoggerAdapter
from typing import Any, Dict, List, Mapping, Optional, Type, Union

from async_docstore.base.cursor import FindOptions, SortSpec
from async_docstore.base.exceptions import (InvalidStateError,
                                            StoreConnectionError)
from async_docstore.base.identifiers import IdentifierCodec, ObjectIdCodec
from async_docstore.base.normalizer import ID_FIELD, normalize_query

Document = Dict[str, Any]
Query = Mapping[str, Any]

base_logger = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class DocumentStore(ABC):
    """
    Base interface for an asynchronous document store.

    Provides one CRUD/query contract regardless of the driver underneath.
    Every query-accepting operation normalizes its query first, so callers
    may write identifiers as 24-character hex strings.

    The connection lifecycle is DISCONNECTED -> CONNECTING -> CONNECTED ->
    CLOSED. `connect` is the only way into CONNECTED; every operation
    requires it and raises InvalidStateError otherwise.

    Subclasses implement `_open`/`_close` and the operations. No operation is
    retried, and none is serialized against another: callers that need
    read-your-writes ordering await each call before issuing the next.
    """

    id_field: str = ID_FIELD

    def __init__(self, id_codec: Optional[IdentifierCodec] = None):
        self._id_codec = id_codec or ObjectIdCodec()
        self._state = ConnectionState.DISCONNECTED
        self._url: Optional[str] = None
        self._connect_lock = asyncio.Lock()
        self._logger = logging.getLogger(f"{self.__module__}.{self.__class__.__name__}")

    # --- Connection Lifecycle ---

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def url(self) -> Optional[str]:
        return self._url

    async def connect(self, url: str, **options: Any) -> "DocumentStore":
        """
        Establish the connection. Idempotent: once connected, further calls
        return the same store without opening a new handle.

        Args:
            url: Backend connection URL, passed through to the driver.
            **options: Backend/driver options, passed through unchanged.

        Returns:
            This store, connected.

        Raises:
            StoreConnectionError: If the transport cannot be established.
            InvalidStateError: If the store was already closed.
        """
        async with self._connect_lock:
            if self._state is ConnectionState.CONNECTED:
                self._logger.debug(f"Already connected to '{self._url}', reusing handle.")
                return self
            if self._state is ConnectionState.CLOSED:
                raise InvalidStateError(
                    "Cannot reconnect a closed store; create a new one.",
                    operation="connect",
                )

            self._state = ConnectionState.CONNECTING
            self._logger.info(f"Connecting {self.__class__.__name__} to '{url}'...")
            try:
                await self._open(url, **options)
            except StoreConnectionError:
                self._state = ConnectionState.DISCONNECTED
                raise
            except Exception as e:
                self._state = ConnectionState.DISCONNECTED
                self._logger.error(f"Failed to connect to '{url}': {e}", exc_info=True)
                raise StoreConnectionError(
                    f"Could not connect to '{url}': {e}", operation="connect"
                ) from e

            self._url = url
            self._state = ConnectionState.CONNECTED
            self._logger = logging.getLogger(
                f"{self.__module__}.{self.__class__.__name__}[{url}]"
            )
            self._logger.info(f"Connected to '{url}'.")
            return self

    async def close(self) -> None:
        """Close the connection. Closing an already closed store is a no-op."""
        if self._state is ConnectionState.CLOSED:
            return
        if self._state is not ConnectionState.CONNECTED:
            raise InvalidStateError(
                f"Cannot close a store in state '{self._state.value}'.",
                operation="close",
            )
        try:
            await self._close()
        finally:
            self._state = ConnectionState.CLOSED
            self._logger.info("Connection closed.")

    def _ensure_connected(self, operation: str, collection: Optional[str] = None) -> None:
        if self._state is not ConnectionState.CONNECTED:
            raise InvalidStateError(
                f"Cannot run '{operation}' on a store in state '{self._state.value}'.",
                operation=operation,
                collection=collection,
            )

    def _get_logger(self, logger: Optional[LoggerAdapter]) -> Union[LoggerAdapter, logging.Logger]:
        return logger if logger is not None else self._logger

    @abstractmethod
    async def _open(self, url: str, **options: Any) -> None:
        """Open the driver handle. Raise StoreConnectionError on failure."""
        pass

    @abstractmethod
    async def _close(self) -> None:
        """Release the driver handle."""
        pass

    # --- Identifier Helpers ---

    @property
    def id_codec(self) -> IdentifierCodec:
        return self._id_codec

    @property
    def native_id_type(self) -> Type[Any]:
        """The native identifier type of this backend."""
        return self._id_codec.native_type

    @property
    @abstractmethod
    def driver(self) -> Any:
        """The underlying database handle (driver specific)."""
        pass

    def normalize(self, query: Optional[Query]) -> Document:
        """Return a copy of `query` with identifier fields in native form."""
        return normalize_query(query, self._id_codec, self.id_field)

    def to_canonical_string(self, id: Any) -> str:
        """String form of a canonical identifier."""
        return self._id_codec.to_canonical_string(id)

    def is_identifier_like(self, value: Any) -> bool:
        """True if `value` is a native identifier or looks like one (24 hex chars)."""
        return self._id_codec.is_identifier_like(value)

    def _cast_id(self, id: Any) -> Any:
        # Same rule as an `_id` field inside a query
        return self.normalize({self.id_field: id})[self.id_field]

    # --- Core CRUD Methods ---

    @abstractmethod
    async def save(
        self,
        collection: str,
        id: Optional[Any],
        values: Any,
        logger: Optional[LoggerAdapter] = None,
    ) -> Any:
        """
        Save a document.

        If `id` is given the document stored under it is replaced (or created
        if absent). Otherwise `values` is inserted as a new document and the
        store assigns an identifier unless `values` carries one.

        Args:
            collection: Collection name.
            id: Optional identifier, native or caller-facing string.
            values: Document body (mapping, pydantic model or dataclass).
            logger: Optional logger adapter for this call.

        Returns:
            The effective identifier of the saved document.

        Raises:
            PersistenceError: If no identifier could be determined.
            KeyAlreadyExistsError: If the write violates a unique index.
            StoreError: On any other driver failure.
        """
        pass

    async def delete_by_id(
        self,
        collection: str,
        id: Optional[Any],
        logger: Optional[LoggerAdapter] = None,
    ) -> int:
        """
        Delete the document with exactly this identifier.

        A None identifier deletes nothing and returns 0.

        Returns:
            The number of deleted documents (0 or 1).
        """
        self._ensure_connected("delete_by_id", collection)
        if id is None:
            self._get_logger(logger).debug(
                f"delete_by_id on '{collection}' called without an ID, nothing deleted."
            )
            return 0
        return await self.delete_one(collection, {self.id_field: id}, logger)

    @abstractmethod
    async def delete_one(
        self,
        collection: str,
        query: Optional[Query],
        logger: Optional[LoggerAdapter] = None,
    ) -> int:
        """Delete the first document matching `query`. Returns 0 or 1."""
        pass

    @abstractmethod
    async def delete_many(
        self,
        collection: str,
        query: Optional[Query],
        logger: Optional[LoggerAdapter] = None,
    ) -> int:
        """Delete all documents matching `query`. Returns the deleted count."""
        pass

    @abstractmethod
    async def find_one(
        self,
        collection: str,
        query: Optional[Query] = None,
        sort: Optional[SortSpec] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> Optional[Document]:
        """Return the first document matching `query`, or None."""
        pass

    @abstractmethod
    async def find_one_and_update(
        self,
        collection: str,
        query: Optional[Query],
        values: Any,
        upsert: bool = False,
        sort: Optional[SortSpec] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> Optional[Document]:
        """
        Update the first document matching `query` and return it as it is
        after the update.

        With `upsert=False` only the fields named in `values` change (`$set`).
        With `upsert=True` `values` is applied only when no document matches:
        a new document is created from the query's equality fields plus
        `values`, while an existing match is returned unchanged
        (`$setOnInsert`).

        Returns:
            The post-update document, or None if nothing matched and
            nothing was created.
        """
        pass

    @abstractmethod
    async def find_one_and_delete(
        self,
        collection: str,
        query: Optional[Query],
        sort: Optional[SortSpec] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> int:
        """Delete the first document matching `query`. Returns 1 if deleted, else 0."""
        pass

    @abstractmethod
    async def find(
        self,
        collection: str,
        query: Optional[Query] = None,
        options: Union[FindOptions, Mapping[str, Any], None] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> List[Document]:
        """
        Find documents matching `query`.

        Args:
            collection: Collection name.
            query: Filter document. None matches everything.
            options: FindOptions or a mapping with `sort`, `skip` and
                `limit`, applied in that order.
            logger: Optional logger adapter for this call.

        Returns:
            The fully materialized list of matching documents.
        """
        pass

    @abstractmethod
    async def count(
        self,
        collection: str,
        query: Optional[Query] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> int:
        """Count documents matching `query`."""
        pass

    # --- Index and Administration ---

    @abstractmethod
    async def create_index(
        self,
        collection: str,
        field: str,
        unique: bool = False,
        sparse: bool = False,
        logger: Optional[LoggerAdapter] = None,
    ) -> None:
        """Create a single-field ascending index on `field`."""
        pass

    @abstractmethod
    async def clear_collection(
        self, collection: str, logger: Optional[LoggerAdapter] = None
    ) -> None:
        """Remove all documents and the collection itself."""
        pass

    @abstractmethod
    async def drop_database(self, logger: Optional[LoggerAdapter] = None) -> None:
        """Remove the entire database."""
        pass
