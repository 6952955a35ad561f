# src/async_docstore/db_implementations/mongodb_store.py

import logging
import re
from contextlib import asynccontextmanager
from logging import LoggerAdapter
from typing import Any, AsyncGenerator, List, Mapping, Optional, Union

from bson.errors import BSONError
from motor.motor_asyncio import (AsyncIOMotorClient, AsyncIOMotorCollection,
                                 AsyncIOMotorDatabase)
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import (ConfigurationError, ConnectionFailure,
                            DuplicateKeyError, PyMongoError)

from async_docstore.base.cursor import FindOptions, SortSpec, parse_sort
from async_docstore.base.exceptions import (KeyAlreadyExistsError,
                                            PersistenceError,
                                            StoreConnectionError, StoreError)
from async_docstore.base.identifiers import IdentifierCodec
from async_docstore.base.interfaces import Document, DocumentStore, Query
from async_docstore.base.utils import prepare_for_storage

base_logger = logging.getLogger("async_docstore.db_implementations.mongodb_store")


class MongoDBStore(DocumentStore):
    """
    MongoDB document store using Motor.

    One AsyncIOMotorClient is created on `connect` and shared by all
    operations; the driver pools physical connections internally. Timeouts
    are whatever the client options (e.g. `serverSelectionTimeoutMS`)
    configure.
    """

    def __init__(
        self,
        database_name: Optional[str] = None,
        id_codec: Optional[IdentifierCodec] = None,
    ):
        """
        Args:
            database_name: Database to use. If None, the default database of
                the connection URL is used.
            id_codec: Identifier codec; defaults to ObjectIdCodec.
        """
        super().__init__(id_codec)
        self._database_name = database_name
        self._client: Optional[AsyncIOMotorClient] = None
        self._db: Optional[AsyncIOMotorDatabase] = None

    @property
    def driver(self) -> Optional[AsyncIOMotorDatabase]:
        return self._db

    @property
    def database_name(self) -> Optional[str]:
        return self._database_name

    # --- Connection Lifecycle ---

    async def _open(self, url: str, **options: Any) -> None:
        database_name = options.pop("database_name", None) or self._database_name
        client = None
        try:
            client = AsyncIOMotorClient(url, **options)
            # The client connects lazily; ping to surface transport failures now
            await client.admin.command("ping")
            db = (
                client[database_name]
                if database_name
                else client.get_default_database()
            )
        except (ConnectionFailure, ConfigurationError) as e:
            if client is not None:
                client.close()
            self._logger.error(f"MongoDB connection to '{url}' failed: {e}")
            raise StoreConnectionError(
                f"Could not connect to MongoDB at '{url}': {e}", operation="connect"
            ) from e

        self._client = client
        self._db = db
        self._database_name = db.name
        base_logger.debug(
            f"Motor client created for '{url}', database '{self._database_name}'."
        )

    async def _close(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._db = None

    @asynccontextmanager
    async def _get_session(
        self, operation: str, collection: Optional[str] = None
    ) -> AsyncGenerator[Optional[AsyncIOMotorCollection], None]:
        """
        Provides the collection object (or None for database-level
        operations) and translates driver errors raised inside the block.
        """
        self._ensure_connected(operation, collection)
        try:
            yield self._db[collection] if collection is not None else None
        except (PyMongoError, BSONError) as e:
            self._handle_db_error(e, operation, collection)

    # --- Core CRUD Methods ---

    async def save(
        self,
        collection: str,
        id: Optional[Any],
        values: Any,
        logger: Optional[LoggerAdapter] = None,
    ) -> Any:
        logger = self._get_logger(logger)
        self._ensure_connected("save", collection)
        document = prepare_for_storage(values)
        if not isinstance(document, dict):
            raise TypeError(
                f"values must be a document, got {type(values).__name__}"
            )

        async with self._get_session("save", collection) as coll:
            if id is not None:
                id = self._cast_id(id)
                document.pop(self.id_field, None)
                logger.debug(f"Replacing document '{id}' in '{collection}'")
                await coll.replace_one({self.id_field: id}, document, upsert=True)
            else:
                logger.debug(f"Inserting new document into '{collection}'")
                if document.get(self.id_field) is not None:
                    document[self.id_field] = self._cast_id(document[self.id_field])
                result = await coll.insert_one(document)
                id = result.inserted_id

        if id is None:
            raise PersistenceError(
                f"Save into '{collection}' failed to generate an ID for the document.",
                operation="save",
                collection=collection,
            )
        logger.info(f"Saved document '{id}' in '{collection}'.")
        return id

    async def delete_one(
        self,
        collection: str,
        query: Optional[Query],
        logger: Optional[LoggerAdapter] = None,
    ) -> int:
        logger = self._get_logger(logger)
        query_filter = self.normalize(query)
        logger.debug(f"MongoDB delete_one filter on '{collection}': {query_filter}")
        async with self._get_session("delete_one", collection) as coll:
            result = await coll.delete_one(query_filter)
        logger.info(f"Deleted {result.deleted_count} document(s) from '{collection}'.")
        return result.deleted_count

    async def delete_many(
        self,
        collection: str,
        query: Optional[Query],
        logger: Optional[LoggerAdapter] = None,
    ) -> int:
        logger = self._get_logger(logger)
        query_filter = self.normalize(query)
        logger.debug(f"MongoDB delete_many filter on '{collection}': {query_filter}")
        async with self._get_session("delete_many", collection) as coll:
            result = await coll.delete_many(query_filter)
        logger.info(f"Deleted {result.deleted_count} document(s) from '{collection}'.")
        return result.deleted_count

    async def find_one(
        self,
        collection: str,
        query: Optional[Query] = None,
        sort: Optional[SortSpec] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> Optional[Document]:
        logger = self._get_logger(logger)
        query_filter = self.normalize(query)
        sort_keys = parse_sort(sort)
        logger.debug(f"MongoDB find_one on '{collection}': {query_filter}, sort={sort_keys}")
        async with self._get_session("find_one", collection) as coll:
            return await coll.find_one(query_filter, sort=sort_keys or None)

    async def find_one_and_update(
        self,
        collection: str,
        query: Optional[Query],
        values: Any,
        upsert: bool = False,
        sort: Optional[SortSpec] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> Optional[Document]:
        logger = self._get_logger(logger)
        self._ensure_connected("find_one_and_update", collection)
        query_filter = self.normalize(query)
        fields = prepare_for_storage(values)
        if not isinstance(fields, dict):
            raise TypeError(f"values must be a document, got {type(values).__name__}")
        update = {"$setOnInsert": fields} if upsert else {"$set": fields}
        sort_keys = parse_sort(sort)
        logger.debug(
            f"MongoDB find_one_and_update on '{collection}': {query_filter}, "
            f"update={update}, upsert={upsert}"
        )
        async with self._get_session("find_one_and_update", collection) as coll:
            return await coll.find_one_and_update(
                query_filter,
                update,
                upsert=upsert,
                sort=sort_keys or None,
                return_document=ReturnDocument.AFTER,
            )

    async def find_one_and_delete(
        self,
        collection: str,
        query: Optional[Query],
        sort: Optional[SortSpec] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> int:
        logger = self._get_logger(logger)
        query_filter = self.normalize(query)
        sort_keys = parse_sort(sort)
        logger.debug(f"MongoDB find_one_and_delete on '{collection}': {query_filter}")
        async with self._get_session("find_one_and_delete", collection) as coll:
            deleted = await coll.find_one_and_delete(query_filter, sort=sort_keys or None)
        return 0 if deleted is None else 1

    async def find(
        self,
        collection: str,
        query: Optional[Query] = None,
        options: Union[FindOptions, Mapping[str, Any], None] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> List[Document]:
        logger = self._get_logger(logger)
        query_filter = self.normalize(query)
        find_options = FindOptions.from_value(options)
        logger.debug(f"MongoDB find on '{collection}': {query_filter}, {find_options!r}")
        async with self._get_session("find", collection) as coll:
            cursor = coll.find(query_filter)
            if find_options.sort:
                cursor = cursor.sort(find_options.sort)
            if find_options.skip is not None:
                cursor = cursor.skip(find_options.skip)
            if find_options.limit is not None:
                cursor = cursor.limit(find_options.limit)
            documents = await cursor.to_list(length=None)
        logger.debug(f"Found {len(documents)} document(s) in '{collection}'.")
        return documents

    async def count(
        self,
        collection: str,
        query: Optional[Query] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> int:
        logger = self._get_logger(logger)
        query_filter = self.normalize(query)
        logger.debug(f"MongoDB count filter on '{collection}': {query_filter}")
        async with self._get_session("count", collection) as coll:
            count_val = await coll.count_documents(query_filter)
        return int(count_val)

    # --- Index and Administration ---

    async def create_index(
        self,
        collection: str,
        field: str,
        unique: bool = False,
        sparse: bool = False,
        logger: Optional[LoggerAdapter] = None,
    ) -> None:
        logger = self._get_logger(logger)
        logger.debug(
            f"Creating index on '{collection}.{field}' (unique={unique}, sparse={sparse})"
        )
        async with self._get_session("create_index", collection) as coll:
            name = await coll.create_index(
                [(field, ASCENDING)], unique=bool(unique), sparse=bool(sparse)
            )
        logger.info(f"Index '{name}' ensured on '{collection}'.")

    async def clear_collection(
        self, collection: str, logger: Optional[LoggerAdapter] = None
    ) -> None:
        logger = self._get_logger(logger)
        async with self._get_session("clear_collection", collection):
            await self._db.drop_collection(collection)
        logger.info(f"Dropped collection '{collection}'.")

    async def drop_database(self, logger: Optional[LoggerAdapter] = None) -> None:
        logger = self._get_logger(logger)
        async with self._get_session("drop_database"):
            await self._client.drop_database(self._database_name)
        logger.warning(f"Dropped database '{self._database_name}'.")

    def _handle_db_error(
        self,
        error: Exception,
        operation: str,
        collection: Optional[str] = None,
    ) -> None:
        context = f"{operation} on '{collection}'" if collection else operation
        self._logger.error(f"MongoDB error during {context}: {error}", exc_info=True)
        if isinstance(error, DuplicateKeyError):
            match = re.search(r"index: (\S+).* dup key: ({.*?})", str(error))
            index = match.group(1) if match else "unknown"
            key = match.group(2) if match else "unknown"
            raise KeyAlreadyExistsError(
                f"Duplicate key error on index '{index}'. Key: {key}",
                operation=operation,
                collection=collection,
            ) from error
        if isinstance(error, ConnectionFailure):
            raise StoreConnectionError(
                f"Lost connection to MongoDB during {context}: {error}",
                operation=operation,
                collection=collection,
            ) from error
        raise StoreError(
            f"An unexpected MongoDB error occurred during {context}: {error}",
            operation=operation,
            collection=collection,
        ) from error
