import asyncio
import copy
import datetime
import re
from logging import LoggerAdapter
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import urlparse

from bson import ObjectId

from async_docstore.base.cursor import FindOptions, SortKeys, SortSpec, parse_sort
from async_docstore.base.exceptions import (KeyAlreadyExistsError,
                                            PersistenceError,
                                            StoreConnectionError, StoreError)
from async_docstore.base.identifiers import IdentifierCodec
from async_docstore.base.interfaces import Document, DocumentStore, Query
from async_docstore.base.utils import (get_nested_value, is_missing,
                                       prepare_for_storage, set_nested_value)

MEMORY_SCHEME = "memory"


def _is_operator_document(value: Any) -> bool:
    return (
        isinstance(value, Mapping)
        and len(value) > 0
        and all(isinstance(k, str) and k.startswith("$") for k in value)
    )


def _values_equal(value: Any, target: Any) -> bool:
    """Equality as the server applies it: missing matches None, arrays match members."""
    if is_missing(value):
        return target is None
    if isinstance(value, list):
        return value == target or any(item == target for item in value)
    return value == target


def _sort_rank(value: Any) -> Tuple[int, Any]:
    # Roughly the server's cross-type ordering, so mixed fields still sort
    if value is None or is_missing(value):
        return (0, 0)
    if isinstance(value, bool):
        return (7, value)
    if isinstance(value, (int, float)):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, Mapping):
        return (3, str(value))
    if isinstance(value, list):
        return (4, str(value))
    if isinstance(value, bytes):
        return (5, value)
    if isinstance(value, ObjectId):
        return (6, value)
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)
        return (8, value.timestamp())
    return (9, str(value))


def _sort_key(value: Any, descending: bool) -> Tuple[int, Any]:
    """Arrays sort by their smallest member ascending, their largest descending."""
    if not isinstance(value, list):
        return _sort_rank(value)
    if not value:
        return (-1, 0)
    ranks = [_sort_rank(member) for member in value]
    return max(ranks) if descending else min(ranks)


class MemoryStore(DocumentStore):
    """
    In-process document store implementing the same contract as the MongoDB
    store. Intended for development and tests.

    Collections are dicts keyed by identifier, preserving insertion order.
    Documents are deep-copied on every read and write so callers never share
    state with the store.
    """

    def __init__(self, id_codec: Optional[IdentifierCodec] = None):
        super().__init__(id_codec)
        self._database_name: Optional[str] = None
        self._collections: Dict[str, Dict[Any, Document]] = {}
        self._indexes: Dict[str, Dict[str, Dict[str, bool]]] = {}

    @property
    def driver(self) -> Dict[str, Dict[Any, Document]]:
        return self._collections

    @property
    def database_name(self) -> Optional[str]:
        return self._database_name

    # --- Connection Lifecycle ---

    async def _open(self, url: str, **options: Any) -> None:
        parsed = urlparse(url)
        if parsed.scheme != MEMORY_SCHEME:
            raise StoreConnectionError(
                f"MemoryStore cannot open '{url}': expected a '{MEMORY_SCHEME}://' URL.",
                operation="connect",
            )
        self._database_name = (
            options.get("database_name") or parsed.netloc or parsed.path.strip("/") or "default"
        )
        if options:
            self._logger.debug(f"MemoryStore ignoring connection options: {sorted(options)}")
        await asyncio.sleep(0)

    async def _close(self) -> None:
        self._collections.clear()
        self._indexes.clear()

    # --- Query Matching ---

    def _matches(self, document: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
        for key, condition in query.items():
            if key in ("$and", "$or", "$nor"):
                if not isinstance(condition, (list, tuple)) or not condition:
                    raise StoreError(f"{key} must be a nonempty array")
                results = (self._matches(document, sub) for sub in condition)
                if key == "$and" and not all(results):
                    return False
                if key == "$or" and not any(results):
                    return False
                if key == "$nor" and any(results):
                    return False
            elif key.startswith("$"):
                raise StoreError(f"Unsupported top-level operator: {key}")
            else:
                value = get_nested_value(document, key)
                if not self._matches_condition(value, condition):
                    return False
        return True

    def _matches_condition(self, value: Any, condition: Any) -> bool:
        if not _is_operator_document(condition):
            return _values_equal(value, condition)
        for operator, argument in condition.items():
            if operator == "$options":
                continue
            if operator == "$regex":
                flags = self._regex_flags(condition.get("$options", ""))
                if not self._matches_regex(value, argument, flags):
                    return False
            elif not self._check_operator(operator, value, argument):
                return False
        return True

    def _check_operator(self, operator: str, value: Any, argument: Any) -> bool:
        if operator == "$eq":
            return _values_equal(value, argument)
        elif operator == "$ne":
            return not _values_equal(value, argument)
        elif operator in ("$gt", "$gte", "$lt", "$lte"):
            return self._compare(operator, value, argument)
        elif operator in ("$in", "$nin"):
            if not isinstance(argument, (list, tuple)):
                raise StoreError(f"{operator} needs an array")
            found = any(_values_equal(value, candidate) for candidate in argument)
            return found if operator == "$in" else not found
        elif operator == "$exists":
            return (not is_missing(value)) == bool(argument)
        elif operator == "$not":
            if not isinstance(argument, Mapping):
                raise StoreError("$not needs an operator document")
            return not self._matches_condition(value, argument)
        else:
            raise StoreError(f"Unsupported operator: {operator}")

    @staticmethod
    def _compare(operator: str, value: Any, argument: Any) -> bool:
        if is_missing(value) or value is None:
            return False
        candidates = value if isinstance(value, list) else [value]
        for candidate in candidates:
            try:
                if operator == "$gt" and candidate > argument:
                    return True
                if operator == "$gte" and candidate >= argument:
                    return True
                if operator == "$lt" and candidate < argument:
                    return True
                if operator == "$lte" and candidate <= argument:
                    return True
            except TypeError:
                # Values of different types never compare
                continue
        return False

    @staticmethod
    def _regex_flags(options: str) -> int:
        flags = 0
        if "i" in options:
            flags |= re.IGNORECASE
        if "m" in options:
            flags |= re.MULTILINE
        if "s" in options:
            flags |= re.DOTALL
        if "x" in options:
            flags |= re.VERBOSE
        return flags

    @staticmethod
    def _matches_regex(value: Any, pattern: Any, flags: int) -> bool:
        try:
            compiled = re.compile(pattern, flags) if isinstance(pattern, str) else pattern
        except re.error as e:
            raise StoreError(f"Invalid regular expression {pattern!r}: {e}") from e
        candidates = value if isinstance(value, list) else [value]
        return any(
            isinstance(c, str) and compiled.search(c) is not None for c in candidates
        )

    # --- Internal Helpers ---

    def _matching(
        self, collection: str, query_filter: Mapping[str, Any], sort_keys: SortKeys = ()
    ) -> List[Document]:
        """Matching documents (not copies) in natural order, then sorted."""
        documents = [
            doc
            for doc in self._collections.get(collection, {}).values()
            if self._matches(doc, query_filter)
        ]
        # Stable sorts applied from the least significant key
        for field, direction in reversed(list(sort_keys)):
            documents.sort(
                key=lambda d: _sort_key(get_nested_value(d, field), direction < 0),
                reverse=direction < 0,
            )
        return documents

    def _check_unique(
        self, collection: str, document: Mapping[str, Any], exclude_id: Any = None
    ) -> None:
        for field, spec in self._indexes.get(collection, {}).items():
            if not spec.get("unique"):
                continue
            value = get_nested_value(document, field)
            if is_missing(value):
                if spec.get("sparse"):
                    continue
                value = None
            for other_id, other in self._collections.get(collection, {}).items():
                if other_id == exclude_id:
                    continue
                other_value = get_nested_value(other, field)
                if is_missing(other_value):
                    if spec.get("sparse"):
                        continue
                    other_value = None
                if other_value == value:
                    raise KeyAlreadyExistsError(
                        f"Duplicate key error on index '{field}_1'. Key: {{{field}: {value!r}}}",
                        collection=collection,
                    )

    def _insert(self, collection: str, document: Document) -> Any:
        documents = self._collections.setdefault(collection, {})
        if document.get(self.id_field) is None:
            document[self.id_field] = self._id_codec.generate()
        else:
            document[self.id_field] = self._cast_id(document[self.id_field])
        doc_id = document[self.id_field]
        if doc_id in documents:
            raise KeyAlreadyExistsError(
                f"Duplicate key error on index '_id_'. Key: {{_id: {doc_id!r}}}",
                collection=collection,
            )
        self._check_unique(collection, document)
        documents[doc_id] = copy.deepcopy(document)
        return doc_id

    def _equality_fields(self, query_filter: Mapping[str, Any]) -> Document:
        """Fields an upsert copies from the query into the new document."""
        seed: Document = {}
        for key, condition in query_filter.items():
            if key == "$and" and isinstance(condition, (list, tuple)):
                for sub in condition:
                    if isinstance(sub, Mapping):
                        seed.update(self._equality_fields(sub))
            elif key.startswith("$"):
                continue
            elif _is_operator_document(condition):
                if "$eq" in condition:
                    set_nested_value(seed, key, copy.deepcopy(condition["$eq"]))
            else:
                set_nested_value(seed, key, copy.deepcopy(condition))
        return seed

    def _with_errors(self, operation: str, collection: Optional[str], error: StoreError) -> StoreError:
        error.operation = error.operation or operation
        error.collection = error.collection or collection
        self._logger.error(
            f"MemoryStore error during {operation} on '{collection}': {error}"
        )
        return error

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
        await asyncio.sleep(0)
        document = prepare_for_storage(values)
        if not isinstance(document, dict):
            raise TypeError(f"values must be a document, got {type(values).__name__}")

        try:
            if id is not None:
                id = self._cast_id(id)
                document[self.id_field] = id
                self._check_unique(collection, document, exclude_id=id)
                logger.debug(f"Replacing document '{id}' in '{collection}'")
                self._collections.setdefault(collection, {})[id] = copy.deepcopy(document)
            else:
                logger.debug(f"Inserting new document into '{collection}'")
                id = self._insert(collection, document)
        except StoreError as e:
            raise self._with_errors("save", collection, e)

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
        self._ensure_connected("delete_one", collection)
        query_filter = self.normalize(query)
        logger.debug(f"MemoryStore delete_one filter on '{collection}': {query_filter}")
        await asyncio.sleep(0)
        try:
            matches = self._matching(collection, query_filter)
        except StoreError as e:
            raise self._with_errors("delete_one", collection, e)
        if not matches:
            return 0
        del self._collections[collection][matches[0][self.id_field]]
        logger.info(f"Deleted 1 document(s) from '{collection}'.")
        return 1

    async def delete_many(
        self,
        collection: str,
        query: Optional[Query],
        logger: Optional[LoggerAdapter] = None,
    ) -> int:
        logger = self._get_logger(logger)
        self._ensure_connected("delete_many", collection)
        query_filter = self.normalize(query)
        logger.debug(f"MemoryStore delete_many filter on '{collection}': {query_filter}")
        await asyncio.sleep(0)
        try:
            matches = self._matching(collection, query_filter)
        except StoreError as e:
            raise self._with_errors("delete_many", collection, e)
        for doc in matches:
            del self._collections[collection][doc[self.id_field]]
        logger.info(f"Deleted {len(matches)} document(s) from '{collection}'.")
        return len(matches)

    async def find_one(
        self,
        collection: str,
        query: Optional[Query] = None,
        sort: Optional[SortSpec] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> Optional[Document]:
        logger = self._get_logger(logger)
        self._ensure_connected("find_one", collection)
        query_filter = self.normalize(query)
        logger.debug(f"MemoryStore find_one on '{collection}': {query_filter}")
        await asyncio.sleep(0)
        try:
            matches = self._matching(collection, query_filter, parse_sort(sort))
        except StoreError as e:
            raise self._with_errors("find_one", collection, e)
        return copy.deepcopy(matches[0]) if matches else None

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
        logger.debug(
            f"MemoryStore find_one_and_update on '{collection}': {query_filter}, "
            f"fields={fields}, upsert={upsert}"
        )
        await asyncio.sleep(0)
        try:
            matches = self._matching(collection, query_filter, parse_sort(sort))
            if matches:
                current = matches[0]
                if upsert:
                    # $setOnInsert leaves an existing match untouched
                    return copy.deepcopy(current)
                return copy.deepcopy(self._apply_set(collection, current, fields))
            if not upsert:
                return None
            document = self._equality_fields(query_filter)
            for key, value in fields.items():
                set_nested_value(document, key, copy.deepcopy(value))
            doc_id = self._insert(collection, document)
            return copy.deepcopy(self._collections[collection][doc_id])
        except StoreError as e:
            raise self._with_errors("find_one_and_update", collection, e)

    def _apply_set(self, collection: str, current: Document, fields: Mapping[str, Any]) -> Document:
        doc_id = current[self.id_field]
        updated = copy.deepcopy(current)
        for key, value in fields.items():
            if key == self.id_field and value != doc_id:
                raise StoreError(
                    f"Performing an update on the path '{self.id_field}' would "
                    "modify the immutable identifier field"
                )
            if not set_nested_value(updated, key, copy.deepcopy(value)):
                raise StoreError(f"Cannot create field '{key}' in a non-document value")
        self._check_unique(collection, updated, exclude_id=doc_id)
        self._collections[collection][doc_id] = updated
        return updated

    async def find_one_and_delete(
        self,
        collection: str,
        query: Optional[Query],
        sort: Optional[SortSpec] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> int:
        logger = self._get_logger(logger)
        self._ensure_connected("find_one_and_delete", collection)
        query_filter = self.normalize(query)
        logger.debug(f"MemoryStore find_one_and_delete on '{collection}': {query_filter}")
        await asyncio.sleep(0)
        try:
            matches = self._matching(collection, query_filter, parse_sort(sort))
        except StoreError as e:
            raise self._with_errors("find_one_and_delete", collection, e)
        if not matches:
            return 0
        del self._collections[collection][matches[0][self.id_field]]
        return 1

    async def find(
        self,
        collection: str,
        query: Optional[Query] = None,
        options: Union[FindOptions, Mapping[str, Any], None] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> List[Document]:
        logger = self._get_logger(logger)
        self._ensure_connected("find", collection)
        query_filter = self.normalize(query)
        find_options = FindOptions.from_value(options)
        logger.debug(f"MemoryStore find on '{collection}': {query_filter}, {find_options!r}")
        await asyncio.sleep(0)
        try:
            documents = self._matching(collection, query_filter, find_options.sort)
        except StoreError as e:
            raise self._with_errors("find", collection, e)
        if find_options.skip:
            documents = documents[find_options.skip:]
        if find_options.limit:
            documents = documents[: find_options.limit]
        return [copy.deepcopy(doc) for doc in documents]

    async def count(
        self,
        collection: str,
        query: Optional[Query] = None,
        logger: Optional[LoggerAdapter] = None,
    ) -> int:
        logger = self._get_logger(logger)
        self._ensure_connected("count", collection)
        query_filter = self.normalize(query)
        logger.debug(f"MemoryStore count filter on '{collection}': {query_filter}")
        await asyncio.sleep(0)
        try:
            return len(self._matching(collection, query_filter))
        except StoreError as e:
            raise self._with_errors("count", collection, e)

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
        self._ensure_connected("create_index", collection)
        await asyncio.sleep(0)
        spec = {"unique": bool(unique), "sparse": bool(sparse)}
        if unique:
            # Building a unique index fails if existing documents collide
            seen = []
            for doc in self._collections.get(collection, {}).values():
                value = get_nested_value(doc, field)
                if is_missing(value):
                    if sparse:
                        continue
                    value = None
                if value in seen:
                    raise self._with_errors(
                        "create_index",
                        collection,
                        KeyAlreadyExistsError(
                            f"Duplicate key error on index '{field}_1'. Key: {{{field}: {value!r}}}"
                        ),
                    )
                seen.append(value)
        self._indexes.setdefault(collection, {})[field] = spec
        self._collections.setdefault(collection, {})
        logger.info(f"Index '{field}_1' ensured on '{collection}'.")

    async def clear_collection(
        self, collection: str, logger: Optional[LoggerAdapter] = None
    ) -> None:
        logger = self._get_logger(logger)
        self._ensure_connected("clear_collection", collection)
        await asyncio.sleep(0)
        self._collections.pop(collection, None)
        self._indexes.pop(collection, None)
        logger.info(f"Dropped collection '{collection}'.")

    async def drop_database(self, logger: Optional[LoggerAdapter] = None) -> None:
        logger = self._get_logger(logger)
        self._ensure_connected("drop_database")
        await asyncio.sleep(0)
        self._collections.clear()
        self._indexes.clear()
        logger.warning(f"Dropped database '{self._database_name}'.")
