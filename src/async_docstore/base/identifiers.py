# src/async_docstore/base/identifiers.py

import re
from abc import ABC, abstractmethod
from typing import Any, Optional, Type

from bson import ObjectId
from bson.errors import InvalidId

# Caller-facing identifier form: 24 hex characters, any case.
ID_PATTERN = re.compile(r"[a-fA-F0-9]{24}")


class IdentifierCodec(ABC):
    """
    Converts between the caller-facing identifier form and a store's native
    identifier type.

    Conversion is soft: values that cannot be converted are passed through
    unchanged so they can still be used as literal match values.
    """

    @property
    @abstractmethod
    def native_type(self) -> Type[Any]:
        """The driver's native identifier type."""
        pass

    @abstractmethod
    def parse(self, value: Any) -> Optional[Any]:
        """
        Build a native identifier from `value`.

        Returns:
            The native identifier, or None if `value` is not convertible.
        """
        pass

    @abstractmethod
    def generate(self) -> Any:
        """Return a fresh native identifier."""
        pass

    def cast(self, value: Any) -> Any:
        """Return the native form of `value` if convertible, else `value` itself."""
        parsed = self.parse(value)
        return value if parsed is None else parsed

    def is_native(self, value: Any) -> bool:
        return isinstance(value, self.native_type)

    def matches_pattern(self, value: Any) -> bool:
        """True if the string form of `value` looks like a caller-facing identifier."""
        try:
            text = str(value)
        except Exception:
            return False
        return ID_PATTERN.fullmatch(text) is not None

    def is_identifier_like(self, value: Any) -> bool:
        return self.is_native(value) or self.matches_pattern(value)

    def to_canonical_string(self, value: Any) -> str:
        return str(value)


class ObjectIdCodec(IdentifierCodec):
    """IdentifierCodec for BSON ObjectIds, as used by MongoDB."""

    @property
    def native_type(self) -> Type[ObjectId]:
        return ObjectId

    def parse(self, value: Any) -> Optional[ObjectId]:
        if isinstance(value, ObjectId):
            return value
        # ObjectId(None) would generate a new id
        if value is None:
            return None
        try:
            return ObjectId(value)
        except (InvalidId, TypeError):
            return None

    def generate(self) -> ObjectId:
        return ObjectId()
