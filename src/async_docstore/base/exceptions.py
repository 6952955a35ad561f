from typing import Optional


class StoreError(Exception):
    """Exception raised when the underlying document store fails an operation."""

    def __init__(
        self,
        message: str = "The document store operation failed.",
        operation: Optional[str] = None,
        collection: Optional[str] = None,
    ):
        super().__init__(message)
        self.operation = operation
        self.collection = collection


class StoreConnectionError(StoreError):
    """Exception raised when the transport to the store cannot be established or maintained."""

    def __init__(self, message: str = "Could not connect to the document store.", **kwargs):
        super().__init__(message, **kwargs)


class InvalidStateError(StoreError):
    """Exception raised when an operation is attempted on a store that is not connected."""

    def __init__(self, message: str = "The document store is not connected.", **kwargs):
        super().__init__(message, **kwargs)


class PersistenceError(StoreError):
    """Exception raised when a write succeeded but no identifier could be determined."""

    def __init__(self, message: str = "Save failed to generate an ID for the document.", **kwargs):
        super().__init__(message, **kwargs)


class KeyAlreadyExistsError(StoreError):
    """Exception raised when a write would violate a unique constraint."""

    def __init__(self, message: str = "A document with the same key already exists.", **kwargs):
        super().__init__(message, **kwargs)
