"""
Custom exceptions for hotel data storage and sync.

All store adapters raise these exceptions so the sync engine can apply
one propagation policy regardless of the backend underneath.
"""


class SyncStorageError(Exception):
    """Base exception for all storage and sync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotConnectedError(SyncStorageError):
    """Raised when a remote operation is attempted before a client is connected."""

    def __init__(self, operation: str, collection: str | None = None):
        details = {"operation": operation}
        if collection:
            details["collection"] = collection
        super().__init__(f"Remote store not connected (during {operation})", details)
        self.operation = operation
        self.collection = collection


class StorageConnectionError(SyncStorageError):
    """Raised when the remote store cannot be reached or times out.

    Note: Named StorageConnectionError to avoid shadowing the builtin ConnectionError.
    """

    def __init__(
        self,
        endpoint: str,
        cause: Exception | None = None,
        collection: str | None = None,
    ):
        details = {"endpoint": endpoint}
        if collection:
            details["collection"] = collection
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause
        self.collection = collection


class PermissionDeniedError(SyncStorageError):
    """The remote credentials lack read or write rights on a collection."""

    def __init__(self, collection: str, operation: str, reason: str | None = None):
        details = {"collection": collection, "operation": operation}
        if reason:
            details["reason"] = reason
        super().__init__(f"Permission denied for {operation} on collection {collection}", details)
        self.collection = collection
        self.operation = operation
        self.reason = reason


class InvalidFormatError(SyncStorageError):
    """Raised when a snapshot bundle does not have the expected shape."""

    def __init__(self, reason: str, key: str | None = None):
        details = {"reason": reason}
        if key:
            details["key"] = key
        super().__init__(f"Invalid snapshot format: {reason}", details)
        self.reason = reason
        self.key = key


class DeliveryQueueError(SyncStorageError):
    """Raised when the outbound email relay is unreachable or rejects a message."""

    def __init__(self, relay: str, cause: Exception | None = None, status: int | None = None):
        details: dict = {"relay": relay}
        if status is not None:
            details["status"] = status
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Email delivery queue unavailable: {relay}", details)
        self.relay = relay
        self.cause = cause
        self.status = status


class StorageIOError(SyncStorageError):
    """Raised when a local storage operation fails."""

    def __init__(self, operation: str, path: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if path:
            details["path"] = path
        if cause:
            details["cause"] = str(cause)
        message = f"Storage I/O error during {operation}"
        if path:
            message += f": {path}"
        super().__init__(message, details)
        self.operation = operation
        self.path = path
        self.cause = cause


class ValidationError(SyncStorageError):
    """Raised when records handed to the engine are malformed."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value
