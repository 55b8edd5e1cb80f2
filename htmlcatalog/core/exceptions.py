"""Custom exceptions for the HTML Catalog."""


class CatalogError(Exception):
    """Base exception for catalog errors."""
    pass


class ValidationError(CatalogError):
    """Exception for data validation errors."""
    pass


class ConfigurationError(CatalogError):
    """Exception for configuration related errors."""
    pass


class NotFoundError(CatalogError):
    """Raised when an operation targets a missing or deleted record."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found: {record_id}")


class DuplicateNameError(CatalogError):
    """Raised when a create or rename collides with an existing name."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"A {kind} named '{name}' already exists")


class EntityInUseError(CatalogError):
    """Raised when deleting an entity that active files still reference."""

    def __init__(self, kind: str, entity_id: str, count: int):
        self.kind = kind
        self.entity_id = entity_id
        self.count = count
        super().__init__(
            f"{kind} {entity_id} is referenced by {count} active file(s)"
        )


class PersistenceError(CatalogError):
    """Exception for snapshot storage errors."""
    pass


class SnapshotFormatError(PersistenceError):
    """Raised when a stored snapshot cannot be parsed."""
    pass


class BlobStorageError(CatalogError):
    """Exception for uploaded content storage errors."""
    pass


class ScanError(CatalogError):
    """Exception for scanning operation errors."""
    pass


class RetryableError(CatalogError):
    """Base class for errors that can be retried."""

    def __init__(self, message, retry_count=0):
        super().__init__(message)
        self.retry_count = retry_count

    def increment_retry(self):
        """Increment retry count."""
        self.retry_count += 1
        return self


class RetryablePersistenceError(PersistenceError, RetryableError):
    """Persistence error that can be retried."""
    pass
