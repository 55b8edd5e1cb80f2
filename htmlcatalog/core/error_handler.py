"""Error handling utilities and retry logic for the HTML Catalog."""

import errno
import time
import logging
import sqlite3
from typing import Callable, Optional, List
from functools import wraps

from .exceptions import (
    CatalogError, PersistenceError, RetryableError, RetryablePersistenceError,
    SnapshotFormatError
)


logger = logging.getLogger(__name__)


def retry_on_error(
    max_retries: int = 3,
    delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (RetryableError,)
):
    """
    Decorator to retry function calls on specific exceptions.

    Args:
        max_retries: Maximum number of retry attempts
        delay: Initial delay between retries in seconds
        backoff_factor: Factor to multiply delay by after each retry
        exceptions: Tuple of exception types to retry on
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            current_delay = delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_retries:
                        logger.error(f"Function {func.__name__} failed after {max_retries} retries: {e}")
                        raise

                    logger.warning(f"Function {func.__name__} failed (attempt {attempt + 1}/{max_retries + 1}): {e}")

                    if hasattr(e, 'increment_retry'):
                        e.increment_retry()

                    time.sleep(current_delay)
                    current_delay *= backoff_factor

        return wrapper
    return decorator


class ErrorHandler:
    """Centralized translation of low-level storage errors."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize error handler.

        Args:
            logger: Logger instance to use for error reporting
        """
        self.logger = logger or logging.getLogger(__name__)

    def handle_os_error(self, error: OSError, operation: str = "unknown"):
        """
        Translate a file system error raised while persisting the catalog.

        Raises:
            PersistenceError: Always, with a message describing the failure
        """
        if error.errno == errno.EACCES:
            self.logger.error(f"Permission denied during {operation}: {error}")
            raise PersistenceError(f"Permission denied during {operation}: {error}") from error
        elif error.errno == errno.ENOSPC:
            self.logger.error(f"No space left on device during {operation}")
            raise PersistenceError(f"No space left on device during {operation}") from error
        else:
            self.logger.error(f"File system error during {operation}: {error}")
            raise PersistenceError(f"File system error during {operation}: {error}") from error

    def handle_database_error(self, error: Exception, operation: str = "unknown"):
        """
        Translate a sqlite error into the catalog's persistence errors.

        Args:
            error: The database exception that occurred
            operation: Description of the operation that failed
        """
        if isinstance(error, sqlite3.OperationalError):
            error_msg = str(error).lower()

            if "database is locked" in error_msg:
                self.logger.warning(f"Database locked during {operation}, will retry")
                raise RetryablePersistenceError(f"Database locked during {operation}") from error

            elif "disk i/o error" in error_msg:
                self.logger.error(f"Database I/O error during {operation}: {error}")
                raise RetryablePersistenceError(f"Database I/O error: {error}") from error

            elif "database disk image is malformed" in error_msg:
                self.logger.error(f"Database corruption detected during {operation}")
                raise SnapshotFormatError(f"Database corruption detected: {error}") from error

            else:
                self.logger.error(f"Database operational error during {operation}: {error}")
                raise PersistenceError(f"Database error: {error}") from error

        elif isinstance(error, sqlite3.DatabaseError):
            self.logger.error(f"Database error during {operation}: {error}")
            raise PersistenceError(f"Database error: {error}") from error

        else:
            self.logger.error(f"Unexpected database error during {operation}: {error}")
            raise PersistenceError(f"Unexpected database error: {error}") from error

    def log_error_summary(self, errors: List[Exception], operation: str = "operation"):
        """
        Log a summary of errors that occurred during an operation.

        Args:
            errors: List of exceptions that occurred
            operation: Description of the operation
        """
        if not errors:
            return

        error_counts = {}
        for error in errors:
            error_type = type(error).__name__
            error_counts[error_type] = error_counts.get(error_type, 0) + 1

        self.logger.warning(f"Error summary for {operation}:")
        for error_type, count in error_counts.items():
            self.logger.warning(f"  {error_type}: {count} occurrences")

        unique_messages = set()
        for error in errors[:10]:
            message = str(error)
            if message not in unique_messages:
                unique_messages.add(message)
                self.logger.warning(f"  Example: {message}")


def safe_persistence_operation(operation_name: str = "persistence operation"):
    """
    Decorator that turns storage failures into PersistenceError.

    Catalog errors pass through untouched; sqlite and OS errors are
    translated by ErrorHandler so callers only ever see the catalog
    hierarchy.

    Args:
        operation_name: Name of the operation for logging
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            error_handler = ErrorHandler()

            try:
                return func(*args, **kwargs)
            except CatalogError:
                raise
            except sqlite3.Error as e:
                return error_handler.handle_database_error(e, operation_name)
            except OSError as e:
                return error_handler.handle_os_error(e, operation_name)
            except Exception as e:
                logger.error(f"Unexpected error in {operation_name} ({func.__name__}): {e}")
                raise PersistenceError(f"Unexpected error during {operation_name}: {e}") from e

        return wrapper
    return decorator
