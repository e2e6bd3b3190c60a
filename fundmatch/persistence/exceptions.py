"""Persistence layer exceptions.

All persistence exceptions inherit from PersistenceError, so callers that
only care that storage failed can catch one type.
"""


class PersistenceError(Exception):
    """Base exception for all persistence layer errors."""

    pass


class DatabaseConnectionError(PersistenceError):
    """Raised when database connection or initialization fails.

    Examples:
    - Invalid database URL format
    - Database file not accessible
    - Database used before init_database() was called
    """

    pass


class StorageUnavailable(PersistenceError):
    """Raised when the store cannot complete a read or write.

    Transient from the caller's point of view: the same request may
    succeed on retry.
    """

    pass


class RecordNotFoundError(PersistenceError):
    """Raised when a required database record is not found.

    For optional lookups, methods return None instead of raising this.
    """

    pass


class DataIntegrityError(PersistenceError):
    """Raised when a database constraint violation occurs."""

    pass


class ConcurrentModification(PersistenceError):
    """Raised when a match changed between the caller's read and write.

    The stored status no longer equals the status the caller based its
    change on, or a match the caller meant to create already exists.
    Reload the match and decide again.
    """

    def __init__(self, opportunity_id: int, survivor_id: int, expected_status=None, actual_status=None):
        self.opportunity_id = opportunity_id
        self.survivor_id = survivor_id
        self.expected_status = expected_status
        self.actual_status = actual_status

        if expected_status is None:
            message = f"Match ({opportunity_id}, {survivor_id}) already exists"
        else:
            message = (
                f"Match ({opportunity_id}, {survivor_id}) was modified concurrently: "
                f"expected status '{expected_status}'"
            )
            if actual_status is not None:
                message += f", found '{actual_status}'"
        super().__init__(message)
