"""Exception classes for chowder."""


class ChowderError(Exception):
    """Base exception for all chowder errors."""

    pass


class NotFound(ChowderError, LookupError):
    """Raised when an operation addresses a missing record."""

    def __init__(self, entity: str, record_id: str):
        """Initialize with entity name and record ID."""
        self.entity = entity
        self.record_id = record_id
        super().__init__(f"{entity} not found: {record_id}")


class DuplicateName(ChowderError):
    """Raised when a tag name is already taken (case-insensitively)."""

    def __init__(self, name: str):
        """Initialize with the conflicting name."""
        self.name = name
        super().__init__(f"Tag with this name already exists: {name}")


class ValidationError(ChowderError, ValueError):
    """Raised when record fields fail validation."""

    def __init__(self, field: str, message: str):
        """Initialize with field and message."""
        self.field = field
        super().__init__(f"Validation error for {field}: {message}")


class AuthorExists(ChowderError):
    """Raised when creating a second local author profile."""

    def __init__(self, author_id: str):
        self.author_id = author_id
        super().__init__(f"Author profile already exists: {author_id}")


class StorageError(ChowderError):
    """Base exception for storage-related errors."""

    pass


class StorageUnavailable(StorageError):
    """Raised when a backend cannot be opened or reached."""

    pass


class StructureExists(StorageError):
    """Raised when a schema structure (table, column, index) already exists."""

    def __init__(self, collection: str, name: str):
        self.collection = collection
        self.name = name
        super().__init__(f"{collection}.{name} already exists")


class IntegrityError(StorageError):
    """Raised when a write violates a key or uniqueness constraint."""

    pass


class ImportFormatInvalid(ChowderError, ValueError):
    """Raised when a backup snapshot fails validation."""

    pass


class SyncError(ChowderError):
    """Base exception for synchronization errors."""

    pass


class SyncItemFailed(SyncError):
    """Raised when pushing a single record to the remote fails."""

    def __init__(self, entity: str, record_id: str, cause: Exception):
        self.entity = entity
        self.record_id = record_id
        self.cause = cause
        super().__init__(f"Failed to sync {entity} {record_id}: {cause}")


class ApiError(SyncError):
    """Raised when the remote API answers with an error status."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class AuthenticationError(ApiError):
    """Raised when the remote API rejects the session."""

    pass


class OfflineError(ApiError):
    """Raised when a request is attempted while the device is offline."""

    def __init__(self, message: str = "Device is offline"):
        super().__init__(message)
