"""Core domain models and errors."""

from .errors import (
    ApiError,
    AuthenticationError,
    AuthorExists,
    ChowderError,
    DuplicateName,
    ImportFormatInvalid,
    IntegrityError,
    NotFound,
    OfflineError,
    StorageError,
    StorageUnavailable,
    StructureExists,
    SyncError,
    SyncItemFailed,
    ValidationError,
)
from .models import (
    Author,
    Category,
    CategoryType,
    Dish,
    List,
    ListItem,
    Place,
    PlaceTag,
    RatingMode,
    Record,
    SyncedRecord,
    Tag,
    Visit,
)

__all__ = [
    # Models
    "Author",
    "Category",
    "CategoryType",
    "Dish",
    "List",
    "ListItem",
    "Place",
    "PlaceTag",
    "RatingMode",
    "Record",
    "SyncedRecord",
    "Tag",
    "Visit",
    # Errors
    "ApiError",
    "AuthenticationError",
    "AuthorExists",
    "ChowderError",
    "DuplicateName",
    "ImportFormatInvalid",
    "IntegrityError",
    "NotFound",
    "OfflineError",
    "StorageError",
    "StorageUnavailable",
    "StructureExists",
    "SyncError",
    "SyncItemFailed",
    "ValidationError",
]
