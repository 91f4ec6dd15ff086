"""Custom exception hierarchy for land-kpr."""


class LandKprError(Exception):
    """Base exception for all land-kpr errors."""


class ValidationError(LandKprError):
    """Raised when input is malformed or a required field is missing."""


class EntityNotFoundError(LandKprError):
    """Raised when a referenced entity does not exist."""


class ReferentialIntegrityError(EntityNotFoundError):
    """Raised when a parent reference is missing or points at the wrong parent."""


class ConflictError(LandKprError):
    """Raised when an operation would violate a business invariant."""


class BookingOverlapError(ConflictError):
    """Raised when a booking range overlaps another active booking in the zone."""


class InvalidStateTransitionError(ConflictError):
    """Raised when an entity is in an invalid state for the operation."""


class OverpaymentError(ConflictError):
    """Raised when a payment exceeds the remaining amount due."""


class DuplicateEntityError(ConflictError):
    """Raised when an entity with the same identity already exists."""


class StorageUnavailableError(LandKprError):
    """Raised when the store has not finished loading."""


class StorageError(LandKprError):
    """Base class for internal storage failures."""


class StorageLoadError(StorageError):
    """Raised when the storage directory cannot be loaded."""


class MissingDirectoryError(StorageLoadError):
    """Raised when the storage directory is absent or not a directory."""


class UnreadableFileError(StorageLoadError):
    """Raised when a collection file is missing or cannot be read."""


class MalformedJSONError(StorageLoadError):
    """Raised when a collection file is not valid JSON."""


class MissingMetaOrItemsError(StorageLoadError):
    """Raised when a collection file lacks the meta or items object."""


class PersistenceError(StorageError):
    """Base class for collection write failures."""


class BackupFailedError(PersistenceError):
    """Raised when the previous file cannot be backed up."""


class EncodeFailedError(PersistenceError):
    """Raised when a collection cannot be encoded to JSON."""


class WriteFailedError(PersistenceError):
    """Raised when the temporary file cannot be written or synced."""


class RenameFailedError(PersistenceError):
    """Raised when the temporary file cannot replace the target."""


class DirSyncFailedError(PersistenceError):
    """Raised when the containing directory cannot be synced."""


class PartialCommitError(PersistenceError):
    """Raised when a multi-collection commit fails after some files were written."""

    def __init__(self, message: str, written: list[str], failed: str) -> None:
        super().__init__(message)
        self.written = written
        self.failed = failed


class ReloadError(StorageError):
    """Raised when the snapshot cannot be reloaded after a write."""


class LockOrderError(LandKprError):
    """Raised when collection locks are requested outside the global order."""


class ConfigurationError(LandKprError):
    """Raised when configuration is invalid or missing."""


class UnauthorizedError(LandKprError):
    """Raised when an admin-only operation is attempted without the admin token."""
