"""Tests for custom exception hierarchy."""

from land_kpr.exceptions import (
    BackupFailedError,
    BookingOverlapError,
    ConfigurationError,
    ConflictError,
    DirSyncFailedError,
    DuplicateEntityError,
    EncodeFailedError,
    EntityNotFoundError,
    InvalidStateTransitionError,
    LandKprError,
    LockOrderError,
    MalformedJSONError,
    MissingDirectoryError,
    MissingMetaOrItemsError,
    OverpaymentError,
    PartialCommitError,
    PersistenceError,
    ReferentialIntegrityError,
    ReloadError,
    RenameFailedError,
    StorageError,
    StorageLoadError,
    StorageUnavailableError,
    UnauthorizedError,
    UnreadableFileError,
    ValidationError,
    WriteFailedError,
)


class TestExceptionHierarchy:
    """Test exception inheritance chain."""

    def test_land_kpr_error_is_exception(self) -> None:
        assert isinstance(LandKprError("test"), Exception)

    def test_referential_integrity_is_entity_not_found(self) -> None:
        err = ReferentialIntegrityError("test")
        assert isinstance(err, EntityNotFoundError)
        assert isinstance(err, LandKprError)

    def test_conflict_kinds(self) -> None:
        for cls in (
            BookingOverlapError,
            InvalidStateTransitionError,
            OverpaymentError,
            DuplicateEntityError,
        ):
            assert issubclass(cls, ConflictError)

    def test_load_kinds_are_storage_errors(self) -> None:
        for cls in (
            MissingDirectoryError,
            UnreadableFileError,
            MalformedJSONError,
            MissingMetaOrItemsError,
        ):
            assert issubclass(cls, StorageLoadError)
            assert issubclass(cls, StorageError)

    def test_write_kinds_are_persistence_errors(self) -> None:
        for cls in (
            BackupFailedError,
            EncodeFailedError,
            WriteFailedError,
            RenameFailedError,
            DirSyncFailedError,
            PartialCommitError,
        ):
            assert issubclass(cls, PersistenceError)

    def test_standalone_kinds(self) -> None:
        for cls in (
            ValidationError,
            StorageUnavailableError,
            ReloadError,
            LockOrderError,
            ConfigurationError,
            UnauthorizedError,
        ):
            assert issubclass(cls, LandKprError)
        assert not issubclass(ValidationError, ConflictError)
        assert not issubclass(StorageUnavailableError, StorageError)

    def test_partial_commit_carries_progress(self) -> None:
        err = PartialCommitError("boom", written=["payments"], failed="installment_plans")
        assert err.written == ["payments"]
        assert err.failed == "installment_plans"
        assert str(err) == "boom"

    def test_exception_message(self) -> None:
        err = ReferentialIntegrityError("zone_id not found")
        assert str(err) == "zone_id not found"
