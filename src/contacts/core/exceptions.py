"""Error taxonomy for the contacts data layer."""

from enum import Enum


class ErrorKind(str, Enum):
    NOT_INITIALIZED = "not_initialized"
    ACCESS_DENIED = "access_denied"
    CONSTRAINT_VIOLATION = "constraint_violation"
    MIGRATION_FAILURE = "migration_failure"
    WRITE_FAILURE = "write_failure"
    UNKNOWN = "unknown"


class StoreError(Exception):
    """Base class for record store and gateway failures."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotInitializedError(StoreError):
    """The store was used before it was opened, or after it was closed."""

    kind = ErrorKind.NOT_INITIALIZED


class AccessDeniedError(StoreError):
    """Wrong passphrase, or the store file is corrupted or not a store file."""

    kind = ErrorKind.ACCESS_DENIED


class ConstraintViolationError(StoreError):
    """A write was rejected by a table constraint."""

    kind = ErrorKind.CONSTRAINT_VIOLATION


class StoreWriteError(StoreError):
    """A committed change could not be written to the store file and was undone."""

    kind = ErrorKind.WRITE_FAILURE


class MigrationFailureError(StoreError):
    """No migration path exists from the stored schema version."""

    kind = ErrorKind.MIGRATION_FAILURE

    def __init__(self, from_version: int, to_version: int):
        super().__init__(
            f"No migration path from schema version {from_version} to {to_version}"
        )
        self.from_version = from_version
        self.to_version = to_version


def error_kind_of(error: BaseException) -> ErrorKind:
    if isinstance(error, StoreError):
        return error.kind
    return ErrorKind.UNKNOWN
