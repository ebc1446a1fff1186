"""Error taxonomy for the local-first sync layer."""
from typing import Optional


class GymSyncError(Exception):
    """Base exception for gymsync errors."""
    pass


class ValidationError(GymSyncError):
    """Raised when a local write breaks a record invariant."""
    pass


class QuotaExceeded(ValidationError):
    """Raised when a per-user record cap has been reached."""

    def __init__(self, message: str, limit: Optional[int] = None):
        super().__init__(message)
        self.limit = limit


class TooManyExercises(ValidationError):
    """Raised when a saved workout carries more exercises than allowed."""

    def __init__(self, count: int, limit: int):
        super().__init__(f"Workout has {count} exercises. Maximum is {limit}.")
        self.count = count
        self.limit = limit


class NotFound(GymSyncError):
    """Raised when a local id does not exist in a collection."""

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection} record {record_id} not found")
        self.collection = collection
        self.record_id = record_id


class ConflictError(GymSyncError):
    """Raised when a local id is already bound to a different database id."""

    def __init__(self, local_id: str, existing: str, attempted: str):
        super().__init__(
            f"Local id {local_id} is already bound to {existing}, refusing {attempted}"
        )
        self.local_id = local_id
        self.existing = existing
        self.attempted = attempted


class SyncRequired(GymSyncError):
    """Raised when a remote id could not be resolved within the grace window."""

    def __init__(self, local_id: str):
        super().__init__(
            f"Record {local_id} has not synced yet. Please try again shortly."
        )
        self.local_id = local_id


class Unreachable(GymSyncError):
    """Raised when the remote system cannot be reached."""
    pass


class RemoteAPIError(GymSyncError):
    """Raised when the remote API answers with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
