"""
Error taxonomy and write outcomes for feature store operations.

Every failure carries a kind so callers can branch on `outcome.error.kind`
instead of catching one exception type per remote call.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(Enum):
    """Failure kinds surfaced by the orchestrator."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CREATION = "creation"
    UPDATE = "update"
    ENABLE_ONLINE = "enable_online"
    DISABLE_ONLINE = "disable_online"
    DELETION = "deletion"
    METADATA_ATTACH = "metadata_attach"
    TRANSPORT = "transport"
    PHYSICAL_WRITE = "physical_write"


class FeaturestoreError(Exception):
    """
    Base class for all feature store errors.

    Args:
        message: Human readable description.
        status_code: HTTP status returned by the backend, if any.
        error_code: Backend error code from a structured error body.
        error_msg: Developer message from a structured error body.
        user_msg: User-facing message from a structured error body.
    """
    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[int] = None,
        error_msg: Optional[str] = None,
        user_msg: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.error_msg = error_msg
        self.user_msg = user_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to a log-friendly dictionary."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "status_code": self.status_code,
            "error_code": self.error_code,
            "error_msg": self.error_msg,
            "user_msg": self.user_msg,
        }


class ValidationError(FeaturestoreError):
    """Malformed or missing request fields, detected before any remote call."""
    kind = ErrorKind.VALIDATION


class NotFoundError(FeaturestoreError):
    kind = ErrorKind.NOT_FOUND


class FeaturestoreNotFoundError(NotFoundError):
    pass


class FeaturegroupNotFoundError(NotFoundError):
    pass


class TrainingDatasetNotFoundError(NotFoundError):
    pass


class StorageConnectorNotFoundError(NotFoundError):
    pass


class CreationError(FeaturestoreError):
    kind = ErrorKind.CREATION


class UpdateError(FeaturestoreError):
    kind = ErrorKind.UPDATE


class EnableOnlineError(FeaturestoreError):
    kind = ErrorKind.ENABLE_ONLINE


class DisableOnlineError(FeaturestoreError):
    kind = ErrorKind.DISABLE_ONLINE


class DeletionError(FeaturestoreError):
    kind = ErrorKind.DELETION


class MetadataAttachError(FeaturestoreError):
    kind = ErrorKind.METADATA_ATTACH


class TransportError(FeaturestoreError):
    """The remote gateway could not complete the call (connectivity, auth)."""
    kind = ErrorKind.TRANSPORT


class PhysicalWriteError(FeaturestoreError):
    """Writing rows to the offline or online store failed."""
    kind = ErrorKind.PHYSICAL_WRITE

    def __init__(self, message: str, target: str, **kwargs):
        super().__init__(message, **kwargs)
        self.target = target


@dataclass
class WriteOutcome:
    """
    Result of one orchestrated operation.

    On failure `error` holds the typed error and `failed_state` names the
    orchestrator state in which it happened. IDs assigned before the failure
    are kept so a partially applied write can be finished or cleaned up.
    """
    operation: str
    succeeded: bool
    featurestore_id: Optional[int] = None
    featuregroup_id: Optional[int] = None
    training_dataset_id: Optional[int] = None
    error: Optional[FeaturestoreError] = None
    failed_state: Optional[str] = None
    completed_states: List[str] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    def unwrap(self) -> "WriteOutcome":
        """Raise the carried error, or return the outcome itself on success."""
        if self.error is not None:
            raise self.error
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "succeeded": self.succeeded,
            "featurestore_id": self.featurestore_id,
            "featuregroup_id": self.featuregroup_id,
            "training_dataset_id": self.training_dataset_id,
            "error": self.error.to_dict() if self.error else None,
            "failed_state": self.failed_state,
            "completed_states": list(self.completed_states),
        }
