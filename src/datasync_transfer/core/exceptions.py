"""Custom exceptions for the DataSync transfer pipeline."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List, Optional, Type

if TYPE_CHECKING:
    from .models import Stage


class TransferPipelineError(Exception):
    """Base exception for all transfer pipeline errors."""


class ConfigurationError(TransferPipelineError):
    """Error raised for invalid configuration options."""


class AwsServiceError(TransferPipelineError):
    """Error raised when an AWS API call fails."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code


class CollaboratorError(TransferPipelineError):
    """An AWS call succeeded but its result could not be used."""


class IncompleteTransferError(TransferPipelineError):
    """Raised or returned when a transfer is missing DataSync resources."""

    def __init__(self, missing: List[str]):
        super().__init__(
            f"Transfer process is incomplete. "
            f"DataSync resources missing: {', '.join(missing)}."
        )
        self.missing = list(missing)


class PipelineError(TransferPipelineError):
    """A pipeline stage failed; wraps the underlying cause."""

    def __init__(self, stage: "Stage", cause: object):
        self.stage = stage
        self.cause = cause
        stage_name = getattr(stage, "value", stage)
        super().__init__(f"Stage '{stage_name}' failed: {cause}")
        if isinstance(cause, BaseException):
            self.__cause__ = cause

    @staticmethod
    def for_stage(stage: "Stage", cause: object) -> "PipelineError":
        """Build the error subclass matching ``stage``."""
        error_cls = _STAGE_ERRORS.get(getattr(stage, "value", stage), PipelineError)
        return error_cls(stage, cause)


class PolicyUpdateFailed(PipelineError):
    """Updating the bucket policy of the non-owned bucket failed."""


class SourceLocationFailed(PipelineError):
    """Registering the source bucket as a DataSync location failed."""


class DestinationLocationFailed(PipelineError):
    """Registering the destination bucket as a DataSync location failed."""


class TaskCreateFailed(PipelineError):
    """Creating the DataSync task failed."""


class TaskStartFailed(PipelineError):
    """Starting the DataSync task execution failed."""


class MalformedResponse(PipelineError):
    """A stage call succeeded but returned no identifier."""

    def __init__(self, stage: "Stage", identifier_key: str):
        self.identifier_key = identifier_key
        super().__init__(stage, f"missing identifier '{identifier_key}' in response")


_STAGE_ERRORS: Dict[str, Type[PipelineError]] = {
    "policy-update": PolicyUpdateFailed,
    "source-location": SourceLocationFailed,
    "destination-location": DestinationLocationFailed,
    "task-create": TaskCreateFailed,
    "task-start": TaskStartFailed,
}
