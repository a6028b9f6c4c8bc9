"""Core components of the DataSync transfer pipeline."""

from .logging_config import get_logger, setup_logger
from .exceptions import (
    TransferPipelineError,
    ConfigurationError,
    AwsServiceError,
    CollaboratorError,
    IncompleteTransferError,
    PipelineError,
    PolicyUpdateFailed,
    SourceLocationFailed,
    DestinationLocationFailed,
    TaskCreateFailed,
    TaskStartFailed,
    MalformedResponse,
)
from .models import (
    AwsConfig,
    Initiator,
    Stage,
    TransferOptions,
    TransferResult,
    TransferSpec,
    TransferState,
)
from .pipeline import (
    StepExecutor,
    ThreadedTransferBatchDriver,
    TransferBatchDriver,
    TransferPipeline,
    summarize_results,
)
from .bootstrap import bootstrap_transfer_options

__all__ = [
    "AwsConfig",
    "Initiator",
    "Stage",
    "TransferOptions",
    "TransferResult",
    "TransferSpec",
    "TransferState",
    "StepExecutor",
    "TransferPipeline",
    "TransferBatchDriver",
    "ThreadedTransferBatchDriver",
    "summarize_results",
    "bootstrap_transfer_options",
    "setup_logger",
    "get_logger",
    "TransferPipelineError",
    "ConfigurationError",
    "AwsServiceError",
    "CollaboratorError",
    "IncompleteTransferError",
    "PipelineError",
    "PolicyUpdateFailed",
    "SourceLocationFailed",
    "DestinationLocationFailed",
    "TaskCreateFailed",
    "TaskStartFailed",
    "MalformedResponse",
]
