"""Shared data models for the DataSync transfer pipeline."""

import os
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .exceptions import IncompleteTransferError, PipelineError


class Initiator(str, Enum):
    """Which account creates the DataSync resources of a transfer."""

    SOURCE = "source"
    DESTINATION = "destination"


class Stage(str, Enum):
    """Pipeline stages, in execution order."""

    POLICY_UPDATE = "policy-update"
    SOURCE_LOCATION = "source-location"
    DESTINATION_LOCATION = "destination-location"
    TASK_CREATE = "task-create"
    TASK_START = "task-start"


# TransferState field written by each stage; the policy stage produces none.
STAGE_FIELDS: Dict[Stage, Optional[str]] = {
    Stage.POLICY_UPDATE: None,
    Stage.SOURCE_LOCATION: "source_location_arn",
    Stage.DESTINATION_LOCATION: "destination_location_arn",
    Stage.TASK_CREATE: "task_arn",
    Stage.TASK_START: "task_execution_arn",
}

_RESOURCE_NAMES = {
    "source_location_arn": "source location",
    "destination_location_arn": "destination location",
    "task_arn": "task",
    "task_execution_arn": "task execution",
}


class AwsConfig(BaseModel):
    """Client configuration for one AWS account."""

    model_config = ConfigDict(frozen=True)

    region_name: Optional[str] = None
    profile_name: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_session_token: Optional[str] = None
    endpoint_url: Optional[str] = None

    @staticmethod
    def from_env(prefix: str = "") -> "AwsConfig":
        """
        Build a config from environment variables.

        With ``prefix="SOURCE_"`` the variables read are ``SOURCE_AWS_REGION``,
        ``SOURCE_AWS_PROFILE``, ``SOURCE_AWS_ACCESS_KEY_ID``,
        ``SOURCE_AWS_SECRET_ACCESS_KEY``, ``SOURCE_AWS_SESSION_TOKEN`` and
        ``SOURCE_AWS_ENDPOINT_URL``. Unset variables are left to boto3's own
        resolution chain.
        """
        region = os.getenv(f"{prefix}AWS_REGION") or os.getenv(
            f"{prefix}AWS_DEFAULT_REGION"
        )
        return AwsConfig(
            region_name=region,
            profile_name=os.getenv(f"{prefix}AWS_PROFILE"),
            aws_access_key_id=os.getenv(f"{prefix}AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.getenv(f"{prefix}AWS_SECRET_ACCESS_KEY"),
            aws_session_token=os.getenv(f"{prefix}AWS_SESSION_TOKEN"),
            endpoint_url=os.getenv(f"{prefix}AWS_ENDPOINT_URL"),
        )

    def session_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``boto3.Session``."""
        kwargs = {
            "region_name": self.region_name,
            "profile_name": self.profile_name,
            "aws_access_key_id": self.aws_access_key_id,
            "aws_secret_access_key": self.aws_secret_access_key,
            "aws_session_token": self.aws_session_token,
        }
        return {k: v for k, v in kwargs.items() if v is not None}

    def client_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``Session.client``."""
        if self.endpoint_url:
            return {"endpoint_url": self.endpoint_url}
        return {}


class TransferOptions(BaseModel):
    """Settings shared by every transfer made through one pipeline."""

    model_config = ConfigDict(frozen=True)

    role_arn: str
    principal: str
    log_group_arn: str
    initiator: Initiator = Initiator.SOURCE


class TransferSpec(BaseModel):
    """A single bucket-to-bucket transfer request."""

    model_config = ConfigDict(frozen=True)

    source_bucket: str
    dest_bucket: str
    task_name: str
    initiator: Optional[Initiator] = None


class TransferState(BaseModel):
    """
    ARNs of the DataSync resources created for one transfer.

    Fields are filled strictly in stage order, so a populated field implies
    every earlier field is populated too. A state returned from a failed run
    can be handed back to the pipeline to resume from the failing stage.
    """

    source_location_arn: Optional[str] = None
    destination_location_arn: Optional[str] = None
    task_arn: Optional[str] = None
    task_execution_arn: Optional[str] = None

    @model_validator(mode="after")
    def _check_stage_order(self) -> "TransferState":
        seen_gap = False
        for name in _RESOURCE_NAMES:
            if getattr(self, name):
                if seen_gap:
                    raise ValueError(
                        f"{name} is set but an earlier resource is missing"
                    )
            else:
                seen_gap = True
        return self

    @property
    def completed_count(self) -> int:
        return sum(1 for name in _RESOURCE_NAMES if getattr(self, name))

    @property
    def is_complete(self) -> bool:
        return self.completed_count == len(_RESOURCE_NAMES)

    def missing_resources(self) -> List[str]:
        """Human-readable names of the resources not yet created."""
        return [label for name, label in _RESOURCE_NAMES.items() if not getattr(self, name)]

    def check_incomplete(self) -> Optional[IncompleteTransferError]:
        """Return an error describing the missing resources, or None."""
        missing = self.missing_resources()
        if not missing:
            return None
        return IncompleteTransferError(missing)


class TransferResult(BaseModel):
    """Outcome of one pipeline run: the state reached and the failure, if any."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    spec: TransferSpec
    state: TransferState = Field(default_factory=TransferState)
    error: Optional[PipelineError] = None

    @property
    def success(self) -> bool:
        return self.error is None and self.state.is_complete

    @property
    def failed_stage(self) -> Optional[Stage]:
        if self.error is None:
            return None
        return self.error.stage
