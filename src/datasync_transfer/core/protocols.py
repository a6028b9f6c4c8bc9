"""Protocol definitions for dependency injection and testability."""

from abc import ABC, abstractmethod
from typing import Any, Dict, NamedTuple, Protocol


class S3ClientProtocol(Protocol):
    """The subset of the boto3 S3 client used for bucket policies."""

    def get_bucket_policy(self, Bucket: str) -> Dict[str, Any]:
        ...

    def put_bucket_policy(self, Bucket: str, Policy: str) -> Dict[str, Any]:
        ...


class DataSyncClientProtocol(Protocol):
    """The subset of the boto3 DataSync client used by the pipeline."""

    def create_location_s3(
        self, S3BucketArn: str, S3Config: Dict[str, Any]
    ) -> Dict[str, Any]:
        ...

    def create_task(self, **kwargs: Any) -> Dict[str, Any]:
        ...

    def start_task_execution(self, TaskArn: str) -> Dict[str, Any]:
        ...


class IAMClientProtocol(Protocol):
    """The subset of the boto3 IAM client used to manage the DataSync role."""

    def get_role(self, RoleName: str) -> Dict[str, Any]:
        ...

    def create_role(self, **kwargs: Any) -> Dict[str, Any]:
        ...

    def put_role_policy(
        self, RoleName: str, PolicyName: str, PolicyDocument: str
    ) -> Dict[str, Any]:
        ...


class LogsClientProtocol(Protocol):
    """The subset of the boto3 CloudWatch Logs client used for log groups."""

    def describe_log_groups(self, **kwargs: Any) -> Dict[str, Any]:
        ...

    def get_paginator(self, operation_name: str) -> Any:
        ...

    def create_log_group(self, logGroupName: str) -> Dict[str, Any]:
        ...


class STSClientProtocol(Protocol):
    def get_caller_identity(self) -> Dict[str, Any]:
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        ...

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        ...

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        ...

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        ...


class AccountIdentity(NamedTuple):
    """Account ID and caller ARN of a set of AWS credentials."""

    account_id: str
    principal_arn: str


class BucketPolicyService(ABC):
    """Grants DataSync access to a bucket through its bucket policy."""

    @abstractmethod
    def update_bucket_policy(
        self, bucket: str, principal: str, role_arn: str
    ) -> Dict[str, Any]:
        """Allow ``role_arn`` to use the bucket and ``principal`` to list it."""
        ...


class LocationService(ABC):
    """Registers buckets as DataSync locations."""

    @abstractmethod
    def register_location(self, bucket: str, role_arn: str) -> Dict[str, Any]:
        """Create an S3 location; the response carries ``LocationArn``."""
        ...


class TaskService(ABC):
    """Creates and starts DataSync tasks."""

    @abstractmethod
    def create_task(
        self,
        name: str,
        source_location_arn: str,
        destination_location_arn: str,
        log_group_arn: str,
    ) -> Dict[str, Any]:
        """Create a task; the response carries ``TaskArn``."""
        ...

    @abstractmethod
    def start_task(self, task_arn: str) -> Dict[str, Any]:
        """Start a task; the response carries ``TaskExecutionArn``."""
        ...


class RoleService(ABC):
    @abstractmethod
    def get_or_create_role(
        self, role_name: str, account_id: str, region: str = "*"
    ) -> Dict[str, Any]:
        """Return the named IAM role, creating it for DataSync if absent."""
        ...


class LogGroupService(ABC):
    @abstractmethod
    def get_or_create_log_group(self, log_group_name: str) -> Dict[str, Any]:
        """Return the named log group, creating it if absent."""
        ...


class IdentityService(ABC):
    @abstractmethod
    def get_account_identity(self) -> AccountIdentity:
        ...
