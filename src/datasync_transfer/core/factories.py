"""Factory classes for creating configured service instances."""

from typing import Any, Optional, TYPE_CHECKING

import boto3

from .bootstrap import DEFAULT_LOG_GROUP_NAME, bootstrap_transfer_options
from .models import AwsConfig, Initiator, TransferOptions
from .observability import MetricsCollector, StructuredLogger
from .pipeline import ThreadedTransferBatchDriver, TransferBatchDriver, TransferPipeline
from .protocols import LoggerProtocol
from .services import (
    CloudWatchLogGroupService,
    DataSyncLocationService,
    DataSyncTaskService,
    IamRoleService,
    S3BucketPolicyService,
    StsIdentityService,
)

if TYPE_CHECKING:
    from mypy_boto3_datasync.client import DataSyncClient
    from mypy_boto3_iam.client import IAMClient
    from mypy_boto3_logs.client import CloudWatchLogsClient
    from mypy_boto3_s3.client import S3Client
    from mypy_boto3_sts.client import STSClient
else:
    DataSyncClient = IAMClient = CloudWatchLogsClient = S3Client = STSClient = Any


class LoggerFactory:
    """Factory for creating logger instances."""

    @staticmethod
    def create_logger(name: str, level: Optional[int] = None) -> LoggerProtocol:
        """Create a configured structured logger."""
        return StructuredLogger(name, level)


class AwsClientFactory:
    """Factory for creating boto3 clients for one AWS account."""

    def __init__(self, config: Optional[AwsConfig] = None):
        self._config = config or AwsConfig()
        self._session = boto3.Session(**self._config.session_kwargs())

    @property
    def config(self) -> AwsConfig:
        return self._config

    def create_client(self, service_name: str, **kwargs: Any) -> Any:
        """Create a client; boto3 sessions are not thread-safe, clients are."""
        client_kwargs = {**self._config.client_kwargs(), **kwargs}
        return self._session.client(service_name, **client_kwargs)

    def s3(self) -> S3Client:
        return self.create_client("s3")

    def datasync(self) -> DataSyncClient:
        return self.create_client("datasync")

    def iam(self) -> IAMClient:
        # IAM is global; endpoint overrides are meant for regional services.
        return self._session.client("iam")

    def logs(self) -> CloudWatchLogsClient:
        return self.create_client("logs")

    def sts(self) -> STSClient:
        return self.create_client("sts")


def _split_by_initiator(
    initiator: Initiator, source: AwsClientFactory, dest: AwsClientFactory
):
    """Return (initiating account, other account)."""
    if initiator is Initiator.SOURCE:
        return source, dest
    return dest, source


class TransferPipelineFactory:
    """Factory for wiring boto3 clients into transfer pipelines."""

    @staticmethod
    def create_options(
        source_config: Optional[AwsConfig],
        dest_config: Optional[AwsConfig],
        role_name: str,
        log_group_name: str = DEFAULT_LOG_GROUP_NAME,
        initiator: Initiator = Initiator.SOURCE,
        principal: Optional[str] = None,
    ) -> TransferOptions:
        """Look up or create the role and log group in the initiating account."""
        initiating = AwsClientFactory(
            source_config if initiator is Initiator.SOURCE else dest_config
        )
        return bootstrap_transfer_options(
            identity=StsIdentityService(initiating.sts()),
            roles=IamRoleService(initiating.iam()),
            log_groups=CloudWatchLogGroupService(initiating.logs()),
            role_name=role_name,
            log_group_name=log_group_name,
            initiator=initiator,
            principal=principal,
            region=initiating.config.region_name or "*",
        )

    @staticmethod
    def create_pipeline(
        source_config: Optional[AwsConfig],
        dest_config: Optional[AwsConfig],
        options: TransferOptions,
        logger: Optional[LoggerProtocol] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ) -> TransferPipeline:
        """
        Create a pipeline for transfers between two accounts.

        ``source_config`` must hold credentials of the account owning the
        source buckets and ``dest_config`` those of the account owning the
        destination buckets. For same-account transfers pass the same config
        twice.
        """
        initiating, other = _split_by_initiator(
            options.initiator,
            AwsClientFactory(source_config),
            AwsClientFactory(dest_config),
        )

        if logger is None:
            logger = LoggerFactory.create_logger("datasync-transfer.pipeline")

        datasync_client = initiating.datasync()
        return TransferPipeline(
            bucket_policies=S3BucketPolicyService(other.s3()),
            locations=DataSyncLocationService(datasync_client),
            tasks=DataSyncTaskService(datasync_client),
            options=options,
            logger=logger,
            metrics_collector=metrics_collector,
        )

    @staticmethod
    def create_batch_driver(
        source_config: Optional[AwsConfig],
        dest_config: Optional[AwsConfig],
        options: TransferOptions,
        max_workers: int = 1,
        logger: Optional[LoggerProtocol] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ) -> TransferBatchDriver:
        """Create a sequential driver, or a threaded one when ``max_workers > 1``."""
        pipeline = TransferPipelineFactory.create_pipeline(
            source_config, dest_config, options, logger, metrics_collector
        )
        if max_workers > 1:
            return ThreadedTransferBatchDriver(pipeline, max_workers=max_workers)
        return TransferBatchDriver(pipeline)
