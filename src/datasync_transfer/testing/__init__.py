"""Testing utilities and fakes for the DataSync transfer pipeline."""

from .fakes import (
    FakeAwsEnvironment,
    FakeCall,
    FakeDataSyncClient,
    FakeIAMClient,
    FakeLogger,
    FakeLogsClient,
    FakeS3Client,
    FakeSTSClient,
    make_client_error,
    setup_test_aws_environment,
)

__all__ = [
    "FakeAwsEnvironment",
    "FakeCall",
    "FakeDataSyncClient",
    "FakeIAMClient",
    "FakeLogger",
    "FakeLogsClient",
    "FakeS3Client",
    "FakeSTSClient",
    "make_client_error",
    "setup_test_aws_environment",
]
