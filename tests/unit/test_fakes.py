"""Unit tests for the fake AWS clients."""

import pytest
from botocore.exceptions import ClientError

from datasync_transfer.testing.fakes import (
    FakeDataSyncClient,
    FakeLogger,
    FakeS3Client,
    setup_test_aws_environment,
)


class TestFakeS3Client:
    def test_missing_policy_raises_no_such_bucket_policy(self):
        s3 = FakeS3Client()
        s3.create_bucket("bucket")

        with pytest.raises(ClientError) as excinfo:
            s3.get_bucket_policy(Bucket="bucket")
        assert excinfo.value.response["Error"]["Code"] == "NoSuchBucketPolicy"

    def test_failure_mode_can_be_cleared(self):
        s3 = FakeS3Client()
        s3.create_bucket("bucket")
        s3.set_failure_mode("put_bucket_policy", code="AccessDenied")
        with pytest.raises(ClientError):
            s3.put_bucket_policy(Bucket="bucket", Policy="{}")

        s3.set_failure_mode("put_bucket_policy", should_fail=False)
        s3.put_bucket_policy(Bucket="bucket", Policy="{}")

        assert s3.get_policy("bucket") == {}
        assert s3.operation_count("put_bucket_policy") == 2


class TestFakeDataSyncClient:
    def test_arns_are_unique(self):
        datasync = FakeDataSyncClient()
        first = datasync.create_location_s3(S3BucketArn="arn:aws:s3:::a", S3Config={})
        second = datasync.create_location_s3(S3BucketArn="arn:aws:s3:::a", S3Config={})
        assert first["LocationArn"] != second["LocationArn"]

    def test_create_task_requires_known_locations(self):
        datasync = FakeDataSyncClient()
        with pytest.raises(ClientError):
            datasync.create_task(
                Name="t", SourceLocationArn="x", DestinationLocationArn="y"
            )

    def test_omit_identifier(self):
        datasync = FakeDataSyncClient()
        datasync.omit_identifier("create_location_s3")
        assert datasync.create_location_s3(S3BucketArn="arn:aws:s3:::a", S3Config={}) == {}


def test_environment_shares_call_log():
    env = setup_test_aws_environment()
    env.sts.get_caller_identity()
    env.dest_s3.put_bucket_policy(Bucket="test-dest", Policy="{}")

    assert env.call_names() == ["sts.get_caller_identity", "s3.put_bucket_policy"]


def test_fake_logger_filters_by_level():
    logger = FakeLogger()
    logger.info("hello")
    logger.error("boom", attempt=2)

    assert [entry["message"] for entry in logger.get_logs("ERROR")] == ["boom"]
    assert logger.get_logs("ERROR")[0]["attempt"] == 2
    logger.clear_logs()
    assert logger.get_logs() == []
