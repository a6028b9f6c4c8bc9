"""boto3-backed collaborators used by the transfer pipeline."""

import json
from typing import Any, Dict, Optional

from .error_handling import retry_aws_operation, with_error_handling
from .exceptions import AwsServiceError, CollaboratorError
from .logging_config import get_logger
from .policies import (
    bucket_access_policy,
    bucket_arn,
    datasync_trust_policy,
    empty_bucket_policy,
    merge_datasync_statements,
)
from .protocols import (
    AccountIdentity,
    BucketPolicyService,
    DataSyncClientProtocol,
    IAMClientProtocol,
    IdentityService,
    LocationService,
    LogGroupService,
    LogsClientProtocol,
    RoleService,
    S3ClientProtocol,
    STSClientProtocol,
    TaskService,
)

SOURCE_POLICY_NAME = "SourceBucketPermissions"
DESTINATION_POLICY_NAME = "DestinationBucketPermissions"


class S3BucketPolicyService(BucketPolicyService):
    """Edits bucket policies through the S3 client of the bucket-owning account."""

    def __init__(self, s3_client: S3ClientProtocol):
        self._s3_client = s3_client
        self._logger = get_logger("datasync-transfer.s3")

    @retry_aws_operation()
    @with_error_handling
    def _get_policy_document(self, bucket: str) -> str:
        return self._s3_client.get_bucket_policy(Bucket=bucket)["Policy"]

    def _read_policy(self, bucket: str) -> Dict[str, Any]:
        try:
            document = self._get_policy_document(bucket)
        except AwsServiceError as e:
            if e.error_code != "NoSuchBucketPolicy":
                raise
            self._logger.debug(f"Bucket {bucket} has no policy yet")
            return empty_bucket_policy()
        return json.loads(document)

    @with_error_handling
    def update_bucket_policy(
        self, bucket: str, principal: str, role_arn: str
    ) -> Dict[str, Any]:
        """
        Grant DataSync access to ``bucket``.

        This is a read-modify-write of the whole policy document; concurrent
        writers on the same bucket can overwrite each other.
        """
        policy = merge_datasync_statements(
            self._read_policy(bucket), bucket, principal, role_arn
        )
        self._logger.info(f"Updating bucket policy of s3://{bucket}")
        return self._s3_client.put_bucket_policy(
            Bucket=bucket, Policy=json.dumps(policy)
        )


class DataSyncLocationService(LocationService):
    def __init__(self, datasync_client: DataSyncClientProtocol):
        self._datasync_client = datasync_client
        self._logger = get_logger("datasync-transfer.datasync")

    @with_error_handling
    def register_location(self, bucket: str, role_arn: str) -> Dict[str, Any]:
        self._logger.debug(f"Creating DataSync location for s3://{bucket}")
        return self._datasync_client.create_location_s3(
            S3BucketArn=bucket_arn(bucket),
            S3Config={"BucketAccessRoleArn": role_arn},
        )


class DataSyncTaskService(TaskService):
    def __init__(self, datasync_client: DataSyncClientProtocol):
        self._datasync_client = datasync_client
        self._logger = get_logger("datasync-transfer.datasync")

    @with_error_handling
    def create_task(
        self,
        name: str,
        source_location_arn: str,
        destination_location_arn: str,
        log_group_arn: str,
    ) -> Dict[str, Any]:
        self._logger.debug(f"Creating DataSync task {name}")
        return self._datasync_client.create_task(
            Name=name,
            SourceLocationArn=source_location_arn,
            DestinationLocationArn=destination_location_arn,
            CloudWatchLogGroupArn=log_group_arn,
            Options={"PreserveDeletedFiles": "REMOVE"},
        )

    @with_error_handling
    def start_task(self, task_arn: str) -> Dict[str, Any]:
        self._logger.debug(f"Starting DataSync task {task_arn}")
        return self._datasync_client.start_task_execution(TaskArn=task_arn)


class IamRoleService(RoleService):
    """
    Looks up the DataSync execution role, creating it when absent.

    An existing role is assumed to be configured correctly and is returned
    as-is.
    """

    def __init__(self, iam_client: IAMClientProtocol):
        self._iam_client = iam_client
        self._logger = get_logger("datasync-transfer.iam")

    @retry_aws_operation()
    @with_error_handling
    def _lookup_role(self, role_name: str) -> Dict[str, Any]:
        return self._iam_client.get_role(RoleName=role_name)

    def get_role(self, role_name: str) -> Optional[Dict[str, Any]]:
        try:
            response = self._lookup_role(role_name)
        except AwsServiceError as e:
            if e.error_code == "NoSuchEntity":
                return None
            raise
        return response.get("Role")

    @with_error_handling
    def create_role(
        self,
        role_name: str,
        account_id: str,
        region: str = "*",
        source_bucket_arn: str = "arn:aws:s3:::*",
        dest_bucket_arn: str = "arn:aws:s3:::*",
    ) -> Dict[str, Any]:
        self._logger.info(f"Creating IAM role {role_name} for DataSync")
        response = self._iam_client.create_role(
            RoleName=role_name,
            Description="Migrate objects between S3 buckets.",
            AssumeRolePolicyDocument=json.dumps(
                datasync_trust_policy(account_id, region)
            ),
        )
        role = response.get("Role")
        if not role:
            raise CollaboratorError(
                f"IAM role for DataSync creation failed. "
                f"The created IAM role '{role_name}' is not found."
            )

        self._iam_client.put_role_policy(
            RoleName=role_name,
            PolicyName=SOURCE_POLICY_NAME,
            PolicyDocument=json.dumps(
                bucket_access_policy(source_bucket_arn, read_only=True)
            ),
        )
        self._iam_client.put_role_policy(
            RoleName=role_name,
            PolicyName=DESTINATION_POLICY_NAME,
            PolicyDocument=json.dumps(bucket_access_policy(dest_bucket_arn)),
        )
        return role

    def get_or_create_role(
        self, role_name: str, account_id: str, region: str = "*"
    ) -> Dict[str, Any]:
        role = self.get_role(role_name)
        if role is not None:
            return role

        try:
            return self.create_role(role_name, account_id, region)
        except AwsServiceError as e:
            if e.error_code != "EntityAlreadyExists":
                raise
            # Lost a creation race with another caller.
            self._logger.info(f"IAM role {role_name} was created concurrently")
            role = self.get_role(role_name)
            if role is None:
                raise
            return role


class CloudWatchLogGroupService(LogGroupService):
    def __init__(self, logs_client: LogsClientProtocol):
        self._logs_client = logs_client
        self._logger = get_logger("datasync-transfer.logs")

    @retry_aws_operation()
    @with_error_handling
    def get_log_group(self, log_group_name: str) -> Optional[Dict[str, Any]]:
        paginator = self._logs_client.get_paginator("describe_log_groups")
        for page in paginator.paginate(logGroupNamePrefix=log_group_name):
            for group in page.get("logGroups", []):
                if group.get("logGroupName") == log_group_name:
                    return group
        return None

    @with_error_handling
    def _create_log_group(self, log_group_name: str) -> None:
        self._logs_client.create_log_group(logGroupName=log_group_name)

    def get_or_create_log_group(self, log_group_name: str = "/aws/datasync") -> Dict[str, Any]:
        group = self.get_log_group(log_group_name)
        if group is not None:
            return group

        self._logger.info(f"Creating CloudWatch log group {log_group_name}")
        try:
            self._create_log_group(log_group_name)
        except AwsServiceError as e:
            if e.error_code != "ResourceAlreadyExistsException":
                raise

        group = self.get_log_group(log_group_name)
        if group is None:
            raise CollaboratorError(
                f"CloudWatch log group for DataSync creation failed. "
                f"The created CloudWatch log group '{log_group_name}' is not found."
            )
        return group


class StsIdentityService(IdentityService):
    def __init__(self, sts_client: STSClientProtocol):
        self._sts_client = sts_client

    @retry_aws_operation()
    @with_error_handling
    def get_account_identity(self) -> AccountIdentity:
        response = self._sts_client.get_caller_identity()
        return AccountIdentity(
            account_id=response["Account"], principal_arn=response["Arn"]
        )
