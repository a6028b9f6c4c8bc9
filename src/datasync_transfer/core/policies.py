"""IAM and bucket policy documents required by DataSync S3 transfers.

See https://docs.aws.amazon.com/datasync/latest/userguide/create-s3-location.html
and the cross-account S3 transfer tutorial in the DataSync user guide.
"""

from typing import Any, Dict, List

ROLE_ACCESS_SID = "DataSyncCreateS3LocationAndTaskAccess"
PRINCIPAL_LIST_SID = "DataSyncCreateS3Location"

BUCKET_LEVEL_ACTIONS = [
    "s3:GetBucketLocation",
    "s3:ListBucket",
    "s3:ListBucketMultipartUploads",
]

OBJECT_LEVEL_ACTIONS = [
    "s3:AbortMultipartUpload",
    "s3:DeleteObject",
    "s3:GetObject",
    "s3:ListMultipartUploadParts",
    "s3:GetObjectTagging",
    "s3:PutObjectTagging",
    "s3:PutObject",
]

OBJECT_READ_ACTIONS = [
    "s3:GetObject",
    "s3:GetObjectTagging",
    "s3:ListMultipartUploadParts",
]


def bucket_arn(bucket: str) -> str:
    """ARN of an S3 bucket given its name."""
    return f"arn:aws:s3:::{bucket}"


def empty_bucket_policy() -> Dict[str, Any]:
    return {"Version": "2008-10-17", "Statement": []}


def datasync_bucket_statements(
    bucket: str, principal: str, role_arn: str
) -> List[Dict[str, Any]]:
    """Statements letting the DataSync role use the bucket and the principal list it."""
    arn = bucket_arn(bucket)
    return [
        {
            "Sid": ROLE_ACCESS_SID,
            "Effect": "Allow",
            "Principal": {"AWS": role_arn},
            "Action": BUCKET_LEVEL_ACTIONS + OBJECT_LEVEL_ACTIONS,
            "Resource": [arn, f"{arn}/*"],
        },
        {
            "Sid": PRINCIPAL_LIST_SID,
            "Effect": "Allow",
            "Principal": {"AWS": principal},
            "Action": "s3:ListBucket",
            "Resource": arn,
        },
    ]


def merge_datasync_statements(
    policy: Dict[str, Any], bucket: str, principal: str, role_arn: str
) -> Dict[str, Any]:
    """
    Return ``policy`` with the DataSync statements in place.

    Statements left by an earlier grant (same Sid) are replaced rather than
    duplicated, so applying the grant twice yields the same document.
    """
    statements = policy.get("Statement", [])
    if isinstance(statements, dict):
        statements = [statements]

    sids = {ROLE_ACCESS_SID, PRINCIPAL_LIST_SID}
    kept = [s for s in statements if s.get("Sid") not in sids]

    merged = dict(policy)
    merged.setdefault("Version", "2008-10-17")
    merged["Statement"] = kept + datasync_bucket_statements(bucket, principal, role_arn)
    return merged


def datasync_trust_policy(account_id: str, region: str = "*") -> Dict[str, Any]:
    """Trust policy letting DataSync in ``account_id`` assume the role."""
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"Service": "datasync.amazonaws.com"},
                "Action": "sts:AssumeRole",
                "Condition": {
                    "StringEquals": {"aws:SourceAccount": account_id},
                    "StringLike": {
                        "aws:SourceArn": f"arn:aws:datasync:{region}:{account_id}:*"
                    },
                },
            }
        ],
    }


def bucket_access_policy(
    resource_arn: str = "arn:aws:s3:::*", read_only: bool = False
) -> Dict[str, Any]:
    """Inline role policy granting DataSync access to buckets matching ``resource_arn``."""
    object_actions = OBJECT_READ_ACTIONS if read_only else OBJECT_LEVEL_ACTIONS
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Action": BUCKET_LEVEL_ACTIONS,
                "Effect": "Allow",
                "Resource": resource_arn,
            },
            {
                "Action": object_actions,
                "Effect": "Allow",
                "Resource": f"{resource_arn}/*",
            },
        ],
    }
