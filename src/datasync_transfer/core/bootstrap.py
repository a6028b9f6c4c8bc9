"""Prepare the account-level resources shared by every transfer."""

from typing import Optional

from .exceptions import CollaboratorError
from .logging_config import get_logger
from .models import Initiator, TransferOptions
from .protocols import IdentityService, LogGroupService, RoleService

DEFAULT_LOG_GROUP_NAME = "/aws/datasync"


def bootstrap_transfer_options(
    identity: IdentityService,
    roles: RoleService,
    log_groups: LogGroupService,
    role_name: str,
    log_group_name: str = DEFAULT_LOG_GROUP_NAME,
    initiator: Initiator = Initiator.SOURCE,
    principal: Optional[str] = None,
    region: str = "*",
) -> TransferOptions:
    """
    Look up or create the DataSync role and log group of the initiating account.

    All three collaborators must be bound to the initiating account. The
    principal granted list access on the other account's bucket defaults to
    the caller's own ARN.

    Call this once and reuse the returned options for every transfer; the
    lookups are idempotent but each one is a round trip to AWS.
    """
    logger = get_logger("datasync-transfer.bootstrap")

    account = identity.get_account_identity()
    logger.info(f"Preparing DataSync resources in account {account.account_id}")

    role = roles.get_or_create_role(role_name, account.account_id, region)
    log_group = log_groups.get_or_create_log_group(log_group_name)

    role_arn = role.get("Arn")
    if not role_arn:
        raise CollaboratorError(f"IAM role '{role_name}' has no ARN")
    log_group_arn = log_group.get("arn")
    if not log_group_arn:
        raise CollaboratorError(f"Log group '{log_group_name}' has no ARN")

    return TransferOptions(
        role_arn=role_arn,
        principal=principal or account.principal_arn,
        log_group_arn=log_group_arn,
        initiator=initiator,
    )
