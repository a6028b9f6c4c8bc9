# src/datasync_transfer/core/error_handling.py

import functools
import logging
import time

from botocore.exceptions import ClientError

from .exceptions import AwsServiceError, TransferPipelineError

RETRYABLE_AWS_ERROR_CODES = (
    "ThrottlingException",
    "Throttling",
    "TooManyRequestsException",
    "RequestLimitExceeded",
    "SlowDown",
)


def client_error_code(error: BaseException) -> str:
    """Return the AWS error code of a botocore ClientError, or an empty string."""
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code", "")
    if isinstance(error, AwsServiceError):
        return error.error_code or ""
    return ""


def with_error_handling(func):
    """
    A decorator to wrap AWS calls with standardized error handling.

    botocore ClientErrors are logged and re-raised as AwsServiceError carrying
    the AWS error code; pipeline errors pass through untouched.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(func.__module__ + '.' + func.__name__)
        try:
            return func(*args, **kwargs)
        except TransferPipelineError:
            raise
        except ClientError as e:
            code = client_error_code(e)
            # Expected codes (NoSuchEntity, NoSuchBucketPolicy) land here too.
            logger.warning(f"AWS call failed in '{func.__name__}': {e}")
            raise AwsServiceError(
                f"AWS operation failed in {func.__name__}: {e}", error_code=code
            ) from e
        except Exception as e:
            logger.error(f"Error in '{func.__name__}': {e}", exc_info=True)
            raise
    return wrapper


def retry_aws_operation(max_attempts=3, initial_delay=1, backoff_factor=2):
    """
    Decorator to retry throttled AWS calls with exponential backoff.

    Only AwsServiceErrors whose code is in RETRYABLE_AWS_ERROR_CODES are
    retried; everything else is raised at once. Apply it to read-only
    lookups only.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = logging.getLogger(func.__module__ + '.' + func.__name__)
            attempts = 0
            delay = initial_delay
            while True:
                try:
                    return func(*args, **kwargs)
                except AwsServiceError as e:
                    attempts += 1
                    if e.error_code not in RETRYABLE_AWS_ERROR_CODES:
                        logger.error(f"AWS operation '{func.__name__}' failed with non-retryable error: {e}")
                        raise
                    if attempts >= max_attempts:
                        logger.error(
                            f"AWS operation '{func.__name__}' failed after {max_attempts} attempts. Error: {e}"
                        )
                        raise
                    logger.info(
                        f"AWS operation '{func.__name__}' throttled. Attempt {attempts}/{max_attempts}. "
                        f"Retrying in {delay:.2f}s."
                    )
                    time.sleep(delay)
                    delay *= backoff_factor
        return wrapper
    return decorator


class BatchOperationContextManager:
    """
    Context manager for batch operations to collect and summarize errors.
    """
    def __init__(self, operation_name="Batch Operation"):
        self.operation_name = operation_name
        self.errors = []
        self.items_seen = 0
        self.logger = logging.getLogger(self.__class__.__module__ + '.' + self.__class__.__name__)

    def __enter__(self):
        self.logger.info(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is GeneratorExit:
            self.logger.info(
                f"{self.operation_name} stopped by the consumer after {self.items_seen} item(s)."
            )
        elif exc_type:
            self.logger.error(
                f"{self.operation_name} failed due to an unhandled exception: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb)
            )
        elif self.errors:
            self.logger.warning(
                f"{self.operation_name} completed with {len(self.errors)} error(s) "
                f"out of {self.items_seen} item(s)."
            )
            for i, error_detail in enumerate(self.errors):
                self.logger.error(
                    f"  Error {i+1}/{len(self.errors)} for item '{error_detail['item']}': {error_detail['error']}"
                )
        else:
            self.logger.info(f"{self.operation_name} completed successfully ({self.items_seen} item(s)).")

        return False

    def record_item(self):
        """Count one processed item."""
        self.items_seen += 1

    def add_error(self, error_message: str, item_identifier: str = "Unknown item"):
        """
        Report an error for a specific item.

        Args:
            error_message (str): The error message or exception string.
            item_identifier (str): A string identifying the item that failed.
        """
        self.errors.append({"item": item_identifier, "error": str(error_message)})
        self.logger.debug(f"Error added for item '{item_identifier}' in {self.operation_name}: {error_message}")
