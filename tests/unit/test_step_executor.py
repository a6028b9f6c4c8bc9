"""Unit tests for StepExecutor."""

from unittest.mock import Mock

import pytest

from datasync_transfer.core.exceptions import (
    MalformedResponse,
    SourceLocationFailed,
    TaskStartFailed,
)
from datasync_transfer.core.models import Stage
from datasync_transfer.core.observability import LogContext, MetricsCollector
from datasync_transfer.core.pipeline import StepExecutor
from datasync_transfer.testing.fakes import FakeLogger, make_client_error


class TestStepExecutor:
    """Tests for StepExecutor.run_step."""

    def test_skips_when_prior_value_present(self):
        logger = FakeLogger()
        executor = StepExecutor(logger)
        action = Mock()

        value, error = executor.run_step(
            Stage.SOURCE_LOCATION, "arn:existing", action, "LocationArn"
        )

        assert value == "arn:existing"
        assert error is None
        action.assert_not_called()
        assert logger.get_logs("DEBUG")[0]["message"] == "Skipping stage, resource already exists"

    def test_returns_identifier_from_response(self):
        executor = StepExecutor(FakeLogger())
        action = Mock(return_value={"LocationArn": "arn:new"})

        value, error = executor.run_step(
            Stage.SOURCE_LOCATION, None, action, "LocationArn"
        )

        assert value == "arn:new"
        assert error is None
        action.assert_called_once_with()

    def test_wraps_exception_in_stage_error(self):
        executor = StepExecutor(FakeLogger())
        cause = make_client_error("AccessDenied", "denied", "CreateLocationS3")
        action = Mock(side_effect=cause)

        value, error = executor.run_step(
            Stage.SOURCE_LOCATION, None, action, "LocationArn"
        )

        assert value is None
        assert isinstance(error, SourceLocationFailed)
        assert error.stage is Stage.SOURCE_LOCATION
        assert error.cause is cause

    @pytest.mark.parametrize("response", [{}, {"TaskExecutionArn": ""}, None])
    def test_missing_identifier_is_malformed_response(self, response):
        executor = StepExecutor(FakeLogger())

        value, error = executor.run_step(
            Stage.TASK_START, None, lambda: response, "TaskExecutionArn"
        )

        assert value is None
        assert isinstance(error, MalformedResponse)
        assert error.stage is Stage.TASK_START
        assert error.identifier_key == "TaskExecutionArn"

    @pytest.mark.parametrize("response", ["arn:x", ["arn:x"]])
    def test_non_mapping_response_is_malformed_response(self, response):
        executor = StepExecutor(FakeLogger())

        value, error = executor.run_step(
            Stage.SOURCE_LOCATION, None, lambda: response, "LocationArn"
        )

        assert value is None
        assert isinstance(error, MalformedResponse)
        assert error.stage is Stage.SOURCE_LOCATION

    def test_no_identifier_expected(self):
        executor = StepExecutor(FakeLogger())

        value, error = executor.run_step(Stage.POLICY_UPDATE, None, lambda: {})

        assert value is None
        assert error is None

    def test_logs_with_stage_operation(self):
        logger = FakeLogger()
        executor = StepExecutor(logger)
        context = LogContext(correlation_id="corr-1", component="transfer_pipeline")

        executor.run_step(
            Stage.TASK_CREATE, None, lambda: {"TaskArn": "arn:task"}, "TaskArn", context
        )

        entry = logger.get_logs("INFO")[0]
        assert entry["message"] == "Stage completed"
        assert entry["operation"] == "task-create"
        assert entry["correlation_id"] == "corr-1"
        assert "duration_ms" in entry

    def test_logs_failure(self):
        logger = FakeLogger()
        executor = StepExecutor(logger)

        executor.run_step(
            Stage.TASK_START, None, Mock(side_effect=RuntimeError("boom")), "TaskExecutionArn"
        )

        errors = logger.get_logs("ERROR")
        assert len(errors) == 1
        assert "boom" in errors[0]["error"]

    def test_records_metrics_for_executed_stages_only(self):
        metrics = MetricsCollector()
        executor = StepExecutor(FakeLogger(), metrics)

        executor.run_step(Stage.SOURCE_LOCATION, "arn:existing", Mock(), "LocationArn")
        executor.run_step(
            Stage.DESTINATION_LOCATION, None, lambda: {"LocationArn": "arn"}, "LocationArn"
        )
        _, error = executor.run_step(
            Stage.TASK_CREATE, None, Mock(side_effect=RuntimeError("x")), "TaskArn"
        )

        recorded = metrics.get_metrics()
        assert [m.operation for m in recorded] == ["destination-location", "task-create"]
        assert recorded[0].success is True
        assert recorded[1].success is False
        assert recorded[1].error_message == str(error)
        assert metrics.get_summary()["failed_operations"] == 1

    def test_task_start_error_class(self):
        executor = StepExecutor(FakeLogger())
        _, error = executor.run_step(
            Stage.TASK_START, None, Mock(side_effect=RuntimeError("x")), "TaskExecutionArn"
        )
        assert isinstance(error, TaskStartFailed)
