"""Unit tests for the batch drivers."""

import threading
import types
from unittest.mock import Mock

import pytest

from datasync_transfer.core.exceptions import ConfigurationError, SourceLocationFailed
from datasync_transfer.core.models import TransferOptions, TransferSpec, TransferState
from datasync_transfer.core.pipeline import (
    ThreadedTransferBatchDriver,
    TransferBatchDriver,
    TransferPipeline,
    summarize_results,
)
from datasync_transfer.testing.fakes import FakeLogger

OPTIONS = TransferOptions(
    role_arn="arn:aws:iam::111111111111:role/DataSyncS3Role",
    principal="111111111111",
    log_group_arn="arn:aws:logs:ap-northeast-1:111111111111:log-group:/aws/datasync:*",
)

SPECS = [
    TransferSpec(source_bucket="src-1", dest_bucket="dst-1", task_name="copy-1"),
    TransferSpec(source_bucket="broken", dest_bucket="dst-2", task_name="copy-2"),
    TransferSpec(source_bucket="src-3", dest_bucket="dst-3", task_name="copy-3"),
]


def make_pipeline():
    """Pipeline whose source location registration fails for bucket ``broken``."""
    lock = threading.Lock()
    counter = {"n": 0}

    def register_location(bucket, role_arn):
        if bucket == "broken":
            raise RuntimeError("AccessDenied")
        return {"LocationArn": f"arn:location:{bucket}"}

    def create_task(name, source_location_arn, destination_location_arn, log_group_arn):
        return {"TaskArn": f"arn:task:{name}"}

    def start_task(task_arn):
        with lock:
            counter["n"] += 1
            return {"TaskExecutionArn": f"{task_arn}/exec-{counter['n']}"}

    bucket_policies = Mock()
    bucket_policies.update_bucket_policy.return_value = {}
    locations = Mock()
    locations.register_location.side_effect = register_location
    tasks = Mock()
    tasks.create_task.side_effect = create_task
    tasks.start_task.side_effect = start_task

    pipeline = TransferPipeline(bucket_policies, locations, tasks, OPTIONS, logger=FakeLogger())
    return pipeline, types.SimpleNamespace(
        bucket_policies=bucket_policies, locations=locations, tasks=tasks
    )


@pytest.fixture(params=["sequential", "threaded"])
def driver_factory(request):
    def factory(pipeline):
        if request.param == "sequential":
            return TransferBatchDriver(pipeline)
        return ThreadedTransferBatchDriver(pipeline, max_workers=3)

    return factory


class TestBatchDrivers:
    """Behaviour shared by both drivers."""

    def test_one_result_per_spec_in_input_order(self, driver_factory):
        pipeline, _ = make_pipeline()
        results = list(driver_factory(pipeline).run(SPECS))

        assert [r.spec.task_name for r in results] == ["copy-1", "copy-2", "copy-3"]

    def test_failure_does_not_stop_later_items(self, driver_factory):
        pipeline, _ = make_pipeline()
        results = list(driver_factory(pipeline).run(SPECS))

        assert results[0].success
        assert isinstance(results[1].error, SourceLocationFailed)
        assert results[1].state == TransferState()
        assert results[2].success
        assert results[2].state.task_arn == "arn:task:copy-3"

    def test_prior_states_are_aligned_with_specs(self, driver_factory):
        pipeline, collaborators = make_pipeline()
        prior_states = [
            None,
            None,
            TransferState(
                source_location_arn="arn:location:src-3",
                destination_location_arn="arn:location:dst-3",
                task_arn="arn:task:copy-3",
            ),
        ]

        results = list(driver_factory(pipeline).run(SPECS, prior_states))

        assert results[2].success
        create_task_names = [c.args[0] for c in collaborators.tasks.create_task.call_args_list]
        assert create_task_names == ["copy-1"]

    def test_mismatched_prior_states_rejected(self, driver_factory):
        pipeline, _ = make_pipeline()
        with pytest.raises(ConfigurationError, match="2 prior states for 3 transfers"):
            list(driver_factory(pipeline).run(SPECS, [None, None]))

    def test_mismatched_initiator_rejected_before_any_transfer(self, driver_factory):
        pipeline, collaborators = make_pipeline()
        specs = [
            SPECS[0],
            TransferSpec(
                source_bucket="src-2",
                dest_bucket="dst-2",
                task_name="copy-2",
                initiator="destination",
            ),
            SPECS[2],
        ]

        with pytest.raises(ConfigurationError, match="'copy-2' is initiated by"):
            list(driver_factory(pipeline).run(specs))

        collaborators.bucket_policies.update_bucket_policy.assert_not_called()
        collaborators.locations.register_location.assert_not_called()

    def test_empty_batch(self, driver_factory):
        pipeline, _ = make_pipeline()
        assert list(driver_factory(pipeline).run([])) == []

    def test_rerunning_with_same_input_restarts_batch(self, driver_factory):
        pipeline, _ = make_pipeline()
        driver = driver_factory(pipeline)

        first = list(driver.run(SPECS))
        second = list(driver.run(SPECS))

        assert [r.spec for r in first] == [r.spec for r in second]


class TestSequentialDriver:
    def test_is_lazy(self):
        pipeline, collaborators = make_pipeline()
        results = TransferBatchDriver(pipeline).run(SPECS)

        collaborators.tasks.start_task.assert_not_called()
        first = next(results)

        assert first.spec.task_name == "copy-1"
        assert collaborators.tasks.start_task.call_count == 1

    def test_accepts_generators(self):
        pipeline, _ = make_pipeline()
        results = list(TransferBatchDriver(pipeline).run(s for s in SPECS))
        assert len(results) == 3


class TestThreadedDriver:
    def test_rejects_zero_workers(self):
        pipeline, _ = make_pipeline()
        with pytest.raises(ConfigurationError):
            ThreadedTransferBatchDriver(pipeline, max_workers=0)

    def test_runs_transfers_concurrently(self):
        pipeline, collaborators = make_pipeline()
        barrier = threading.Barrier(2, timeout=5)

        def wait_for_peer(bucket, principal, role_arn):
            barrier.wait()
            return {}

        collaborators.bucket_policies.update_bucket_policy.side_effect = wait_for_peer
        specs = [SPECS[0], SPECS[2]]

        results = list(ThreadedTransferBatchDriver(pipeline, max_workers=2).run(specs))

        # Both runs reached the barrier together, so they overlapped.
        assert all(r.success for r in results)


def test_summarize_results():
    pipeline, _ = make_pipeline()
    summary = summarize_results(TransferBatchDriver(pipeline).run(SPECS))

    assert summary == {
        "total_transfers": 3,
        "completed_count": 2,
        "failed_count": 1,
        "failed_by_stage": {"source-location": ["copy-2"]},
    }
