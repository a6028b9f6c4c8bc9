"""Resumable provisioning pipeline for DataSync S3 transfers.

A transfer walks five stages in a fixed order::

    policy-update -> source-location -> destination-location
                  -> task-create -> task-start

Each stage after the first needs the ARN produced by the one before it. A run
stops at the first failing stage and hands back the partial TransferState
together with the stage's PipelineError. Passing that state to a later run
skips every stage whose resource already exists.
"""

import time
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from .error_handling import BatchOperationContextManager
from .exceptions import ConfigurationError, MalformedResponse, PipelineError
from .models import (
    STAGE_FIELDS,
    Initiator,
    Stage,
    TransferOptions,
    TransferResult,
    TransferSpec,
    TransferState,
)
from .observability import LogContext, MetricsCollector, PerformanceMetrics, StructuredLogger
from .protocols import BucketPolicyService, LocationService, LoggerProtocol, TaskService

StepOutcome = Tuple[Optional[str], Optional[PipelineError]]


class StepExecutor:
    """Runs a single pipeline stage with skip, validation and error wrapping."""

    def __init__(
        self,
        logger: LoggerProtocol,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self._logger = logger
        self._metrics_collector = metrics_collector

    def run_step(
        self,
        stage: Stage,
        prior_value: Optional[str],
        action: Callable[[], Dict[str, Any]],
        identifier_key: Optional[str] = None,
        context: Optional[LogContext] = None,
    ) -> StepOutcome:
        """
        Execute ``stage`` unless it already produced ``prior_value``.

        Args:
            stage: The stage being run.
            prior_value: Identifier recorded for this stage by an earlier run.
                When set, ``action`` is not called and the value is returned
                unchanged.
            action: The collaborator call. Any exception it raises is
                returned wrapped in the stage's PipelineError subclass.
            identifier_key: Response key holding the identifier this stage
                produces. A response without it yields MalformedResponse.
                None for stages that produce no identifier.
            context: Log context of the enclosing run.

        Returns:
            ``(value, None)`` on success, ``(None, error)`` on failure.
        """
        step_context = (context or LogContext()).with_operation(stage.value)

        if prior_value:
            self._logger.debug(
                "Skipping stage, resource already exists",
                step_context,
                resource=prior_value,
            )
            return prior_value, None

        start_time = time.time()
        value: Optional[str] = None
        error: Optional[PipelineError] = None

        try:
            response = action()
        except Exception as exc:  # noqa: BLE001
            error = PipelineError.for_stage(stage, exc)
        else:
            if identifier_key is not None:
                if isinstance(response, Mapping):
                    value = response.get(identifier_key)
                if not value:
                    value = None
                    error = MalformedResponse(stage, identifier_key)

        end_time = time.time()
        if self._metrics_collector:
            self._metrics_collector.record_metric(
                PerformanceMetrics(
                    operation=stage.value,
                    start_time=start_time,
                    end_time=end_time,
                    success=error is None,
                    error_message=str(error) if error else None,
                )
            )

        if error is not None:
            self._logger.error(
                "Stage failed",
                step_context.with_metadata(error=str(error)),
                duration_ms=(end_time - start_time) * 1000,
            )
            return None, error

        self._logger.info(
            "Stage completed",
            step_context,
            duration_ms=(end_time - start_time) * 1000,
        )
        return value, None


class TransferPipeline:
    """
    Provisions and starts the DataSync resources of one transfer.

    The collaborators must act on behalf of the initiating account, except
    ``bucket_policies`` which must act on behalf of the other account, since
    it edits the policy of the bucket the initiating account does not own.
    """

    def __init__(
        self,
        bucket_policies: BucketPolicyService,
        locations: LocationService,
        tasks: TaskService,
        options: TransferOptions,
        logger: Optional[LoggerProtocol] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self._bucket_policies = bucket_policies
        self._locations = locations
        self._tasks = tasks
        self._options = options
        self._logger = logger or StructuredLogger("datasync-transfer.pipeline")
        self._executor = StepExecutor(self._logger, metrics_collector)

    @property
    def options(self) -> TransferOptions:
        return self._options

    def resolve_initiator(self, spec: TransferSpec) -> Initiator:
        """The initiating side of ``spec``, falling back to the options."""
        if spec.initiator is None:
            return self._options.initiator
        if spec.initiator != self._options.initiator:
            raise ConfigurationError(
                f"Transfer '{spec.task_name}' is initiated by the {spec.initiator.value} "
                f"account but this pipeline is bound to the "
                f"{self._options.initiator.value} account"
            )
        return spec.initiator

    def policy_target(self, spec: TransferSpec) -> str:
        """The bucket whose policy is updated: the one not owned by the initiator."""
        if self.resolve_initiator(spec) is Initiator.SOURCE:
            return spec.dest_bucket
        return spec.source_bucket

    def run(
        self, spec: TransferSpec, prior_state: Optional[TransferState] = None
    ) -> TransferResult:
        """
        Run the pipeline for ``spec``, resuming from ``prior_state`` if given.

        The task is always started, even when ``prior_state`` already holds an
        execution ARN; each resumed run produces a new execution. The caller's
        ``prior_state`` is never modified.

        Raises:
            ConfigurationError: ``spec`` names a different initiating side than
                the options, or ``prior_state`` has a gap in its stage order.
        """
        target_bucket = self.policy_target(spec)
        state = self._copy_state(prior_state)

        context = LogContext(
            correlation_id=f"transfer_{spec.task_name}_{int(time.time() * 1000)}",
            operation="transfer",
            component="transfer_pipeline",
        ).with_metadata(
            source_bucket=spec.source_bucket,
            dest_bucket=spec.dest_bucket,
            task_name=spec.task_name,
        )
        self._logger.info(
            "Starting transfer", context, resumed_resources=state.completed_count
        )

        # Every later stage implies the grant is already in place.
        if not state.source_location_arn:
            _, error = self._executor.run_step(
                Stage.POLICY_UPDATE,
                None,
                lambda: self._bucket_policies.update_bucket_policy(
                    target_bucket, self._options.principal, self._options.role_arn
                ),
                context=context.with_metadata(policy_bucket=target_bucket),
            )
            if error is not None:
                return self._finish(spec, state, error, context)

        steps = [
            (
                Stage.SOURCE_LOCATION,
                lambda: self._locations.register_location(
                    spec.source_bucket, self._options.role_arn
                ),
                "LocationArn",
            ),
            (
                Stage.DESTINATION_LOCATION,
                lambda: self._locations.register_location(
                    spec.dest_bucket, self._options.role_arn
                ),
                "LocationArn",
            ),
            (
                Stage.TASK_CREATE,
                lambda: self._tasks.create_task(
                    spec.task_name,
                    state.source_location_arn,
                    state.destination_location_arn,
                    self._options.log_group_arn,
                ),
                "TaskArn",
            ),
            (
                Stage.TASK_START,
                lambda: self._tasks.start_task(state.task_arn),
                "TaskExecutionArn",
            ),
        ]

        for stage, action, identifier_key in steps:
            field = STAGE_FIELDS[stage]
            if stage is Stage.TASK_START:
                # A new execution supersedes the one from an earlier run.
                setattr(state, field, None)
            value, error = self._executor.run_step(
                stage, getattr(state, field), action, identifier_key, context
            )
            if error is not None:
                return self._finish(spec, state, error, context)
            setattr(state, field, value)

        return self._finish(spec, state, None, context)

    def check_transfer(
        self, spec: TransferSpec, prior_state: Optional[TransferState] = None
    ) -> None:
        """Raise ConfigurationError if ``run(spec, prior_state)`` would."""
        self.resolve_initiator(spec)
        self._copy_state(prior_state)

    @staticmethod
    def _copy_state(prior_state: Optional[TransferState]) -> TransferState:
        if prior_state is None:
            return TransferState()
        try:
            return TransferState.model_validate(prior_state.model_dump())
        except ValidationError as e:
            raise ConfigurationError(f"Invalid prior transfer state: {e}") from e

    def _finish(
        self,
        spec: TransferSpec,
        state: TransferState,
        error: Optional[PipelineError],
        context: LogContext,
    ) -> TransferResult:
        if error is None:
            self._logger.info(
                "Transfer started", context, task_execution_arn=state.task_execution_arn
            )
        else:
            self._logger.warning(
                "Transfer halted",
                context,
                failed_stage=error.stage.value,
                missing=", ".join(state.missing_resources()),
            )
        return TransferResult(spec=spec, state=state, error=error)


def _pair_with_states(
    pipeline: TransferPipeline,
    specs: Iterable[TransferSpec],
    prior_states: Optional[Sequence[Optional[TransferState]]],
) -> List[Tuple[TransferSpec, Optional[TransferState]]]:
    """Pair specs with prior states, checking all of them before any run."""
    specs = list(specs)
    if prior_states is None:
        prior_states = [None] * len(specs)
    elif len(specs) != len(prior_states):
        raise ConfigurationError(
            f"Got {len(prior_states)} prior states for {len(specs)} transfers"
        )

    pairs = list(zip(specs, prior_states))
    for spec, prior_state in pairs:
        pipeline.check_transfer(spec, prior_state)
    return pairs


class TransferBatchDriver:
    """Runs the pipeline over a list of transfers, one after another."""

    def __init__(self, pipeline: TransferPipeline):
        self._pipeline = pipeline

    def run(
        self,
        specs: Iterable[TransferSpec],
        prior_states: Optional[Sequence[Optional[TransferState]]] = None,
    ) -> Iterator[TransferResult]:
        """
        Yield one TransferResult per spec, in input order.

        ``prior_states``, when given, is aligned with ``specs``; a None entry
        starts that transfer from scratch. Every spec and prior state is
        checked before the first transfer runs, so a ConfigurationError leaves
        nothing provisioned. A failed transfer does not stop the ones after it.
        The generator cannot be resumed; to retry, call ``run`` again with the
        states of the failed results.
        """
        pairs = _pair_with_states(self._pipeline, specs, prior_states)
        with BatchOperationContextManager("DataSync transfer batch") as batch:
            for spec, prior_state in pairs:
                result = self._pipeline.run(spec, prior_state)
                _record(batch, result)
                yield result


class ThreadedTransferBatchDriver(TransferBatchDriver):
    """Runs independent transfers concurrently on a thread pool."""

    def __init__(self, pipeline: TransferPipeline, max_workers: int = 8):
        super().__init__(pipeline)
        if max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")
        self._max_workers = max_workers

    def run(
        self,
        specs: Iterable[TransferSpec],
        prior_states: Optional[Sequence[Optional[TransferState]]] = None,
    ) -> Iterator[TransferResult]:
        """Same contract as TransferBatchDriver.run; results keep input order."""
        pairs = _pair_with_states(self._pipeline, specs, prior_states)
        if not pairs:
            return

        with BatchOperationContextManager("Threaded DataSync transfer batch") as batch:
            executor = ThreadPoolExecutor(max_workers=min(self._max_workers, len(pairs)))
            try:
                futures = [
                    executor.submit(self._pipeline.run, spec, prior_state)
                    for spec, prior_state in pairs
                ]
                for future in futures:
                    result = future.result()
                    _record(batch, result)
                    yield result
            finally:
                executor.shutdown(wait=True, cancel_futures=True)


def _record(batch: BatchOperationContextManager, result: TransferResult) -> None:
    batch.record_item()
    if result.error is not None:
        batch.add_error(str(result.error), result.spec.task_name)


def summarize_results(results: Iterable[TransferResult]) -> Dict[str, Any]:
    """Count complete and failed transfers, grouping failures by stage."""
    total = 0
    completed = 0
    failed_by_stage: Dict[str, List[str]] = {}

    for result in results:
        total += 1
        if result.success:
            completed += 1
        elif result.error is not None:
            failed_by_stage.setdefault(result.error.stage.value, []).append(
                result.spec.task_name
            )

    return {
        "total_transfers": total,
        "completed_count": completed,
        "failed_count": total - completed,
        "failed_by_stage": failed_by_stage,
    }
