"""Step-execution control loop."""

from __future__ import annotations

import copy
import logging
from typing import List, Optional

from .actions import ActionRegistry, WorkflowAction, default_registry
from .conditions import evaluate, evaluate_all, render_templates
from .config import ExecutorConfig
from .context import ActionResult, WorkflowContext
from .definition import StepSpec
from .events import (
    EventSink,
    NullEventSink,
    StepCompleted,
    StepFailed,
    WorkflowCompleted,
    WorkflowFailed,
    emit_safely,
)
from .exceptions import (
    ActionNotFoundError,
    EvaluationError,
    InvalidWorkflowStateError,
    StepExecutionError,
    WorkflowInstanceNotFoundError,
)
from .persistence import WorkflowInstance, WorkflowRepository
from .state import WorkflowState
from .utils.retry import schedule_retry

logger = logging.getLogger(__name__)

_INTERRUPTING_STATES = (WorkflowState.CANCELLED, WorkflowState.PAUSED)


class _Interrupted(Exception):
    """Another caller cancelled or paused the instance mid-run."""

    def __init__(self, stored: WorkflowInstance) -> None:
        super().__init__(stored.state.value)
        self.stored = stored


class WorkflowExecutor:
    """Drive one workflow instance through its steps until it stops.

    The executor persists the instance at every step boundary, so a run that
    stops for any reason can be picked up again from ``current_step_id``.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        registry: Optional[ActionRegistry] = None,
        events: Optional[EventSink] = None,
        config: Optional[ExecutorConfig] = None,
    ) -> None:
        self._repository = repository
        self._registry = registry if registry is not None else default_registry()
        self._events = events if events is not None else NullEventSink()
        self._config = config or ExecutorConfig()

    @property
    def registry(self) -> ActionRegistry:
        return self._registry

    async def run(self, instance: WorkflowInstance) -> WorkflowInstance:
        """Execute ``instance`` until it completes, fails or is interrupted.

        Step failures leave the instance FAILED and are not raised. Action
        resolution and condition evaluation errors also fail the instance and
        are re-raised to the caller.
        """
        if instance.state.is_terminal:
            raise InvalidWorkflowStateError.cannot_resume(instance.id, instance.state)
        if instance.state is not WorkflowState.RUNNING:
            instance.transition_to(WorkflowState.RUNNING)
            await self._repository.save(instance)

        definition = instance.definition
        step_id: Optional[str] = instance.current_step_id or definition.entry_step().id
        executed = 0

        try:
            while step_id is not None:
                await self._check_interrupted(instance)
                step = definition.get_step(step_id)
                if step is None:
                    raise EvaluationError(
                        f"Current step '{step_id}' is not part of workflow '{definition.name}'",
                        step_id,
                    )

                executed += 1
                if executed > self._config.max_steps:
                    error = StepExecutionError.step_limit_exceeded(
                        step_id, self._config.max_steps
                    )
                    logger.error(error.message)
                    await self._finalize_failure(instance, error.message)
                    return instance

                instance.set_current_step(step_id)
                await self._repository.save(instance)

                try:
                    await self._execute_step(instance, step)
                except StepExecutionError as error:
                    await self._fail_step(instance, step, error)
                    return instance

                step_id = self._select_next(instance, step_id)
                if step_id is None:
                    instance.transition_to(WorkflowState.COMPLETED)
                    await self._repository.save(instance)
                    logger.info(f"Workflow {instance.id} completed")
                    emit_safely(
                        self._events,
                        WorkflowCompleted(
                            workflow_id=instance.id,
                            name=definition.name,
                            result=copy.deepcopy(instance.data),
                        ),
                    )
                    return instance

                instance.set_current_step(step_id)
                await self._repository.save(instance)
        except _Interrupted as interrupted:
            logger.info(
                f"Workflow {instance.id} stopped: instance is {interrupted.stored.state.value}"
            )
            return interrupted.stored
        except (ActionNotFoundError, EvaluationError) as error:
            logger.error(f"Workflow {instance.id} failed: {error}")
            if not instance.state.is_terminal:
                await self._finalize_failure(instance, error.message)
            raise
        except Exception as error:
            logger.exception(f"Workflow {instance.id} aborted by an unexpected error")
            if not instance.state.is_terminal:
                await self._finalize_failure(instance, f"Unexpected error: {error}")
            raise

        return instance

    # ------------------------------------------------------------------
    # Steps
    async def _execute_step(self, instance: WorkflowInstance, step: StepSpec) -> None:
        satisfied, failing = evaluate_all(step.conditions, instance.data)
        if not satisfied:
            if self._config.precondition_policy == "fail":
                raise StepExecutionError.precondition_failed(step.id, failing)
            logger.info(
                f"Skipping step {step.id} of workflow {instance.id}: "
                f"precondition '{failing}' not met"
            )
            instance.mark_step_skipped(step.id)
            return

        logger.info(f"Executing step {step.id} of workflow {instance.id}")
        config = render_templates(step.parameters, instance.data)
        context = self._build_context(instance, step, config)

        if step.action is None:
            result = ActionResult.success()
        else:
            action = self._resolve(step, config)
            result = await self._invoke_with_retry(instance, step, action, context)

        instance.merge_data(result.data)
        instance.mark_step_completed(step.id)
        logger.info(f"Step {step.id} of workflow {instance.id} completed")
        emit_safely(
            self._events,
            StepCompleted(
                workflow_id=instance.id,
                name=instance.definition.name,
                step_id=step.id,
                data=dict(result.data),
            ),
        )

    def _resolve(self, step: StepSpec, config: dict) -> WorkflowAction:
        try:
            return self._registry.resolve(step.action, config, step.id)
        except ActionNotFoundError:
            raise
        except Exception as exc:
            # construction errors are not retried
            raise StepExecutionError.from_exception(exc, step.id, 1, 0, step.action) from exc

    def _build_context(
        self, instance: WorkflowInstance, step: StepSpec, config: dict
    ) -> WorkflowContext:
        return WorkflowContext(
            workflow_id=instance.id,
            step_id=step.id,
            data=copy.deepcopy(instance.data),
            config=config,
            instance=instance.snapshot(),
        )

    async def _invoke_with_retry(
        self,
        instance: WorkflowInstance,
        step: StepSpec,
        action: WorkflowAction,
        context: WorkflowContext,
    ) -> ActionResult:
        attempt = 1
        while True:
            try:
                result = await self._invoke(step, action, context, attempt)
            except StepExecutionError as error:
                await self._check_interrupted(instance)
                emit_safely(
                    self._events,
                    StepFailed(
                        workflow_id=instance.id,
                        name=instance.definition.name,
                        step_id=step.id,
                        error=error.message,
                        attempt_number=attempt,
                    ),
                )
                if not error.can_retry:
                    raise
                logger.warning(
                    f"Step {step.id} attempt {attempt}/{step.retry_attempts + 1} "
                    f"failed, retrying: {error.message}"
                )
                if self._config.retry_backoff:
                    await schedule_retry(
                        attempt, self._config.backoff_base, self._config.backoff_jitter
                    )
                attempt += 1
                continue
            await self._check_interrupted(instance)
            return result

    async def _invoke(
        self,
        step: StepSpec,
        action: WorkflowAction,
        context: WorkflowContext,
        attempt: int,
    ) -> ActionResult:
        try:
            if not action.can_execute(context):
                raise StepExecutionError.action_failed(
                    "Action prerequisites not met",
                    step.id,
                    attempt,
                    step.retry_attempts,
                    step.action,
                )
            result = await action.execute(context)
        except StepExecutionError:
            raise
        except Exception as exc:
            raise StepExecutionError.from_exception(
                exc, step.id, attempt, step.retry_attempts, step.action
            ) from exc

        if not isinstance(result, ActionResult):
            raise StepExecutionError.invalid_result(
                result, step.id, attempt, step.retry_attempts, step.action
            )
        if result.is_failure:
            raise StepExecutionError.action_failed(
                result.error_message or "Action failed",
                step.id,
                attempt,
                step.retry_attempts,
                step.action,
                result.metadata,
            )
        return result

    # ------------------------------------------------------------------
    # Transitions
    def _select_next(self, instance: WorkflowInstance, step_id: str) -> Optional[str]:
        definition = instance.definition
        outgoing = definition.outgoing(step_id)
        if not outgoing:
            return None
        for transition in outgoing:
            if transition.condition is None or evaluate(transition.condition, instance.data):
                return transition.to_step
        for candidate in definition.steps_after(step_id):
            if not instance.is_step_completed(candidate.id) and (
                candidate.id not in instance.skipped_steps
            ):
                logger.debug(
                    f"No transition from {step_id} fired; falling back to {candidate.id}"
                )
                return candidate.id
        return None

    async def _check_interrupted(self, instance: WorkflowInstance) -> None:
        try:
            stored = await self._repository.load(instance.id)
        except WorkflowInstanceNotFoundError:
            return
        if stored.state in _INTERRUPTING_STATES:
            raise _Interrupted(stored)

    # ------------------------------------------------------------------
    # Failure handling
    async def _fail_step(
        self, instance: WorkflowInstance, step: StepSpec, error: StepExecutionError
    ) -> None:
        logger.error(f"Step {step.id} of workflow {instance.id} failed: {error.message}")
        instance.mark_step_failed(step.id, error.message)
        await self._compensate(instance, step)
        await self._finalize_failure(instance, error.message, error.context)

    async def _finalize_failure(
        self, instance: WorkflowInstance, message: str, context: Optional[dict] = None
    ) -> None:
        instance.fail(message)
        await self._repository.save(instance)
        emit_safely(
            self._events,
            WorkflowFailed(
                workflow_id=instance.id,
                name=instance.definition.name,
                error=message,
                context=dict(context or {}),
            ),
        )

    def _compensation_order(
        self, instance: WorkflowInstance, failed: StepSpec
    ) -> List[StepSpec]:
        order: List[StepSpec] = []
        seen = set()
        for step_id in [failed.id, *reversed(instance.completed_steps)]:
            if step_id in seen:
                continue
            seen.add(step_id)
            step = instance.definition.get_step(step_id)
            if step is not None and step.has_compensation:
                order.append(step)
        return order

    async def _compensate(self, instance: WorkflowInstance, failed: StepSpec) -> None:
        for step in self._compensation_order(instance, failed):
            config = render_templates(step.parameters, instance.data)
            context = self._build_context(instance, step, config)
            try:
                action = self._registry.resolve(step.compensation, config, step.id)
                result = await action.execute(context)
            except Exception:
                logger.exception(
                    f"Compensation {step.compensation} for step {step.id} of "
                    f"workflow {instance.id} raised"
                )
                continue
            if not isinstance(result, ActionResult) or result.is_failure:
                message = getattr(result, "error_message", None) or repr(result)
                logger.error(
                    f"Compensation {step.compensation} for step {step.id} of "
                    f"workflow {instance.id} failed: {message}"
                )
            else:
                logger.info(f"Compensated step {step.id} of workflow {instance.id}")


__all__ = ["WorkflowExecutor"]
