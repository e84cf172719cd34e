"""
Workflow Engine
===============

Durable step execution for multi-step background workflows.

STATE MACHINE (per step):
    pending → success        (output checkpointed, never re-executed for this run)
    pending → retrying       (retryable error, attempts < max_attempts, jittered backoff)
    retrying → success
    retrying → failed        (attempts exhausted)
    pending → failed         (non-retryable error, e.g. MissingPayload)

Steps run strictly in order; step N+1 starts only after step N's checkpoint
is written. Re-running a run id replays recorded outputs instead of calling
completed steps again, which makes a crashed run safe to resume.

Step functions are synchronous (SQL, Qdrant, model inference) and execute
in worker threads through run_sync() with a per-attempt timeout.
"""

import asyncio
import json
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple, Type

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from app.config import settings
from app.core.async_utils import run_sync
from app.core.database import get_session_context, sqlite_retry
from app.core.errors import MissingPayload, StepFailed, StoreError
from app.core.structured_logging import run_id_var
from app.models.workflow import STEP_FAILED, STEP_SUCCESS, WorkflowStep

logger = logging.getLogger(__name__)

# Errors that cannot heal by retrying
NON_RETRYABLE: Tuple[Type[BaseException], ...] = (MissingPayload,)

_MISSING = object()


@dataclass(frozen=True)
class Step:
    """A named unit of work. ``fn`` receives the outputs recorded so far."""
    name: str
    fn: Callable[[Dict[str, Any]], Any]
    retryable: bool = True


def calculate_backoff(attempt: int, base_s: float, max_s: float) -> float:
    """
    Jittered exponential backoff.

    Formula: min(max_s, base_s * 2^(attempt-1)) + random(0, base_s)
    """
    delay = min(max_s, base_s * (2 ** max(attempt - 1, 0)))
    return delay + random.uniform(0, base_s)


class SQLCheckpointStore:
    """Persists step outcomes in the workflow_steps table."""

    def load(self, run_id: str, step_name: str) -> Any:
        """Return the recorded output of a successful step, or _MISSING."""
        def _load():
            with get_session_context() as session:
                return session.exec(
                    select(WorkflowStep)
                    .where(WorkflowStep.run_id == run_id)
                    .where(WorkflowStep.step_name == step_name)
                ).first()

        row = self._guard("load_checkpoint", _load, run_id, step_name)
        if row is None or row.status != STEP_SUCCESS:
            return _MISSING
        return json.loads(row.output_json) if row.output_json is not None else None

    def save(
        self,
        run_id: str,
        workflow: str,
        step_name: str,
        status: str,
        attempts: int,
        output: Any = None,
        error: Optional[str] = None,
    ) -> None:
        now = datetime.now(timezone.utc)

        def _save():
            with get_session_context() as session:
                row = session.exec(
                    select(WorkflowStep)
                    .where(WorkflowStep.run_id == run_id)
                    .where(WorkflowStep.step_name == step_name)
                ).first()
                if row is None:
                    row = WorkflowStep(run_id=run_id, workflow=workflow, step_name=step_name)
                row.status = status
                row.attempts = attempts
                row.output_json = json.dumps(output) if status == STEP_SUCCESS else None
                row.error = error
                row.finished_at = now
                session.add(row)
                session.commit()

        self._guard("save_checkpoint", _save, run_id, step_name)

    @staticmethod
    def _guard(operation: str, fn, run_id: str, step_name: str):
        try:
            return sqlite_retry(fn)
        except SQLAlchemyError as e:
            raise StoreError(
                detail=f"{operation} failed: {e}",
                context={"operation": operation, "run_id": run_id, "step": step_name},
            ) from e


class WorkflowEngine:
    """Runs a sequence of Steps with retries, timeouts and checkpoints."""

    def __init__(
        self,
        checkpoints: Optional[SQLCheckpointStore] = None,
        max_attempts: Optional[int] = None,
        step_timeout_s: Optional[float] = None,
        backoff_base_s: Optional[float] = None,
        backoff_max_s: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.checkpoints = checkpoints or SQLCheckpointStore()
        self.max_attempts = max_attempts or settings.workflow_max_attempts
        self.step_timeout_s = step_timeout_s or settings.workflow_step_timeout_s
        self.backoff_base_s = settings.workflow_backoff_base_s if backoff_base_s is None else backoff_base_s
        self.backoff_max_s = settings.workflow_backoff_max_s if backoff_max_s is None else backoff_max_s
        self._sleep = sleep

    async def run(
        self,
        workflow: str,
        run_id: str,
        steps: Sequence[Step],
        initial: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Execute *steps* in order for *run_id*.

        Returns:
            Mapping of step name → output (plus the *initial* entries).

        Raises:
            StepFailed: a step failed for good; ``__cause__`` holds the last error
                and ``context["step"]`` names the step.
        """
        state: Dict[str, Any] = dict(initial or {})
        token = run_id_var.set(run_id)
        try:
            for step in steps:
                recorded = await run_sync(self.checkpoints.load, run_id, step.name)
                if recorded is not _MISSING:
                    logger.info("Replaying checkpoint for step '%s' of %s", step.name, run_id)
                    state[step.name] = recorded
                    continue

                output, attempts = await self._execute(workflow, run_id, step, state)
                await run_sync(
                    self.checkpoints.save, run_id, workflow, step.name, STEP_SUCCESS, attempts, output,
                )
                state[step.name] = output
                logger.info("Workflow %s step '%s' succeeded for %s (attempts=%d)", workflow, step.name, run_id, attempts)
            return state
        finally:
            run_id_var.reset(token)

    async def _execute(self, workflow: str, run_id: str, step: Step, state: Dict[str, Any]) -> Tuple[Any, int]:
        max_attempts = self.max_attempts if step.retryable else 1
        last_error: Optional[BaseException] = None

        for attempt in range(1, max_attempts + 1):
            try:
                output = await run_sync(step.fn, dict(state), timeout=self.step_timeout_s)
                return output, attempt
            except NON_RETRYABLE as e:
                last_error = e
                logger.error("Workflow %s step '%s' hit a non-retryable error for %s: %s", workflow, step.name, run_id, e)
                break
            except Exception as e:
                last_error = e
                if attempt >= max_attempts:
                    break
                delay = calculate_backoff(attempt, self.backoff_base_s, self.backoff_max_s)
                logger.warning(
                    "Workflow %s step '%s' attempt %d/%d failed for %s: %s (retrying in %.2fs)",
                    workflow, step.name, attempt, max_attempts, run_id, e, delay,
                )
                await self._sleep(delay)

        attempts_made = attempt
        try:
            await run_sync(
                self.checkpoints.save, run_id, workflow, step.name, STEP_FAILED, attempts_made, None, str(last_error),
            )
        except StoreError as e:
            logger.error("Could not record failure of step '%s' for %s: %s", step.name, run_id, e)
        raise StepFailed(
            detail=f"step '{step.name}' failed after {attempts_made} attempt(s): {last_error}",
            context={"workflow": workflow, "run_id": run_id, "step": step.name, "attempts": attempts_made},
        ) from last_error
