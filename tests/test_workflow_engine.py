"""
Workflow engine: ordered steps, retries with backoff, non-retryable errors,
checkpoint replay.
"""
import uuid

import pytest

from app.core.errors import MissingPayload, StepFailed
from app.models.workflow import STEP_FAILED, STEP_SUCCESS
from app.services.workflow_engine import (
    SQLCheckpointStore,
    Step,
    WorkflowEngine,
    _MISSING,
    calculate_backoff,
)

from conftest import MemoryCheckpointStore


class Flaky:
    """Fails the first *failures* calls, then returns *value*."""

    def __init__(self, failures, value="ok", error=lambda: RuntimeError("transient")):
        self.failures = failures
        self.value = value
        self.error = error
        self.calls = 0

    def __call__(self, state):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error()
        return self.value


def _engine(checkpoints, delays):
    async def record_sleep(delay):
        delays.append(delay)

    return WorkflowEngine(
        checkpoints=checkpoints,
        max_attempts=3,
        step_timeout_s=5,
        backoff_base_s=0.01,
        backoff_max_s=0.05,
        sleep=record_sleep,
    )


async def test_steps_run_in_order_and_see_previous_outputs(engine):
    seen = []

    def first(state):
        seen.append(("first", dict(state)))
        return 1

    def second(state):
        seen.append(("second", dict(state)))
        return state["first"] + 1

    state = await engine.run("wf", "run-order", [Step("first", first), Step("second", second)], initial={"seed": 0})

    assert state == {"seed": 0, "first": 1, "second": 2}
    assert seen[0] == ("first", {"seed": 0})
    assert seen[1] == ("second", {"seed": 0, "first": 1})


async def test_retries_until_success():
    checkpoints, delays = MemoryCheckpointStore(), []
    step_fn = Flaky(failures=2, value=42)

    state = await _engine(checkpoints, delays).run("wf", "run-retry", [Step("flaky", step_fn)])

    assert state["flaky"] == 42
    assert step_fn.calls == 3
    assert len(delays) == 2
    row = checkpoints.rows[("run-retry", "flaky")]
    assert row["status"] == STEP_SUCCESS
    assert row["attempts"] == 3


async def test_exhausted_retries_raise_step_failed():
    checkpoints, delays = MemoryCheckpointStore(), []
    step_fn = Flaky(failures=10)

    with pytest.raises(StepFailed) as exc_info:
        await _engine(checkpoints, delays).run("wf", "run-exhaust", [Step("doomed", step_fn)])

    assert step_fn.calls == 3
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert exc_info.value.context["step"] == "doomed"
    assert exc_info.value.context["attempts"] == 3
    assert checkpoints.rows[("run-exhaust", "doomed")]["status"] == STEP_FAILED


async def test_missing_payload_is_not_retried():
    checkpoints, delays = MemoryCheckpointStore(), []
    step_fn = Flaky(failures=10, error=lambda: MissingPayload(detail="blob gone"))

    with pytest.raises(StepFailed) as exc_info:
        await _engine(checkpoints, delays).run("wf", "run-missing", [Step("fetch", step_fn)])

    assert step_fn.calls == 1
    assert delays == []
    assert isinstance(exc_info.value.__cause__, MissingPayload)


async def test_non_retryable_step_gets_one_attempt():
    checkpoints, delays = MemoryCheckpointStore(), []
    step_fn = Flaky(failures=1)

    with pytest.raises(StepFailed):
        await _engine(checkpoints, delays).run("wf", "run-once", [Step("once", step_fn, retryable=False)])

    assert step_fn.calls == 1


async def test_later_steps_do_not_run_after_failure(engine):
    after = Flaky(failures=0)

    with pytest.raises(StepFailed):
        await engine.run("wf", "run-stop", [Step("boom", Flaky(failures=10)), Step("after", after)])

    assert after.calls == 0


async def test_recorded_steps_are_replayed(engine, checkpoints):
    checkpoints.save("run-replay", "wf", "done", STEP_SUCCESS, 1, {"cached": True})

    def must_not_run(state):
        raise AssertionError("completed step executed again")

    state = await engine.run("wf", "run-replay", [Step("done", must_not_run), Step("next", lambda s: s["done"])])

    assert state["done"] == {"cached": True}
    assert state["next"] == {"cached": True}


async def test_failed_checkpoint_is_not_replayed(engine, checkpoints):
    checkpoints.save("run-failed", "wf", "step", STEP_FAILED, 3, None, "boom")

    state = await engine.run("wf", "run-failed", [Step("step", lambda s: "fresh")])

    assert state["step"] == "fresh"


def test_backoff_grows_and_caps():
    assert 1.0 <= calculate_backoff(1, 1.0, 10.0) <= 2.0
    assert 2.0 <= calculate_backoff(2, 1.0, 10.0) <= 3.0
    assert 10.0 <= calculate_backoff(12, 1.0, 10.0) <= 11.0


class TestSQLCheckpointStore:
    def test_round_trip_success(self):
        store = SQLCheckpointStore()
        run_id = str(uuid.uuid4())
        store.save(run_id, "wf", "classify", STEP_SUCCESS, 1, {"sentiment": "positive", "tags": ["UX"]})
        assert store.load(run_id, "classify") == {"sentiment": "positive", "tags": ["UX"]}

    def test_unknown_step_is_missing(self):
        assert SQLCheckpointStore().load(str(uuid.uuid4()), "classify") is _MISSING

    def test_failed_then_success_overwrites_row(self):
        store = SQLCheckpointStore()
        run_id = str(uuid.uuid4())
        store.save(run_id, "wf", "finalize", STEP_FAILED, 3, None, "db down")
        assert store.load(run_id, "finalize") is _MISSING

        store.save(run_id, "wf", "finalize", STEP_SUCCESS, 1, {"status": "COMPLETED"})
        assert store.load(run_id, "finalize") == {"status": "COMPLETED"}

    def test_null_output_is_recorded(self):
        store = SQLCheckpointStore()
        run_id = str(uuid.uuid4())
        store.save(run_id, "wf", "embed", STEP_SUCCESS, 1, None)
        assert store.load(run_id, "embed") is None
