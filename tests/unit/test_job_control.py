"""Unit tests for the Job Control Register."""

from __future__ import annotations

import asyncio

import pytest
from pydantic import BaseModel

from src.models.job import JobKind, JobStatus, Liveness
from src.pipeline.job_control import JobControlRegister
from src.providers.job.memory_job_store import MemoryJobStore
from src.utils.errors import (
    JobConflictError,
    JobControlError,
    JobFinalizedError,
    JobNotFoundError,
    JobStoppedError,
    StepCancelledError,
)


@pytest.fixture()
def register(job_store: MemoryJobStore, fake_clock) -> JobControlRegister:
    return JobControlRegister(job_store, clock=fake_clock)


# ======================================================================
# Start / conflict
# ======================================================================


class TestStartJob:
    @pytest.mark.asyncio
    async def test_creates_running_job(self, register) -> None:
        job = await register.start_job(JobKind.GROW, "shaving", {"target_valid": 100})

        assert job.status == JobStatus.RUNNING
        assert job.stage == "starting"
        assert job.id.startswith("GROW_shaving_")
        assert job.metadata == {"target_valid": 100}
        assert await register.get_job(job.id) == job

    @pytest.mark.asyncio
    async def test_second_job_for_category_conflicts(self, register) -> None:
        first = await register.start_job(JobKind.GROW, "shaving")
        with pytest.raises(JobConflictError) as excinfo:
            await register.start_job(JobKind.CERTIFY, "shaving")
        assert excinfo.value.active_job_id == first.id

    @pytest.mark.asyncio
    async def test_other_category_is_independent(self, register) -> None:
        await register.start_job(JobKind.GROW, "shaving")
        job = await register.start_job(JobKind.GROW, "beard")
        assert job.category_id == "beard"

    @pytest.mark.asyncio
    async def test_new_job_allowed_after_finish(self, register, fake_clock) -> None:
        first = await register.start_job(JobKind.GROW, "shaving")
        await register.finish_job(first.id, JobStatus.COMPLETED)
        fake_clock.advance(1)

        second = await register.start_job(JobKind.GROW, "shaving")
        assert second.id != first.id
        assert (await register.get_latest_job_for_category("shaving")).id == second.id

    @pytest.mark.asyncio
    async def test_zombie_does_not_block_new_job(self, register, fake_clock) -> None:
        zombie = await register.start_job(JobKind.GROW, "shaving")
        fake_clock.advance(181)

        fresh = await register.start_job(JobKind.GROW, "shaving")

        reaped = await register.get_job(zombie.id)
        assert reaped.status == JobStatus.FAILED
        assert fresh.status == JobStatus.RUNNING

    def test_reap_threshold_must_cover_stale(self, job_store) -> None:
        with pytest.raises(JobControlError):
            JobControlRegister(job_store, stale_after_seconds=60, reap_after_seconds=30)


# ======================================================================
# Progress / finalize
# ======================================================================


class TestProgressAndFinish:
    @pytest.mark.asyncio
    async def test_update_progress(self, register) -> None:
        job = await register.start_job(JobKind.GROW, "shaving")
        updated = await register.update_progress(job.id, 3, 10, stage="grow_pass", message="pass 1")

        assert updated.progress.processed == 3
        assert updated.progress.total == 10
        assert updated.stage == "grow_pass"
        assert updated.message == "pass 1"

    @pytest.mark.asyncio
    async def test_update_after_finish_raises(self, register) -> None:
        job = await register.start_job(JobKind.GROW, "shaving")
        await register.finish_job(job.id, JobStatus.COMPLETED)

        with pytest.raises(JobFinalizedError):
            await register.update_progress(job.id, 1, 1)

    @pytest.mark.asyncio
    async def test_first_finish_wins(self, register) -> None:
        job = await register.start_job(JobKind.GROW, "shaving")
        await register.finish_job(job.id, JobStatus.COMPLETED, "done", {"valid": 5})
        again = await register.finish_job(job.id, JobStatus.FAILED, "late failure")

        assert again.status == JobStatus.COMPLETED
        assert again.message == "done"
        assert again.metadata["result"] == {"valid": 5}
        assert again.finished_at is not None

    @pytest.mark.asyncio
    async def test_finish_requires_terminal_status(self, register) -> None:
        job = await register.start_job(JobKind.GROW, "shaving")
        with pytest.raises(JobControlError):
            await register.finish_job(job.id, JobStatus.RUNNING)

    @pytest.mark.asyncio
    async def test_unknown_job(self, register) -> None:
        assert await register.get_job("missing") is None
        with pytest.raises(JobNotFoundError):
            await register.request_stop("missing")

    @pytest.mark.asyncio
    async def test_keep_alive_refreshes_heartbeat(self, register, fake_clock) -> None:
        job = await register.start_job(JobKind.GROW, "shaving")
        fake_clock.advance(50)
        alive = await register.keep_alive(job.id)
        fake_clock.advance(50)

        assert register.classify(alive) is Liveness.ALIVE


# ======================================================================
# Stop
# ======================================================================


class TestStop:
    @pytest.mark.asyncio
    async def test_request_stop_sets_flag_and_token(self, register) -> None:
        job = await register.start_job(JobKind.GROW, "shaving")
        stopped = await register.request_stop(job.id)

        assert stopped.status == JobStatus.STOP_REQUESTED
        assert stopped.stop_requested is True
        assert register.cancel_event_for(job.id).is_set()
        with pytest.raises(JobStoppedError):
            await register.assert_not_stopped(job.id)

    @pytest.mark.asyncio
    async def test_stop_on_terminal_job_is_noop(self, register) -> None:
        job = await register.start_job(JobKind.GROW, "shaving")
        await register.finish_job(job.id, JobStatus.COMPLETED)
        after = await register.request_stop(job.id)

        assert after.status == JobStatus.COMPLETED
        assert after.stop_requested is False

    @pytest.mark.asyncio
    async def test_stop_from_another_process_is_observed(self, job_store, fake_clock) -> None:
        worker = JobControlRegister(job_store, clock=fake_clock)
        operator = JobControlRegister(job_store, clock=fake_clock)
        job = await worker.start_job(JobKind.GROW, "shaving")

        await operator.request_stop(job.id)

        assert not worker.cancel_event_for(job.id).is_set()
        with pytest.raises(JobStoppedError):
            await worker.assert_not_stopped(job.id)
        assert worker.cancel_event_for(job.id).is_set()

    @pytest.mark.asyncio
    async def test_running_job_passes_checkpoint(self, register) -> None:
        job = await register.start_job(JobKind.GROW, "shaving")
        await register.assert_not_stopped(job.id)


# ======================================================================
# Liveness / zombie reaping
# ======================================================================


class TestLiveness:
    @pytest.mark.asyncio
    async def test_classification_by_heartbeat_age(self, register, fake_clock) -> None:
        job = await register.start_job(JobKind.GROW, "shaving")
        assert register.classify(job) is Liveness.ALIVE

        fake_clock.advance(61)
        assert register.classify(job) is Liveness.STALE

        fake_clock.advance(120)
        assert register.classify(job) is Liveness.ZOMBIE

    @pytest.mark.asyncio
    async def test_stale_job_is_not_reaped(self, register, fake_clock) -> None:
        job = await register.start_job(JobKind.GROW, "shaving")
        fake_clock.advance(61)

        current = await register.get_job(job.id)
        assert current.status == JobStatus.RUNNING

    @pytest.mark.asyncio
    async def test_zombie_reaped_to_failed(self, register, fake_clock) -> None:
        job = await register.start_job(JobKind.GROW, "shaving")
        fake_clock.advance(181)

        reaped = await register.get_job(job.id)

        assert reaped.status == JobStatus.FAILED
        assert reaped.message == "zombie reaped: no heartbeat for 181s"
        assert register.classify(reaped) is Liveness.FINISHED

    @pytest.mark.asyncio
    async def test_zombie_with_stop_request_reaped_to_stopped(self, register, fake_clock) -> None:
        job = await register.start_job(JobKind.GROW, "shaving")
        await register.request_stop(job.id)
        fake_clock.advance(200)

        reaped = await register.get_job(job.id)
        assert reaped.status == JobStatus.STOPPED

    @pytest.mark.asyncio
    async def test_no_active_job_after_reap(self, register, fake_clock) -> None:
        await register.start_job(JobKind.GROW, "shaving")
        fake_clock.advance(181)
        assert await register.get_active_job_for_category("shaving") is None


# ======================================================================
# execute / run
# ======================================================================


class _Outcome(BaseModel):
    valid: int


class TestExecute:
    @pytest.mark.asyncio
    async def test_success_records_result(self, register) -> None:
        async def _handler(_job):
            return _Outcome(valid=12)

        job = await register.run(JobKind.GROW, "shaving", _handler)

        assert job.status == JobStatus.COMPLETED
        assert job.metadata["result"] == {"valid": 12}

    @pytest.mark.asyncio
    async def test_none_result_leaves_metadata_untouched(self, register) -> None:
        async def _handler(_job):
            return None

        job = await register.run(JobKind.GROW, "shaving", _handler, {"tier": "LITE"})
        assert job.metadata == {"tier": "LITE"}

    @pytest.mark.asyncio
    async def test_handler_error_fails_job(self, register) -> None:
        async def _handler(_job):
            raise ValueError("provider exploded")

        job = await register.run(JobKind.GROW, "shaving", _handler)

        assert job.status == JobStatus.FAILED
        assert job.message == "provider exploded"

    @pytest.mark.asyncio
    async def test_stop_checkpoint_marks_stopped(self, register) -> None:
        async def _handler(job):
            await register.request_stop(job.id)
            await register.assert_not_stopped(job.id)

        job = await register.run(JobKind.GROW, "shaving", _handler)
        assert job.status == JobStatus.STOPPED

    @pytest.mark.asyncio
    async def test_step_cancel_without_stop_is_failure(self, register) -> None:
        async def _handler(_job):
            raise StepCancelledError("primary call cancelled")

        job = await register.run(JobKind.GROW, "shaving", _handler)
        assert job.status == JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_step_cancel_after_stop_is_stopped(self, register) -> None:
        async def _handler(job):
            await register.request_stop(job.id)
            raise StepCancelledError("primary call cancelled")

        job = await register.run(JobKind.GROW, "shaving", _handler)
        assert job.status == JobStatus.STOPPED

    @pytest.mark.asyncio
    async def test_task_cancellation_is_recorded_and_reraised(self, register) -> None:
        started = await register.start_job(JobKind.GROW, "shaving")

        async def _handler(_job):
            raise asyncio.CancelledError

        with pytest.raises(asyncio.CancelledError):
            await register.execute(started, _handler)

        job = await register.get_job(started.id)
        assert job.status == JobStatus.STOPPED
        assert job.message == "cancelled"
