"""
Export Orchestrator - Submit, poll and fetch paginated report exports.

============================================================
STATE MACHINE
============================================================

    SUBMITTED -> POLLING -> SUCCEEDED | FAILED | TIMED_OUT | CANCELLED

- Timeout and cancellation are checked at the top of every
  iteration, before the next status call is made
- Between polls the orchestrator waits for the platform's
  Retry-After hint, or the configured default interval
- A Retry-After hint below the minimum interval is raised to it
- Waits are cut short by the cancellation event and never run
  past the timeout budget
- The file is fetched only after a confirmed Succeeded status
- percentComplete is logged, never used for control flow

============================================================
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from powerbi_connector.base import ReportingClient
from powerbi_connector.exceptions import InvalidArgumentError
from powerbi_connector.models import (
    ExportJob,
    ExportOutcome,
    ExportRequest,
    ExportResult,
    ExportState,
)


logger = logging.getLogger(__name__)


DEFAULT_POLL_INTERVAL_SECONDS = 5.0
MIN_POLL_INTERVAL_SECONDS = 1.0

Clock = Callable[[], float]
Sleeper = Callable[[float, Optional[asyncio.Event]], Awaitable[bool]]


class ExportPhase(Enum):
    """Phases of one export workflow."""
    SUBMITTED = "submitted"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


_STATE_ORDER = {
    ExportState.UNDEFINED: 0,
    ExportState.NOT_STARTED: 0,
    ExportState.RUNNING: 1,
    ExportState.SUCCEEDED: 2,
    ExportState.FAILED: 2,
}


async def interruptible_sleep(seconds: float, cancel_event: Optional[asyncio.Event] = None) -> bool:
    """
    Suspend for up to `seconds`.

    Returns True if the cancel event fired during the wait.
    """
    if seconds <= 0:
        return bool(cancel_event and cancel_event.is_set())
    if cancel_event is None:
        await asyncio.sleep(seconds)
        return False
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
        return True
    except asyncio.TimeoutError:
        return False


class ExportOrchestrator:
    """
    Runs one export workflow per call to run().

    Holds no per-export state, so a single orchestrator can drive any
    number of concurrent exports.
    """

    def __init__(
        self,
        client: ReportingClient,
        default_poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        min_poll_interval_seconds: float = MIN_POLL_INTERVAL_SECONDS,
        clock: Clock = time.monotonic,
        sleep: Sleeper = interruptible_sleep,
    ) -> None:
        if default_poll_interval_seconds <= 0:
            raise InvalidArgumentError(message="default_poll_interval_seconds must be positive")
        if min_poll_interval_seconds < 0:
            raise InvalidArgumentError(message="min_poll_interval_seconds must not be negative")
        self._client = client
        self._default_poll_interval = default_poll_interval_seconds
        self._min_poll_interval = min_poll_interval_seconds
        self._clock = clock
        self._sleep = sleep

    @property
    def name(self) -> str:
        return "export"

    async def run(
        self,
        request: ExportRequest,
        timeout_minutes: Union[int, float],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExportResult:
        """
        Export a paginated report.

        Args:
            request: What to export
            timeout_minutes: Overall budget measured from submission
            cancel_event: Set by the caller to stop the workflow

        Returns:
            ExportResult; TIMED_OUT and CANCELLED carry no file

        Raises:
            InvalidArgumentError: Non-positive timeout
            PowerBIError: Any error from the reporting client
        """
        if timeout_minutes is None or timeout_minutes <= 0:
            raise InvalidArgumentError(
                message=f"timeout_minutes must be positive, got {timeout_minutes}",
                operation="export",
            )
        budget_seconds = float(timeout_minutes) * 60.0
        coordinate = request.coordinate

        started = self._clock()
        export_id = await self._client.submit_export(request)
        logger.info(
            f"[{self.name}] Export {export_id} submitted for {coordinate} "
            f"({request.file_format.value}, budget={timeout_minutes}min)"
        )

        job: Optional[ExportJob] = None
        poll_count = 0

        while True:
            elapsed = self._clock() - started
            if elapsed >= budget_seconds:
                logger.warning(
                    f"[{self.name}] Export {export_id} timed out after {elapsed:.1f}s "
                    f"({poll_count} polls, last status={job.status.value if job else 'n/a'})"
                )
                return self._result(ExportOutcome.TIMED_OUT, export_id, job, elapsed, poll_count)

            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"[{self.name}] Export {export_id} cancelled after {elapsed:.1f}s")
                return self._result(ExportOutcome.CANCELLED, export_id, job, elapsed, poll_count)

            previous = job
            job = await self._client.poll_export_status(coordinate, export_id)
            poll_count += 1
            self._check_transition(export_id, previous, job)

            logger.debug(
                f"[{self.name}] Export {export_id} poll #{poll_count}: "
                f"{job.status.value} ({job.percent_complete}%)"
            )

            if job.status == ExportState.SUCCEEDED:
                phase = ExportPhase.SUCCEEDED
                break

            if job.status == ExportState.FAILED:
                phase = ExportPhase.FAILED
                break

            if job.status == ExportState.UNDEFINED:
                logger.warning(f"[{self.name}] Export {export_id} reported an undefined status, still polling")

            wait_seconds = self._wait_seconds(job)
            remaining = budget_seconds - (self._clock() - started)
            wait_seconds = max(0.0, min(wait_seconds, remaining))
            await self._sleep(wait_seconds, cancel_event)

        elapsed = self._clock() - started

        if phase == ExportPhase.FAILED:
            logger.warning(f"[{self.name}] Export {export_id} failed on the platform after {elapsed:.1f}s")
            return self._result(ExportOutcome.FAILED, export_id, job, elapsed, poll_count)

        exported_file = await self._client.fetch_exported_file(coordinate, job)
        elapsed = self._clock() - started
        logger.info(
            f"[{self.name}] Export {export_id} succeeded in {elapsed:.1f}s "
            f"after {poll_count} polls ({exported_file.filename})"
        )
        return self._result(ExportOutcome.SUCCEEDED, export_id, job, elapsed, poll_count, exported_file)

    def _wait_seconds(self, job: ExportJob) -> float:
        """Retry-After hint if the platform sent one, else the default. Never below the minimum."""
        if job.retry_after_seconds is not None and job.retry_after_seconds >= 0:
            return max(float(job.retry_after_seconds), self._min_poll_interval)
        logger.debug(
            f"[{self.name}] No Retry-After for {job.export_id}, "
            f"using default {self._default_poll_interval}s"
        )
        return self._default_poll_interval

    def _check_transition(
        self,
        export_id: str,
        previous: Optional[ExportJob],
        current: ExportJob,
    ) -> None:
        if current.export_id != export_id:
            logger.warning(
                f"[{self.name}] Status response for {current.export_id} "
                f"does not match export {export_id}"
            )
        if previous is not None and _STATE_ORDER[current.status] < _STATE_ORDER[previous.status]:
            logger.warning(
                f"[{self.name}] Export {export_id} status regressed "
                f"{previous.status.value} -> {current.status.value}"
            )

    @staticmethod
    def _result(
        outcome: ExportOutcome,
        export_id: str,
        job: Optional[ExportJob],
        elapsed: float,
        poll_count: int,
        exported_file=None,
    ) -> ExportResult:
        return ExportResult(
            outcome=outcome,
            export_id=export_id,
            job=job,
            file=exported_file,
            elapsed_seconds=elapsed,
            poll_count=poll_count,
        )
