"""Job execution with per-job failure boundaries."""

import time
from collections import deque
from datetime import datetime, timezone
from typing import Deque, Dict, List, Optional, Set

import structlog

from shared.framework.metrics import MetricsCollector
from shared.utils.errors import DataProcessingError
from shared.utils.logging import add_job_name, job_context

from ..errors import AuthorizationError, PartialRefreshError, TransientDataAccessError
from ..models import JobResult, JobSeverity, JobStatus, ScheduledJobSpec

logger = structlog.get_logger(__name__)

TRANSIENT = "transient"
ACCESS = "access"
UNEXPECTED = "unexpected"


def classify_error(exc: BaseException) -> str:
    """Map an exception to one of ``transient``, ``access`` or ``unexpected``."""
    if isinstance(exc, PartialRefreshError):
        return classify_error(exc.first_failure)
    if isinstance(exc, TransientDataAccessError):
        return TRANSIENT
    if isinstance(exc, AuthorizationError):
        return ACCESS
    return UNEXPECTED


class JobRunner:
    """Runs catalog jobs and keeps their outcomes.

    A job already in progress is not started a second time; the
    overlapping call returns a ``skipped`` result straight away.
    """

    def __init__(self, metrics: Optional[MetricsCollector] = None, history_size: int = 100):
        self.metrics = metrics
        self._running: Set[str] = set()
        self._last: Dict[str, JobResult] = {}
        self._history: Deque[JobResult] = deque(maxlen=history_size)

    def is_running(self, job_name: str) -> bool:
        return job_name in self._running

    async def execute(self, spec: ScheduledJobSpec) -> JobResult:
        log = add_job_name(logger, spec.name)
        started_at = datetime.now(timezone.utc)

        if spec.name in self._running:
            log.warning("Job already running, skipping")
            return self._record(JobResult(spec.name, JobStatus.SKIPPED, started_at, started_at))

        self._running.add(spec.name)
        clock = time.monotonic()
        log.info("Job started")
        try:
            with job_context(spec.name):
                await spec.operation()
        except Exception as exc:
            kind = classify_error(exc)
            self._log_failure(log, spec.severity, kind, exc)
            if self.metrics:
                self.metrics.record_error(kind, spec.name)
            result = JobResult(
                spec.name, JobStatus.ERROR, started_at, datetime.now(timezone.utc),
                error_kind=kind, error_message=str(exc),
            )
        else:
            result = JobResult(spec.name, JobStatus.OK, started_at, datetime.now(timezone.utc))
            log.info("Job completed", duration=round(time.monotonic() - clock, 3))
        finally:
            self._running.discard(spec.name)

        return self._record(result)

    @staticmethod
    def _log_failure(log, severity: JobSeverity, kind: str, exc: Exception) -> None:
        fields = {"error_kind": kind, "error": str(exc)}
        if isinstance(exc, DataProcessingError):
            fields["error_code"] = exc.error_code
            if exc.context is not None:
                fields["error_context"] = exc.context.to_dict()
        if severity is JobSeverity.INFORMATIONAL:
            log.warning("Job failed", **fields)
        else:
            log.error("Job failed", exc_info=exc, **fields)

    def _record(self, result: JobResult) -> JobResult:
        self._last[result.job_name] = result
        self._history.append(result)
        if self.metrics:
            self.metrics.record_job_run(
                result.job_name,
                result.status.value,
                result.duration_seconds,
                finished_at=result.finished_at.timestamp(),
            )
        return result

    def last_result(self, job_name: str) -> Optional[JobResult]:
        return self._last.get(job_name)

    def history(self, job_name: Optional[str] = None) -> List[JobResult]:
        """Recent results, oldest first."""
        if job_name is None:
            return list(self._history)
        return [r for r in self._history if r.job_name == job_name]
