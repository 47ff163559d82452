"""Job system type definitions."""

from enum import Enum


class ReportType(str, Enum):
    """Kinds of report the pipeline can produce."""

    COMPETITOR_LANDSCAPE = "competitor_landscape"
    MARKET_LANDSCAPE = "market_landscape"
    MEDIA_MONITORING = "media_monitoring"


class InvalidTransitionError(Exception):
    """Raised when a status change is not allowed by the lifecycle."""

    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Illegal {entity} transition: {current} -> {target}")


class JobStatus(str, Enum):
    """Job lifecycle statuses."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    DELAYED = "delayed"

    @property
    def is_terminal(self) -> bool:
        """Completed is always terminal; failed is terminal once no retry follows."""
        return self is JobStatus.COMPLETED

    @property
    def is_pending(self) -> bool:
        """Jobs that have not started an attempt yet and can still be removed."""
        return self in (JobStatus.WAITING, JobStatus.DELAYED)


_JOB_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.WAITING: frozenset({JobStatus.ACTIVE}),
    JobStatus.ACTIVE: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    # Retry path: failed attempts are re-queued, with or without a delay
    JobStatus.FAILED: frozenset({JobStatus.DELAYED, JobStatus.WAITING}),
    JobStatus.DELAYED: frozenset({JobStatus.WAITING}),
    JobStatus.COMPLETED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Check whether a job may move from current to target."""
    return target in _JOB_TRANSITIONS[current]


def ensure_transition(current: JobStatus, target: JobStatus) -> None:
    """Raise InvalidTransitionError unless current -> target is legal."""
    if not can_transition(current, target):
        raise InvalidTransitionError("job", current.value, target.value)


def sources_for(target: JobStatus) -> list[str]:
    """Statuses a job may be in immediately before entering target.

    Used to guard SQL status updates: ``WHERE status = ANY($n)``.
    """
    return sorted(
        src.value for src, targets in _JOB_TRANSITIONS.items() if target in targets
    )


class ReportStatus(str, Enum):
    """Generated report statuses."""

    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ReportStatus.GENERATING


def ensure_report_transition(current: ReportStatus, target: ReportStatus) -> None:
    """Reports leave ``generating`` exactly once."""
    if current is not ReportStatus.GENERATING or target is ReportStatus.GENERATING:
        raise InvalidTransitionError("report", current.value, target.value)
