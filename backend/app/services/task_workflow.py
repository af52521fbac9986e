"""
Task lifecycle.

A task's workflow position is not a single column; it follows from the
status/approval flags that the different update paths write. ``derive_stage``
folds those flags into one ``TaskStage`` and ``ensure_transition`` checks the
move against ``LEGAL_TRANSITIONS`` before any update path writes.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, Mapping, Optional
import enum

from app.utils.errors import ValidationError


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    APPROVED = "approved"
    COMPLETED = "completed"
    ON_HOLD = "on-hold"
    UNPOSTED = "unposted"


class FinalStatus(str, enum.Enum):
    DONE = "done"
    NOT_DONE = "not-done"
    ON_HOLD = "on-hold"
    REJECTED = "rejected"
    IN_PROGRESS = "in-progress"


class DeveloperStatus(str, enum.Enum):
    PENDING = "pending"
    DONE = "done"
    NOT_DONE = "not-done"
    ON_HOLD = "on-hold"


class TaskStage(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    UNPOSTED = "unposted"


LEGAL_TRANSITIONS: Dict[TaskStage, frozenset] = {
    TaskStage.PENDING: frozenset({TaskStage.PENDING, TaskStage.ASSIGNED, TaskStage.ON_HOLD}),
    TaskStage.ASSIGNED: frozenset({
        TaskStage.ASSIGNED, TaskStage.PENDING, TaskStage.ON_HOLD, TaskStage.COMPLETED, TaskStage.REJECTED,
    }),
    TaskStage.ON_HOLD: frozenset({
        TaskStage.ON_HOLD, TaskStage.PENDING, TaskStage.ASSIGNED, TaskStage.COMPLETED, TaskStage.REJECTED,
    }),
    TaskStage.COMPLETED: frozenset({TaskStage.COMPLETED}),
    # A rejected task goes back through the developer fix cycle or is reassigned
    TaskStage.REJECTED: frozenset({TaskStage.REJECTED, TaskStage.IN_PROGRESS, TaskStage.ASSIGNED}),
    TaskStage.IN_PROGRESS: frozenset({
        TaskStage.IN_PROGRESS, TaskStage.COMPLETED, TaskStage.REJECTED, TaskStage.ON_HOLD,
    }),
    TaskStage.UNPOSTED: frozenset(TaskStage),
}

WORKFLOW_FIELDS = ("status", "final_status", "assigned", "completion_approved", "unposted")


def derive_stage(fields: Mapping[str, Any]) -> TaskStage:
    """Fold the workflow flags of a task (model attribute names) into a stage."""
    final_status = fields.get("final_status")
    if fields.get("unposted"):
        return TaskStage.UNPOSTED
    if final_status == FinalStatus.REJECTED.value:
        return TaskStage.REJECTED
    if final_status == FinalStatus.IN_PROGRESS.value:
        return TaskStage.IN_PROGRESS
    if final_status == FinalStatus.DONE.value:
        return TaskStage.COMPLETED
    if final_status == FinalStatus.ON_HOLD.value or fields.get("status") == TaskStatus.ON_HOLD.value:
        # Holding work that was never assigned leaves it pending
        return TaskStage.ON_HOLD if fields.get("assigned") else TaskStage.PENDING
    if fields.get("assigned"):
        return TaskStage.ASSIGNED
    return TaskStage.PENDING


def stage_of(task) -> TaskStage:
    return derive_stage({name: getattr(task, name, None) for name in WORKFLOW_FIELDS})


def is_legal_transition(current: TaskStage, target: TaskStage) -> bool:
    return target in LEGAL_TRANSITIONS[current]


def ensure_transition(task, update_data: Mapping[str, Any]) -> TaskStage:
    """
    Validate the stage change an update would cause.

    Raises:
        ValidationError: when the resulting stage is not reachable from the current one
    """
    current = stage_of(task)
    merged = {name: getattr(task, name, None) for name in WORKFLOW_FIELDS}
    merged.update({key: value for key, value in update_data.items() if key in WORKFLOW_FIELDS})
    target = derive_stage(merged)
    # Unposting and reposting are administrative edits allowed from any stage
    if TaskStage.UNPOSTED in (current, target):
        return target
    if not is_legal_transition(current, target):
        raise ValidationError(f"Invalid status transition: {current.value} -> {target.value}")
    return target


def _check_value(value: Optional[str], allowed: Iterable[enum.Enum], field_name: str) -> Optional[str]:
    if value is None or value == "":
        return value
    values = [member.value for member in allowed]
    if value not in values:
        raise ValidationError(f"Invalid {field_name}: must be one of {', '.join(values)}")
    return value


def validate_status(value: Optional[str]) -> Optional[str]:
    return _check_value(value, TaskStatus, "status")


def validate_final_status(value: Optional[str]) -> Optional[str]:
    return _check_value(value, FinalStatus, "finalStatus")


def validate_developer_status(value: Optional[str]) -> Optional[str]:
    return _check_value(value, DeveloperStatus, "developer_status")


def compute_time_taken(
    final_status: Optional[str],
    assigned_date: Optional[datetime],
    completed_at: Optional[datetime],
) -> Optional[int]:
    """Milliseconds from assignment to completion approval, only for finished tasks."""
    if final_status != FinalStatus.DONE.value or assigned_date is None or completed_at is None:
        return None
    return int((completed_at - assigned_date).total_seconds() * 1000)
