# task_lifecycle.py - Progress and status derivation for tasks
# The checklist is the source of truth for progress; progress decides status.
# Callers write checklist, progress and status in the same flush.

from typing import Any, Dict, Iterable, List, Mapping

from models import Task, TaskStatus


def _is_completed(item: Any) -> bool:
    if isinstance(item, Mapping):
        return bool(item.get("completed"))
    return bool(getattr(item, "completed", False))


def normalize_checklist(checklist: Iterable[Any]) -> List[Dict[str, Any]]:
    """Coerce checklist items (dicts or pydantic models) to plain JSON dicts"""
    items = []
    for item in checklist or []:
        if isinstance(item, Mapping):
            text = item.get("text", "")
        else:
            text = getattr(item, "text", "")
        items.append({"text": text or "", "completed": _is_completed(item)})
    return items


def completed_count(checklist: Iterable[Any]) -> int:
    return sum(1 for item in checklist or [] if _is_completed(item))


def compute_progress(checklist: Iterable[Any]) -> int:
    """Percentage of completed items, rounded half up. 0 for an empty list."""
    items = list(checklist or [])
    total = len(items)
    if total == 0:
        return 0
    done = completed_count(items)
    # Integer half-up rounding; round() would use banker's rounding
    return (200 * done + total) // (2 * total)


def derive_status(progress: int) -> TaskStatus:
    if progress >= 100:
        return TaskStatus.COMPLETED
    if progress > 0:
        return TaskStatus.IN_PROGRESS
    return TaskStatus.PENDING


def apply_checklist(task: Task, checklist: Iterable[Any]) -> Task:
    """Replace the checklist and recompute progress and status from it.

    Overwrites whatever status was set directly before.
    """
    items = normalize_checklist(checklist)
    # Assign a new list so the JSON column is marked dirty
    task.todo_checklist = items
    task.progress = compute_progress(items)
    task.status = derive_status(task.progress)
    return task


def apply_status(task: Task, new_status: TaskStatus) -> Task:
    """Set status directly. Completed forces every item done and progress 100."""
    task.status = TaskStatus(new_status)
    if task.status == TaskStatus.COMPLETED:
        task.todo_checklist = [
            {"text": item.get("text", ""), "completed": True}
            for item in normalize_checklist(task.todo_checklist)
        ]
        task.progress = 100
    return task
