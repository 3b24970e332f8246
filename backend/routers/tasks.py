# routers/tasks.py - Task CRUD, status, checklist and comments
# Every task-scoped operation is limited to members of the task's organization.
import logging
from datetime import datetime
from typing import Optional, List, Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from auth import get_current_user, CurrentUser, UserSummary, user_to_summary
from database import get_db_session
from errors import ValidationFailed, NotFound, Forbidden
from models import Task, TaskComment, TaskPriority, TaskStatus, Board, User
from policy import ensure_task_access, is_org_member
from task_lifecycle import apply_checklist, apply_status, completed_count

logger = logging.getLogger("taskboard.tasks")

router = APIRouter(prefix="/api/tasks", tags=["Tasks"])

ASSIGNEES_NOT_A_LIST = "assignedTo must be an array of user IDs"


# --- Schemas ---

class ChecklistItem(BaseModel):
    text: str = ""
    completed: bool = False


class CommentOut(BaseModel):
    id: str
    text: str
    user: Optional[UserSummary] = None
    timestamp: Optional[str] = None


class TaskOut(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    priority: str
    status: str
    start_date: Optional[str] = None
    due_date: Optional[str] = None
    assigned_to: List[UserSummary] = []
    created_by: Optional[UserSummary] = None
    attachments: List[str] = []
    todo_checklist: List[ChecklistItem] = []
    progress: int = 0
    org_id: str
    board_id: Optional[str] = None
    category: Optional[str] = None
    order: int = 0
    comments: List[CommentOut] = []
    completed_todo_count: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    # Validated by hand so the client gets the historical message
    assigned_to: Any = None
    attachments: List[str] = []
    todo_checklist: List[ChecklistItem] = []
    category: Optional[str] = None
    board_id: Optional[str] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    assigned_to: Any = None
    attachments: Optional[List[str]] = None
    todo_checklist: Optional[List[ChecklistItem]] = None
    category: Optional[str] = None
    board_id: Optional[str] = None


class StatusUpdate(BaseModel):
    status: Optional[TaskStatus] = None


class ChecklistUpdate(BaseModel):
    todo_checklist: List[ChecklistItem]


class CommentCreate(BaseModel):
    text: Optional[str] = None


# --- Helpers ---

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def comment_to_out(c: TaskComment) -> CommentOut:
    return CommentOut(id=c.id, text=c.text, user=user_to_summary(c.author), timestamp=_iso(c.timestamp))


def task_to_out(t: Task, with_completed_count: bool = False) -> TaskOut:
    checklist = t.todo_checklist or []
    return TaskOut(
        id=t.id,
        title=t.title,
        description=t.description,
        priority=TaskPriority(t.priority).value,
        status=TaskStatus(t.status).value,
        start_date=_iso(t.start_date),
        due_date=_iso(t.due_date),
        assigned_to=[user_to_summary(u) for u in t.assignees],
        created_by=user_to_summary(t.creator),
        attachments=list(t.attachments or []),
        todo_checklist=[ChecklistItem(**item) for item in checklist],
        progress=t.progress or 0,
        org_id=t.org_id,
        board_id=t.board_id,
        category=t.category,
        order=t.order or 0,
        comments=[comment_to_out(c) for c in t.comments],
        completed_todo_count=completed_count(checklist) if with_completed_count else None,
        created_at=_iso(t.created_at),
        updated_at=_iso(t.updated_at),
    )


def task_load_options():
    return (
        selectinload(Task.assignees),
        selectinload(Task.creator),
        selectinload(Task.comments).selectinload(TaskComment.author),
    )


def parse_status_filter(status: Optional[str]) -> Optional[TaskStatus]:
    """"All" or absent means no filter"""
    if not status or status == "All":
        return None
    try:
        return TaskStatus(status)
    except ValueError:
        raise ValidationFailed(f"Invalid status: {status}")


async def _load_task(db: AsyncSession, task_id: str) -> Task:
    stmt = (
        select(Task)
        .where(Task.id == task_id)
        .options(*task_load_options())
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    task = result.scalar_one_or_none()
    if not task:
        raise NotFound("Task not found")
    return task


async def _resolve_assignees(db: AsyncSession, user: CurrentUser, assigned_to: Any) -> List[User]:
    if not isinstance(assigned_to, list) or not all(isinstance(i, str) for i in assigned_to):
        raise ValidationFailed(ASSIGNEES_NOT_A_LIST)
    ids = list(dict.fromkeys(assigned_to))
    if not ids:
        return []
    stmt = select(User).where(User.id.in_(ids), User.org_id == user.org_id)
    result = await db.execute(stmt)
    found = {u.id: u for u in result.scalars().all()}
    missing = [i for i in ids if i not in found]
    if missing:
        raise ValidationFailed(f"Unknown assignee(s): {', '.join(missing)}")
    return [found[i] for i in ids]


async def _ensure_board_in_org(db: AsyncSession, user: CurrentUser, board_id: str) -> Board:
    result = await db.execute(select(Board).where(Board.id == board_id))
    board = result.scalar_one_or_none()
    if not board:
        raise NotFound("Board not found")
    if not is_org_member(user, board.org_id):
        raise Forbidden("Not authorized to use this board")
    return board


# --- Endpoints ---

@router.get("/board/{board_id}")
async def get_tasks_by_board(
    board_id: str,
    status: Optional[str] = Query(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Tasks of a board within the caller's organization, ordered for display"""
    status_filter = parse_status_filter(status)
    stmt = (
        select(Task)
        .where(Task.board_id == board_id, Task.org_id == user.org_id)
        .options(*task_load_options())
        .order_by(Task.order)
    )
    if status_filter:
        stmt = stmt.where(Task.status == status_filter)
    result = await db.execute(stmt)
    return {"tasks": [task_to_out(t, with_completed_count=True) for t in result.scalars().all()]}


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    task = await _load_task(db, task_id)
    ensure_task_access(user, task)
    return task_to_out(task)


@router.post("", status_code=201)
async def create_task(
    body: TaskCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a task in the caller's organization, appended to its board"""
    if not user.org_id:
        raise Forbidden("Join an organization before creating tasks")
    assignees = await _resolve_assignees(db, user, body.assigned_to)
    if body.board_id:
        await _ensure_board_in_org(db, user, body.board_id)

    # Boardless tasks are ordered after every task in the organization
    count_stmt = select(func.count(Task.id)).where(Task.org_id == user.org_id)
    if body.board_id:
        count_stmt = count_stmt.where(Task.board_id == body.board_id)
    existing = (await db.execute(count_stmt)).scalar() or 0

    task = Task(
        title=body.title,
        description=body.description,
        priority=body.priority,
        start_date=body.start_date,
        due_date=body.due_date,
        created_by=user.id,
        attachments=list(body.attachments),
        org_id=user.org_id,
        board_id=body.board_id,
        category=body.category,
        order=existing + 1,
        assignees=assignees,
        comments=[],
    )
    apply_checklist(task, body.todo_checklist)
    db.add(task)
    await db.commit()
    logger.info("User %s created task %s on board %s", user.id, task.id, task.board_id)

    return {"message": "Task created successfully", "task": task_to_out(await _load_task(db, task.id))}


@router.put("/{task_id}")
async def update_task(
    task_id: str,
    body: TaskUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Overwrite scalar fields supplied with a non-empty value; list fields whenever present"""
    task = await _load_task(db, task_id)
    ensure_task_access(user, task)

    if body.assigned_to is not None:
        task.assignees = await _resolve_assignees(db, user, body.assigned_to)
    if body.board_id and body.board_id != task.board_id:
        await _ensure_board_in_org(db, user, body.board_id)
        task.board_id = body.board_id

    task.title = body.title or task.title
    task.category = body.category or task.category
    task.description = body.description or task.description
    task.priority = body.priority or task.priority
    task.start_date = body.start_date or task.start_date
    task.due_date = body.due_date or task.due_date
    if body.attachments is not None:
        task.attachments = list(body.attachments)
    if body.todo_checklist is not None:
        apply_checklist(task, body.todo_checklist)

    await db.commit()
    return {"message": "Task updated successfully", "task": task_to_out(await _load_task(db, task_id))}


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    task = await _load_task(db, task_id)
    ensure_task_access(user, task)

    await db.delete(task)
    await db.commit()
    logger.info("User %s deleted task %s", user.id, task_id)
    return {"message": "Task deleted successfully"}


@router.patch("/{task_id}/status")
async def update_task_status(
    task_id: str,
    body: StatusUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Set status directly. Completed also completes every checklist item."""
    task = await _load_task(db, task_id)
    ensure_task_access(user, task, "Not authorized to update status")

    apply_status(task, body.status or task.status)
    await db.commit()
    return {"message": "Task status updated", "task": task_to_out(await _load_task(db, task_id))}


@router.put("/{task_id}/todo")
async def update_task_checklist(
    task_id: str,
    body: ChecklistUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Replace the checklist; progress and status follow from it"""
    task = await _load_task(db, task_id)
    ensure_task_access(user, task, "Not authorized to update checklist")

    apply_checklist(task, body.todo_checklist)
    await db.commit()
    return {"message": "Task checklist updated", "task": task_to_out(await _load_task(db, task_id))}


@router.post("/{task_id}/comments", status_code=201)
async def add_comment(
    task_id: str,
    body: CommentCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    if not body.text:
        raise ValidationFailed("Comment text is required")

    task = await _load_task(db, task_id)
    ensure_task_access(user, task, "You are not allowed to comment here")

    db.add(TaskComment(task_id=task.id, author_id=user.id, text=body.text))
    await db.commit()

    task = await _load_task(db, task_id)
    return {
        "message": "Comment added successfully",
        "comments": [comment_to_out(c) for c in task.comments],
    }


@router.get("/{task_id}/comments")
async def get_comments(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    task = await _load_task(db, task_id)
    ensure_task_access(user, task, "Not authorized to view comments")
    return {"comments": [comment_to_out(c) for c in task.comments]}
