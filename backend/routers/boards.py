# routers/boards.py - Boards scoped to an organization department
import logging
from typing import Optional, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from auth import get_current_user, CurrentUser, UserSummary, user_to_summary
from database import get_db_session
from errors import ValidationFailed, NotFound, Forbidden, InternalFault
from models import Board, Task
from policy import ensure_org_member, is_org_member
from routers.tasks import TaskOut, task_to_out, task_load_options, parse_status_filter

logger = logging.getLogger("taskboard.boards")

router = APIRouter(prefix="/api/boards", tags=["Boards"])

# Query values some clients send for "no department"
_EMPTY_FILTER_VALUES = {"", "null", "undefined"}


# --- Schemas ---

class BoardCreate(BaseModel):
    name: Optional[str] = None
    org_id: Optional[str] = None
    department_id: Optional[str] = None
    order: int = 0


class BoardOut(BaseModel):
    id: str
    name: str
    created_by: Optional[UserSummary] = None
    org_id: str
    department_id: str
    order: int = 0
    tasks: List[TaskOut] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


def _board_to_out(b: Board) -> BoardOut:
    return BoardOut(
        id=b.id,
        name=b.name,
        created_by=user_to_summary(b.creator),
        org_id=b.org_id,
        department_id=b.department_id,
        order=b.order or 0,
        tasks=[task_to_out(t) for t in b.tasks],
        created_at=b.created_at.isoformat() if b.created_at else None,
        updated_at=b.updated_at.isoformat() if b.updated_at else None,
    )


def _board_options():
    return (
        selectinload(Board.creator),
        selectinload(Board.tasks).options(*task_load_options()),
    )


async def _load_board(db: AsyncSession, board_id: str) -> Board:
    stmt = (
        select(Board)
        .where(Board.id == board_id)
        .options(*_board_options())
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    board = result.scalar_one_or_none()
    if not board:
        raise NotFound("Board not found.")
    return board


# --- Endpoints ---

@router.post("", response_model=BoardOut, status_code=201)
async def create_board(
    body: BoardCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Create a board; any member of the organization may do this"""
    if not body.name or not body.org_id or not body.department_id:
        raise ValidationFailed("Name, orgId, and departmentId are required.")
    ensure_org_member(user, body.org_id, "Not authorized to create boards in this organization")

    board = Board(
        name=body.name,
        created_by=user.id,
        org_id=body.org_id,
        department_id=body.department_id,
        order=body.order,
    )
    db.add(board)
    await db.commit()
    logger.info("User %s created board %s in %s/%s", user.id, board.id, board.org_id, board.department_id)
    return _board_to_out(await _load_board(db, board.id))


@router.get("/{org_id}", response_model=List[BoardOut])
async def get_boards_by_org(
    org_id: str,
    department_id: Optional[str] = Query(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Boards of an organization, optionally narrowed to one department"""
    if not org_id or org_id == "undefined":
        raise ValidationFailed("Invalid or missing orgId.")
    ensure_org_member(user, org_id)

    stmt = select(Board).where(Board.org_id == org_id).options(*_board_options())
    if department_id and department_id not in _EMPTY_FILTER_VALUES:
        stmt = stmt.where(Board.department_id == department_id)
    stmt = stmt.order_by(Board.order, Board.created_at)

    result = await db.execute(stmt)
    boards = result.scalars().all()
    logger.debug("Found %d boards for organization %s (department=%s)", len(boards), org_id, department_id)
    return [_board_to_out(b) for b in boards]


@router.delete("/{board_id}")
async def delete_board(
    board_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Delete a board and every task on it in one transaction"""
    board = await _load_board(db, board_id)
    if not is_org_member(user, board.org_id):
        raise Forbidden("Not authorized to delete this board")

    task_count = len(board.tasks)
    try:
        for task in list(board.tasks):
            await db.delete(task)
        await db.delete(board)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Board %s cascade delete rolled back", board_id)
        raise InternalFault(error=str(exc))

    logger.info("User %s deleted board %s and %d task(s)", user.id, board_id, task_count)
    return {"message": "Board and its tasks deleted successfully."}


@router.get("/{board_id}/tasks")
async def fetch_tasks_from_board(
    board_id: str,
    status: Optional[str] = Query(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    status_filter = parse_status_filter(status)

    result = await db.execute(select(Board).where(Board.id == board_id))
    board = result.scalar_one_or_none()
    if not board:
        raise NotFound("Board not found.")
    if not is_org_member(user, board.org_id):
        raise Forbidden("Not authorized to view this board")

    stmt = select(Task).where(Task.board_id == board_id).options(*task_load_options()).order_by(Task.order)
    if status_filter:
        stmt = stmt.where(Task.status == status_filter)
    result = await db.execute(stmt)
    tasks = [task_to_out(t) for t in result.scalars().all()]
    return {"tasks": tasks, "count": len(tasks)}
