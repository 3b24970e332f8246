# routers/users.py - Organization users, roles, departments and profile images
import os
import uuid
import logging
from pathlib import Path
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, Depends, UploadFile, File
from pydantic import BaseModel
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from auth import (
    get_current_user, require_admin_role, CurrentUser, AuthService,
    UserOut, user_to_out, load_user, default_notification_settings,
)
from database import get_db_session
from errors import ValidationFailed, NotFound
from models import User, Task, TaskStatus, Organization, Department, task_assignees
from policy import ensure_assignable_role

logger = logging.getLogger("taskboard.users")

router = APIRouter(prefix="/api/users", tags=["Users"])

PROFILE_IMAGE_ROOT = os.getenv("PROFILE_IMAGE_ROOT", "./uploads/profile-images")


# --- Schemas ---

class UserWithTaskCounts(UserOut):
    pending_tasks: int = 0
    in_progress_tasks: int = 0
    completed_tasks: int = 0


class RoleUpdate(BaseModel):
    role: Optional[str] = None


class MyUserUpdate(BaseModel):
    name: Optional[str] = None
    username: Optional[str] = None
    notification_settings: Optional[Dict[str, Any]] = None


class DepartmentAssignment(BaseModel):
    user_id: Optional[str] = None
    department_id: Optional[str] = None


# --- Helpers ---

async def _load_org_user(db: AsyncSession, caller: CurrentUser, user_id: str) -> User:
    """A user of the caller's organization; others are reported as missing"""
    stmt = select(User).where(User.id == user_id, User.org_id == caller.org_id)
    result = await db.execute(stmt)
    target = result.scalar_one_or_none()
    if not target or not caller.org_id:
        raise NotFound("User not found")
    return target


async def _task_counts(db: AsyncSession, user_ids: List[str]) -> Dict[str, Dict[TaskStatus, int]]:
    counts: Dict[str, Dict[TaskStatus, int]] = {uid: {} for uid in user_ids}
    if not user_ids:
        return counts
    stmt = (
        select(task_assignees.c.user_id, Task.status, func.count(Task.id))
        .join(Task, Task.id == task_assignees.c.task_id)
        .where(task_assignees.c.user_id.in_(user_ids))
        .group_by(task_assignees.c.user_id, Task.status)
    )
    result = await db.execute(stmt)
    for user_id, status, count in result.all():
        counts[user_id][TaskStatus(status)] = count
    return counts


# --- Endpoints ---

@router.get("", response_model=List[UserWithTaskCounts])
async def list_users(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Plain members of the caller's organization with their assigned task counts"""
    if not user.org_id:
        return []
    stmt = (
        select(User)
        .where(User.org_id == user.org_id, User.role == "member")
        .order_by(User.created_at)
    )
    result = await db.execute(stmt)
    users = result.scalars().all()

    counts = await _task_counts(db, [u.id for u in users])
    out = []
    for u in users:
        per_status = counts.get(u.id, {})
        out.append(UserWithTaskCounts(
            **user_to_out(u).model_dump(),
            pending_tasks=per_status.get(TaskStatus.PENDING, 0),
            in_progress_tasks=per_status.get(TaskStatus.IN_PROGRESS, 0),
            completed_tasks=per_status.get(TaskStatus.COMPLETED, 0),
        ))
    return out


@router.put("/my", response_model=UserOut)
async def update_my_user(
    body: MyUserUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Update own name, username and notification settings (shallow merge)"""
    db_user = await load_user(db, user.id)

    if body.username and body.username != db_user.username:
        if len(body.username) < 3:
            raise ValidationFailed("Username should be at least 3 characters long")
        await AuthService.ensure_unique(db, None, body.username, exclude_user_id=db_user.id)

    db_user.name = body.name or db_user.name
    db_user.username = body.username or db_user.username
    if body.notification_settings:
        current = db_user.notification_settings or default_notification_settings()
        db_user.notification_settings = {**current, **body.notification_settings}

    await db.commit()
    return user_to_out(db_user)


@router.post("/upload-profile-image")
async def upload_profile_image(
    image: Optional[UploadFile] = File(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    if image is None or not image.filename:
        raise ValidationFailed("No image file uploaded")

    db_user = await load_user(db, user.id)

    root = Path(PROFILE_IMAGE_ROOT)
    root.mkdir(parents=True, exist_ok=True)
    suffix = Path(image.filename).suffix.lower()
    target = root / f"{user.id}-{uuid.uuid4().hex}{suffix}"
    target.write_bytes(await image.read())

    db_user.profile_image_url = str(target)
    await db.commit()
    logger.info("User %s uploaded profile image %s", user.id, target.name)
    return {"message": "Profile image updated", "user": user_to_out(db_user)}


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    return user_to_out(await _load_org_user(db, user, user_id))


@router.put("/{user_id}/role")
async def update_user_role(
    user_id: str,
    body: RoleUpdate,
    admin: CurrentUser = Depends(require_admin_role),
    db: AsyncSession = Depends(get_db_session),
):
    """Assign one of the fixed roles to a user of the admin's organization"""
    target = await _load_org_user(db, admin, user_id)
    ensure_assignable_role(body.role)

    previous = target.role
    target.role = body.role
    await db.commit()
    logger.info("User %s changed role of %s from %s to %s", admin.id, target.id, previous, target.role)
    return {"message": "Role updated successfully", "user": user_to_out(target)}


@router.patch("/{org_id}/assign-department")
async def assign_user_to_department(
    org_id: str,
    body: DepartmentAssignment,
    admin: CurrentUser = Depends(require_admin_role),
    db: AsyncSession = Depends(get_db_session),
):
    if not body.user_id or not body.department_id:
        raise ValidationFailed("User ID and Department ID are required")

    result = await db.execute(select(Organization).where(Organization.id == org_id))
    if not result.scalar_one_or_none():
        raise NotFound("Organization not found")

    result = await db.execute(
        select(Department).where(Department.id == body.department_id, Department.organization_id == org_id)
    )
    department = result.scalar_one_or_none()
    if not department:
        raise NotFound("Department not found in this organization")

    target = await _load_org_user(db, admin, body.user_id)
    if target.org_id != org_id:
        raise NotFound("User not found")
    target.department_id = department.id
    await db.commit()
    logger.info("User %s assigned %s to department %s", admin.id, target.id, department.id)

    return {
        "message": f"User assigned to department: {department.name}",
        "user": user_to_out(target),
    }
