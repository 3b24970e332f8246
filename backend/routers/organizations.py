# routers/organizations.py - Organization, custom role and department management
import logging
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from auth import (
    get_current_user, require_admin_role, CurrentUser,
    UserOut, UserSummary, user_to_out, user_to_summary,
)
from database import get_db_session
from errors import ValidationFailed, NotFound, Conflict
from models import Organization, Department, User, UserRole
from policy import ensure_org_member, ensure_org_creator

logger = logging.getLogger("taskboard.organizations")

router = APIRouter(prefix="/api/organization", tags=["Organizations"])


# --- Schemas ---

class DepartmentOut(BaseModel):
    id: str
    name: str
    created_by: str
    created_at: Optional[str] = None


class OrganizationOut(BaseModel):
    id: str
    name: str
    created_by: Optional[UserSummary] = None
    members: List[UserOut] = []
    role_names: List[str] = []
    departments: List[DepartmentOut] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class OrganizationUpdate(BaseModel):
    name: Optional[str] = None


class RoleNameBody(BaseModel):
    role_name: Optional[str] = None


class DepartmentCreate(BaseModel):
    name: Optional[str] = None


# --- Helpers ---

def _department_to_out(d: Department) -> DepartmentOut:
    return DepartmentOut(
        id=d.id,
        name=d.name,
        created_by=d.created_by,
        created_at=d.created_at.isoformat() if d.created_at else None,
    )


def _org_to_out(org: Organization) -> OrganizationOut:
    return OrganizationOut(
        id=org.id,
        name=org.name,
        created_by=user_to_summary(org.creator),
        members=[user_to_out(m) for m in org.members],
        role_names=list(org.role_names or []),
        departments=[_department_to_out(d) for d in org.departments],
        created_at=org.created_at.isoformat() if org.created_at else None,
        updated_at=org.updated_at.isoformat() if org.updated_at else None,
    )


async def _load_org(db: AsyncSession, org_id: Optional[str]) -> Organization:
    stmt = (
        select(Organization)
        .where(Organization.id == org_id)
        .options(
            selectinload(Organization.members),
            selectinload(Organization.creator),
            selectinload(Organization.departments),
        )
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    org = result.scalar_one_or_none()
    if not org:
        raise NotFound("Organization not found")
    return org


# --- Organization ---

@router.get("/my", response_model=OrganizationOut)
async def get_my_organization(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """The caller's organization with member projections"""
    return _org_to_out(await _load_org(db, user.org_id))


@router.put("/my", response_model=OrganizationOut)
async def update_my_organization(
    body: OrganizationUpdate,
    user: CurrentUser = Depends(require_admin_role),
    db: AsyncSession = Depends(get_db_session),
):
    """Rename the organization. Requires the admin role and being its creator."""
    org = await _load_org(db, user.org_id)
    ensure_org_creator(user, org)

    org.name = body.name or org.name
    await db.commit()
    logger.info("User %s renamed organization %s to %r", user.id, org.id, org.name)
    return _org_to_out(await _load_org(db, org.id))


@router.get("/members", response_model=List[UserOut])
async def get_org_members(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Every user belonging to the caller's organization"""
    if not user.org_id:
        return []
    stmt = select(User).where(User.org_id == user.org_id).order_by(User.created_at)
    result = await db.execute(stmt)
    return [user_to_out(u) for u in result.scalars().all()]


# --- Custom roles ---

@router.get("/{org_id}/roles", response_model=List[str])
async def get_org_roles(
    org_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    ensure_org_member(user, org_id)
    org = await _load_org(db, org_id)
    return list(org.role_names or [])


@router.post("/{org_id}/add-role")
async def add_role(
    org_id: str,
    body: RoleNameBody,
    user: CurrentUser = Depends(require_admin_role),
    db: AsyncSession = Depends(get_db_session),
):
    """Append a custom role label to the organization"""
    ensure_org_member(user, org_id)
    if not body.role_name:
        raise ValidationFailed("Role name is required")

    org = await _load_org(db, org_id)
    if body.role_name in (org.role_names or []):
        raise Conflict("Role already exists")

    # New list so the JSON column is marked dirty
    org.role_names = list(org.role_names or []) + [body.role_name]
    await db.commit()
    logger.info("User %s added role %r to organization %s", user.id, body.role_name, org_id)

    return {
        "message": "Role added successfully",
        "organization": _org_to_out(await _load_org(db, org_id)),
    }


@router.delete("/{org_id}/remove-role")
async def remove_role(
    org_id: str,
    body: RoleNameBody,
    user: CurrentUser = Depends(require_admin_role),
    db: AsyncSession = Depends(get_db_session),
):
    """Drop a custom role label. Users holding it fall back to member."""
    ensure_org_member(user, org_id)
    if not body.role_name:
        raise ValidationFailed("Role name is required")

    org = await _load_org(db, org_id)
    if body.role_name not in (org.role_names or []):
        raise NotFound("Role not found in organization")

    org.role_names = [r for r in org.role_names if r != body.role_name]
    result = await db.execute(
        update(User)
        .where(User.org_id == org_id, User.role == body.role_name)
        .values(role=UserRole.MEMBER.value)
    )
    await db.commit()
    logger.info(
        "User %s removed role %r from organization %s (%d users reset to member)",
        user.id, body.role_name, org_id, result.rowcount or 0,
    )
    return {"success": True, "message": "Role deleted successfully"}


# --- Departments ---

@router.get("/{org_id}/departments")
async def get_departments(
    org_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    ensure_org_member(user, org_id)
    org = await _load_org(db, org_id)
    return {"departments": [_department_to_out(d) for d in org.departments]}


@router.post("/{org_id}/departments", status_code=201)
async def add_department(
    org_id: str,
    body: DepartmentCreate,
    user: CurrentUser = Depends(require_admin_role),
    db: AsyncSession = Depends(get_db_session),
):
    ensure_org_member(user, org_id)
    if not body.name:
        raise ValidationFailed("Name is required")

    await _load_org(db, org_id)
    department = Department(organization_id=org_id, name=body.name, created_by=user.id)
    db.add(department)
    await db.commit()
    logger.info("User %s added department %s (%r) to organization %s", user.id, department.id, body.name, org_id)
    return {"department": _department_to_out(department)}


@router.delete("/{org_id}/departments/{department_id}")
async def delete_department(
    org_id: str,
    department_id: str,
    user: CurrentUser = Depends(require_admin_role),
    db: AsyncSession = Depends(get_db_session),
):
    ensure_org_member(user, org_id)
    await _load_org(db, org_id)

    stmt = select(Department).where(
        Department.id == department_id,
        Department.organization_id == org_id,
    )
    result = await db.execute(stmt)
    department = result.scalar_one_or_none()
    if not department:
        raise NotFound("Department not found")

    await db.delete(department)
    await db.commit()
    logger.info("User %s deleted department %s from organization %s", user.id, department_id, org_id)
    return {"message": "Department deleted successfully"}
