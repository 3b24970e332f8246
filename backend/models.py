# models.py - Database models for the task board service
# - UUID string primary keys everywhere
# - Organizations own departments, custom role labels and a member set
# - Boards belong to an organization + department and own their tasks
# - Tasks carry the checklist inline so progress/status are written with it

import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, JSON, Integer, Text, Table,
    Enum as SQLEnum, ForeignKey, Index,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid():
    return str(uuid.uuid4())


# ============================================================
# ENUMS
# ============================================================

class UserRole(str, PyEnum):
    ADMIN = "admin"
    ENGINEERING = "Engineering"
    MANAGEMENT = "Management"
    WAREHOUSE = "Warehouse"
    MEMBER = "member"


class TaskPriority(str, PyEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class TaskStatus(str, PyEnum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


# ============================================================
# ASSOCIATIONS
# ============================================================

organization_members = Table(
    "organization_members",
    Base.metadata,
    Column("organization_id", String, ForeignKey("organizations.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

task_assignees = Table(
    "task_assignees",
    Base.metadata,
    Column("task_id", String, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


# ============================================================
# ORGANIZATIONS
# ============================================================

class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String, primary_key=True, default=new_uuid)
    name = Column(String, nullable=False)
    created_by = Column(String, nullable=False, index=True)  # Immutable after creation
    role_names = Column(JSON, nullable=False, default=list)  # Custom role labels, ordered
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    creator = relationship(
        "User",
        primaryjoin="foreign(Organization.created_by) == User.id",
        viewonly=True,
    )
    members = relationship("User", secondary=organization_members, order_by="User.created_at")
    departments = relationship(
        "Department",
        back_populates="organization",
        order_by="Department.created_at",
        cascade="all",
    )


class Department(Base):
    """Named grouping inside an organization, used to scope boards"""
    __tablename__ = "departments"

    id = Column(String, primary_key=True, default=new_uuid)
    organization_id = Column(String, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    created_by = Column(String, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    organization = relationship("Organization", back_populates="departments")


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=new_uuid)
    name = Column(String, nullable=False)
    username = Column(String, unique=True, nullable=True, index=True)  # NULL on legacy records
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    profile_image_url = Column(String, nullable=True)
    role = Column(String, nullable=False, default=UserRole.MEMBER.value, index=True)
    org_id = Column(String, ForeignKey("organizations.id"), nullable=True, index=True)
    department_id = Column(String, nullable=True)  # Id within the organization's department list
    notification_settings = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_user_org_role", "org_id", "role"),
    )


# ============================================================
# BOARDS & TASKS
# ============================================================

class Board(Base):
    __tablename__ = "boards"

    id = Column(String, primary_key=True, default=new_uuid)
    name = Column(String, nullable=False)
    created_by = Column(String, ForeignKey("users.id"), nullable=False)
    org_id = Column(String, ForeignKey("organizations.id"), nullable=False, index=True)
    department_id = Column(String, nullable=False)
    order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    creator = relationship("User")
    tasks = relationship("Task", back_populates="board", order_by="Task.order")

    __table_args__ = (
        Index("idx_board_org_dept", "org_id", "department_id"),
    )


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=new_uuid)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(SQLEnum(TaskPriority, values_callable=lambda e: [m.value for m in e]),
                      nullable=False, default=TaskPriority.MEDIUM)
    status = Column(SQLEnum(TaskStatus, values_callable=lambda e: [m.value for m in e]),
                    nullable=False, default=TaskStatus.PENDING, index=True)
    start_date = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String, ForeignKey("users.id"), nullable=True)
    attachments = Column(JSON, nullable=False, default=list)
    todo_checklist = Column(JSON, nullable=False, default=list)  # [{"text": str, "completed": bool}]
    progress = Column(Integer, nullable=False, default=0)
    org_id = Column(String, ForeignKey("organizations.id"), nullable=False, index=True)
    board_id = Column(String, ForeignKey("boards.id"), nullable=True, index=True)
    category = Column(String, nullable=True)
    order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    board = relationship("Board", back_populates="tasks")
    creator = relationship("User", foreign_keys=[created_by])
    assignees = relationship("User", secondary=task_assignees, order_by="User.created_at")
    comments = relationship(
        "TaskComment",
        back_populates="task",
        order_by="TaskComment.timestamp",
        cascade="all",
    )

    __table_args__ = (
        Index("idx_task_board_org", "board_id", "org_id"),
    )


class TaskComment(Base):
    """Comment on a task card"""
    __tablename__ = "task_comments"

    id = Column(String, primary_key=True, default=new_uuid)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(String, ForeignKey("users.id"), nullable=True)
    text = Column(Text, nullable=False)
    timestamp = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    task = relationship("Task", back_populates="comments")
    author = relationship("User")
