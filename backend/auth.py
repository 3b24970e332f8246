# auth.py - Authentication for the task board service
# Features:
# - bcrypt password hashing
# - HS256 JWT bearer tokens (7 day expiry) with JTI
# - Registration that creates or joins an organization atomically
# - "admin only" role gate
# - Shared user projections (credential digest never leaves this module)

import os
import uuid
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database import get_db_session
from errors import ValidationFailed, Unauthenticated, Forbidden, NotFound, Conflict, InternalFault
from models import User, Organization, UserRole

logger = logging.getLogger("taskboard.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY:
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY not set. Generated ephemeral key; tokens will not "
        "survive a restart. Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_DAYS = int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "7"))
BCRYPT_ROUNDS = 10
MIN_PASSWORD_LENGTH = 6
MIN_USERNAME_LENGTH = 3
DEFAULT_AVATAR_URL = "https://api.dicebear.com/7.x/avataaars/svg?seed={username}"

security = HTTPBearer(auto_error=False)


def default_notification_settings() -> Dict[str, Any]:
    return {
        "email": "",
        "is_enabled": False,
        "features": {
            "task_management": True,
            "document_management": True,
            "messaging": True,
            "project_management": True,
            "inventory_management": True,
        },
    }


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class UserRegister(BaseModel):
    name: Optional[str] = None
    username: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    profile_image_url: Optional[str] = None
    org_id: Optional[str] = None


class UserLogin(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class CurrentUser(BaseModel):
    id: str
    name: str
    username: Optional[str] = None
    email: str
    role: str
    org_id: Optional[str] = None
    department_id: Optional[str] = None
    profile_image_url: Optional[str] = None


class UserOut(BaseModel):
    id: str
    name: str
    username: str
    email: str
    role: str
    org_id: Optional[str] = None
    department_id: Optional[str] = None
    profile_image_url: Optional[str] = None
    notification_settings: Dict[str, Any]
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class UserSummary(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    profile_image_url: Optional[str] = None


def display_username(u: User) -> str:
    """Stored username, or the email local-part for records created without one"""
    return u.username or u.email.split("@")[0]


def user_to_out(u: User) -> UserOut:
    return UserOut(
        id=u.id,
        name=u.name,
        username=display_username(u),
        email=u.email,
        role=u.role,
        org_id=u.org_id,
        department_id=u.department_id,
        profile_image_url=u.profile_image_url,
        notification_settings=u.notification_settings or default_notification_settings(),
        created_at=u.created_at.isoformat() if u.created_at else None,
        updated_at=u.updated_at.isoformat() if u.updated_at else None,
    )


def user_to_summary(u: Optional[User]) -> Optional[UserSummary]:
    if u is None:
        return None
    return UserSummary(id=u.id, name=u.name, email=u.email, profile_image_url=u.profile_image_url)


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Credential hashing, token handling and the registration workflow"""

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            # Malformed stored digest
            return False

    @staticmethod
    def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
        now = datetime.now(timezone.utc)
        to_encode = {
            "sub": user_id,
            "iat": now,
            "exp": now + (expires_delta or timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS)),
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            logger.debug("Rejected expired token")
            raise Unauthenticated()
        except JWTError as exc:
            logger.debug("Rejected token: %s", exc)
            raise Unauthenticated()

    @staticmethod
    async def ensure_unique(db: AsyncSession, email: Optional[str], username: Optional[str],
                            exclude_user_id: Optional[str] = None) -> None:
        """Email and username are unique across every organization"""
        clauses = []
        if email:
            clauses.append(User.email == email)
        if username:
            clauses.append(User.username == username)
        if not clauses:
            return
        stmt = select(User).where(or_(*clauses))
        if exclude_user_id:
            stmt = stmt.where(User.id != exclude_user_id)
        result = await db.execute(stmt)
        for existing in result.scalars().all():
            if email and existing.email == email:
                raise Conflict("Email already exists")
            if username and existing.username == username:
                raise Conflict("Username already exists")

    @staticmethod
    async def register_user(user_data: UserRegister, db: AsyncSession) -> User:
        if not (user_data.name and user_data.username and user_data.email and user_data.password):
            raise ValidationFailed("All fields are required")
        if len(user_data.password) < MIN_PASSWORD_LENGTH:
            raise ValidationFailed(f"Password should be at least {MIN_PASSWORD_LENGTH} characters long")
        if len(user_data.username) < MIN_USERNAME_LENGTH:
            raise ValidationFailed(f"Username should be at least {MIN_USERNAME_LENGTH} characters long")

        await AuthService.ensure_unique(db, user_data.email, user_data.username)

        # Resolve the target organization before writing anything
        target_org = None
        if user_data.org_id:
            stmt = (
                select(Organization)
                .where(Organization.id == user_data.org_id)
                .options(selectinload(Organization.members))
            )
            result = await db.execute(stmt)
            target_org = result.scalar_one_or_none()
            if not target_org:
                raise ValidationFailed("Invalid organization ID.")

        user = User(
            name=user_data.name,
            username=user_data.username,
            email=user_data.email,
            password_hash=AuthService.hash_password(user_data.password),
            profile_image_url=user_data.profile_image_url
            or DEFAULT_AVATAR_URL.format(username=user_data.username),
            role=UserRole.ADMIN.value,
        )

        try:
            db.add(user)
            await db.flush()

            if target_org is not None:
                user.role = UserRole.MEMBER.value
                if user not in target_org.members:
                    target_org.members.append(user)
                org = target_org
            else:
                org = Organization(
                    name=f"{user_data.name}'s Organization",
                    created_by=user.id,
                    role_names=[],
                    members=[user],
                )
                db.add(org)
                await db.flush()

            user.org_id = org.id
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.warning("Registration raced on unique field for %s", user_data.email)
            raise Conflict("User already exists")
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception("Registration rolled back for %s", user_data.email)
            raise InternalFault(error=str(exc))

        logger.info(
            "Registered user %s (%s) in organization %s as %s",
            user.id, user.username, user.org_id, user.role,
        )
        return user

    @staticmethod
    async def authenticate_user(email: str, password: str, db: AsyncSession) -> Optional[User]:
        stmt = select(User).where(User.email == email)
        result = await db.execute(stmt)
        user = result.scalar_one_or_none()

        if not user or not AuthService.verify_password(password, user.password_hash):
            logger.debug("Failed login for %s", email)
            return None
        return user


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUser:
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Not authorized, no token")

    payload = AuthService.verify_token(credentials.credentials)

    user_id = payload.get("sub")
    if not user_id:
        raise Unauthenticated()

    stmt = select(User).where(User.id == user_id)
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()

    if not user:
        logger.debug("Token subject %s no longer exists", user_id)
        raise Unauthenticated()

    return CurrentUser(
        id=user.id,
        name=user.name,
        username=user.username,
        email=user.email,
        role=user.role,
        org_id=user.org_id,
        department_id=user.department_id,
        profile_image_url=user.profile_image_url,
    )


async def require_admin_role(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if user.role != UserRole.ADMIN.value:
        raise Forbidden("Access denied, admin only")
    return user


async def load_user(db: AsyncSession, user_id: str) -> User:
    stmt = select(User).where(User.id == user_id)
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound("User not found")
    return user
