# routers/auth.py - Registration, login and self profile
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from auth import (
    AuthService, UserRegister, UserLogin, UserOut, CurrentUser,
    get_current_user, load_user, user_to_out,
)
from database import get_db_session
from errors import ValidationFailed, Unauthenticated
from models import User

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


class TokenResponse(UserOut):
    token: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    username: Optional[str] = None
    password: Optional[str] = None


def _build_token_response(user_obj: User) -> TokenResponse:
    """User projection plus a freshly issued token"""
    out = user_to_out(user_obj)
    return TokenResponse(**out.model_dump(), token=AuthService.create_access_token(user_obj.id))


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db_session),
):
    """Register a user and create or join an organization"""
    user = await AuthService.register_user(user_data, db)
    return _build_token_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db_session),
):
    """Authenticate and receive a token"""
    if not credentials.email or not credentials.password:
        raise ValidationFailed("Email and password are required")

    user = await AuthService.authenticate_user(credentials.email, credentials.password, db)
    if not user:
        raise Unauthenticated("Invalid email or password")
    return _build_token_response(user)


@router.get("/profile", response_model=UserOut)
async def get_profile(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Get the authenticated user's profile"""
    return user_to_out(await load_user(db, user.id))


@router.put("/profile", response_model=TokenResponse)
async def update_profile(
    body: ProfileUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Update name, email, username or password. Returns a fresh token."""
    db_user = await load_user(db, user.id)

    if body.password is not None and len(body.password) < 6:
        raise ValidationFailed("Password should be at least 6 characters long")
    if body.username is not None and body.username and len(body.username) < 3:
        raise ValidationFailed("Username should be at least 3 characters long")

    await AuthService.ensure_unique(
        db,
        body.email if body.email and body.email != db_user.email else None,
        body.username if body.username and body.username != db_user.username else None,
        exclude_user_id=db_user.id,
    )

    db_user.name = body.name or db_user.name
    db_user.email = body.email or db_user.email
    db_user.username = body.username or db_user.username
    if body.password:
        db_user.password_hash = AuthService.hash_password(body.password)

    await db.commit()
    return _build_token_response(db_user)


@router.get("/test")
async def test_connection(db: AsyncSession = Depends(get_db_session)):
    """Connectivity check"""
    result = await db.execute(select(func.count(User.id)))
    return {
        "message": "Backend is working",
        "user_count": result.scalar() or 0,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
