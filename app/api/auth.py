from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import select, desc
from sqlalchemy.ext.asyncio import AsyncSession
from jose import JWTError, jwt
from datetime import timedelta
from typing import List, Optional, Any
import base64
import hashlib
import hmac
import os
import uuid

from app.database import SessionDep
from app.models.user import (
    UserAccount, UserAccountRead, UserRole, SignUpRequest, SignInRequest,
    Profile, ProfileUpdate, ProfileRead, AccountSummary
)
from app.config import settings
from app.core.tracking import proximity_tracker
from app.utils.timeutils import utcnow

router = APIRouter()
security = HTTPBearer()

def hash_password(password: str, iterations: Optional[int] = None) -> str:
    iterations = iterations or settings.PASSWORD_HASH_ITERATIONS
    salt = os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return "pbkdf2_sha256${}${}${}".format(
        iterations,
        base64.urlsafe_b64encode(salt).decode("ascii"),
        base64.urlsafe_b64encode(digest).decode("ascii"),
    )

def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt, expected = encoded.split("$")
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        base64.urlsafe_b64decode(salt),
        int(iterations),
    )
    return hmac.compare_digest(base64.urlsafe_b64encode(digest).decode("ascii"), expected)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = utcnow() + expires_delta
    else:
        expire = utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt

async def user_from_token(db: AsyncSession, token: str) -> Optional[UserAccount]:
    """Active account named by a valid access token, or None"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id = uuid.UUID(payload.get("sub") or "")
    except (JWTError, ValueError):
        return None

    user = await db.get(UserAccount, user_id)
    if user is None or not user.is_active:
        return None
    return user

async def get_current_user(
    db: SessionDep,
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> UserAccount:
    user = await user_from_token(db, credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Update last seen
    user.last_seen = utcnow()
    db.add(user)
    await db.commit()
    await db.refresh(user)

    return user

def require_roles(*roles: UserRole):
    """Dependency factory rejecting users whose role is not listed"""
    async def checker(current_user: UserAccount = Depends(get_current_user)) -> UserAccount:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions"
            )
        return current_user
    return checker

require_responder = require_roles(UserRole.ADMIN, UserRole.POLICE)
require_admin = require_roles(UserRole.ADMIN)

class TokenResponse(UserAccountRead):
    access_token: str
    token_type: str = "bearer"

def _token_response(user: UserAccount) -> TokenResponse:
    access_token = create_access_token(
        data={"sub": str(user.id), "role": user.role.value},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return TokenResponse(
        **user.model_dump(exclude={"password_hash"}),
        access_token=access_token,
        token_type="bearer"
    )

async def ensure_admin_account(db) -> Optional[UserAccount]:
    """Create the bootstrap administrator from settings if it does not exist yet"""
    if not (settings.ADMIN_EMAIL and settings.ADMIN_PASSWORD):
        return None
    email = settings.ADMIN_EMAIL.strip().lower()
    result = await db.execute(select(UserAccount).where(UserAccount.email == email))
    admin = result.scalar_one_or_none()
    if admin is None:
        admin = UserAccount(
            email=email,
            password_hash=hash_password(settings.ADMIN_PASSWORD),
            role=UserRole.ADMIN
        )
        db.add(admin)
        await db.commit()
        await db.refresh(admin)
    return admin

@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def signup(request: SignUpRequest, db: SessionDep):
    existing = await db.execute(select(UserAccount).where(UserAccount.email == request.email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=409, detail="An account with this email already exists")

    # Self sign-up always creates tourists; responders are provisioned by admins
    user = UserAccount(
        email=request.email,
        password_hash=hash_password(request.password),
        role=UserRole.TOURIST
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)

    return _token_response(user)

@router.post("/signin", response_model=TokenResponse)
async def signin(request: SignInRequest, db: SessionDep):
    result = await db.execute(select(UserAccount).where(UserAccount.email == request.email))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(request.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account disabled")

    return _token_response(user)

@router.get("/me", response_model=UserAccountRead)
async def get_me(
    current_user: UserAccount = Depends(get_current_user)
):
    return current_user

@router.post("/signout")
async def signout(
    current_user: UserAccount = Depends(get_current_user)
) -> dict[str, str]:
    await proximity_tracker.forget(str(current_user.id))
    return {"message": "Signed out successfully"}

class AccountCreate(SignUpRequest):
    role: UserRole

@router.post("/accounts", response_model=UserAccountRead, status_code=status.HTTP_201_CREATED)
async def create_account(
    request: AccountCreate,
    db: SessionDep,
    current_user: UserAccount = Depends(require_admin)
):
    existing = await db.execute(select(UserAccount).where(UserAccount.email == request.email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=409, detail="An account with this email already exists")

    user = UserAccount(
        email=request.email,
        password_hash=hash_password(request.password),
        role=request.role
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user

@router.get("/accounts", response_model=List[AccountSummary])
async def list_accounts(
    db: SessionDep,
    is_active: Optional[bool] = None,
    role: Optional[UserRole] = Query(default=None),
    current_user: UserAccount = Depends(require_admin)
):
    """Every account with its profile, newest first"""
    query = select(UserAccount, Profile).outerjoin(Profile, Profile.user_id == UserAccount.id)
    if is_active is not None:
        query = query.where(UserAccount.is_active == is_active)
    if role is not None:
        query = query.where(UserAccount.role == role)

    result = await db.execute(query.order_by(desc(UserAccount.created_at)))
    return [
        AccountSummary(
            **account.model_dump(exclude={"password_hash"}),
            full_name=profile.full_name if profile else None,
            phone=profile.phone if profile else None,
            nationality=profile.nationality if profile else None,
            emergency_contact=profile.emergency_contact if profile else None
        )
        for account, profile in result.all()
    ]

@router.get("/profile", response_model=ProfileRead)
async def get_profile(
    db: SessionDep,
    current_user: UserAccount = Depends(get_current_user)
):
    result = await db.execute(select(Profile).where(Profile.user_id == current_user.id))
    profile = result.scalar_one_or_none()
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not completed")
    return profile

@router.put("/profile", response_model=ProfileRead)
async def update_profile(
    update: ProfileUpdate,
    db: SessionDep,
    current_user: UserAccount = Depends(get_current_user)
) -> Any:
    result = await db.execute(select(Profile).where(Profile.user_id == current_user.id))
    profile = result.scalar_one_or_none()

    if profile is None:
        profile = Profile(user_id=current_user.id, **update.model_dump())
    else:
        for key, value in update.model_dump().items():
            setattr(profile, key, value)
        profile.updated_at = utcnow()

    db.add(profile)
    await db.commit()
    await db.refresh(profile)
    return profile
