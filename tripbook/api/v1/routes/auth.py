from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from tripbook.db.session import get_db
from tripbook.schemas.auth import LoginRequest, RefreshRequest, TokenPair
from tripbook.models.user import User
from tripbook.core.errors import Unauthorized
from tripbook.core.security import verify_password, create_access_token, create_refresh_token, decode_token
from tripbook.api.deps import get_current_user

router = APIRouter(tags=["auth"])


def _tokens(user: User) -> TokenPair:
    return TokenPair(
        access_token=create_access_token(user.id, role=user.role),
        refresh_token=create_refresh_token(user.id),
    )


@router.post("/auth/login", response_model=TokenPair)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == body.email.lower()).first()
    if not user or not user.is_active:
        raise Unauthorized("Invalid credentials")
    if not verify_password(body.password, user.password_hash):
        raise Unauthorized("Invalid credentials")
    return _tokens(user)


@router.post("/auth/refresh", response_model=TokenPair)
def refresh(body: RefreshRequest, db: Session = Depends(get_db)):
    payload = decode_token(body.refresh_token, expected_type="refresh")
    user = db.get(User, payload.get("sub"))
    if not user or not user.is_active:
        raise Unauthorized("User not found or inactive")
    return _tokens(user)


@router.get("/auth/me")
def me(me: User = Depends(get_current_user)):
    """Return current user info including role."""
    return {
        "id": me.id,
        "email": me.email,
        "fullName": me.full_name or "",
        "role": me.role,
    }
