from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from tripbook.db.session import get_db
from tripbook.core.errors import Forbidden, Unauthorized
from tripbook.core.security import decode_token
from tripbook.models.user import User
from tripbook.services.gateway import PaymentGateway, build_gateway

bearer = HTTPBearer(auto_error=False)


def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    db: Session = Depends(get_db),
) -> User:
    if not creds:
        raise Unauthorized("Not authenticated")
    payload = decode_token(creds.credentials)
    user_id = payload.get("sub")
    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise Unauthorized("User not found or inactive")
    return user


def require_roles(*roles: str):
    def _guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise Forbidden("Forbidden")
        return user
    return _guard


def get_gateway() -> PaymentGateway:
    """Razorpay adapter built from settings; tests override this dependency."""
    return build_gateway()
