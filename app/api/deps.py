import binascii
from base64 import b64decode
from typing import Callable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from fastapi.security.utils import get_authorization_scheme_param
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.rate_limiter import rate_limiter
from app.db.models.user import User, UserRole
from app.db.session import get_db
from app.realtime.hub import RealtimeHub
from app.services.user_service import authenticate_user

BASIC_REALM = "Dental Scheduler"

basic_scheme = HTTPBasic(realm=BASIC_REALM, auto_error=False)


class AuthenticationFailed(Exception):
    def __init__(self, retry_after: int | None = None) -> None:
        super().__init__("authentication failed")
        self.retry_after = retry_after


def parse_basic_authorization(header: str | None) -> tuple[str, str] | None:
    scheme, param = get_authorization_scheme_param(header)
    if not header or scheme.lower() != "basic":
        return None
    try:
        decoded = b64decode(param).decode("utf-8")
    except (ValueError, UnicodeDecodeError, binascii.Error):
        return None
    username, separator, password = decoded.partition(":")
    if not separator:
        return None
    return username, password


def authenticate_credentials(db: Session, username: str, password: str, client_key: str) -> User:
    """Check Basic credentials, limiting failed attempts per client."""
    key = f"basic:{client_key}"
    blocked, retry_after = rate_limiter.is_blocked(
        key=key,
        limit=settings.auth_max_failed_attempts,
        window_seconds=settings.auth_rate_limit_window_seconds,
    )
    if blocked:
        raise AuthenticationFailed(retry_after=retry_after)

    user = authenticate_user(db, username, password)
    if user is None:
        rate_limiter.hit(
            key=key,
            limit=settings.auth_max_failed_attempts,
            window_seconds=settings.auth_rate_limit_window_seconds,
        )
        raise AuthenticationFailed()

    rate_limiter.clear(key)
    return user


def get_current_user(
    request: Request,
    credentials: HTTPBasicCredentials | None = Depends(basic_scheme),
    db: Session = Depends(get_db),
) -> User:
    unauthorized_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
        headers={"WWW-Authenticate": f'Basic realm="{BASIC_REALM}"'},
    )
    if credentials is None:
        raise unauthorized_exc

    client_key = request.client.host if request.client else "unknown"
    try:
        return authenticate_credentials(db, credentials.username, credentials.password, client_key)
    except AuthenticationFailed as exc:
        if exc.retry_after is not None:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many failed login attempts. Please try again later.",
                headers={"Retry-After": str(exc.retry_after)},
            ) from None
        raise unauthorized_exc from None


def require_roles(*roles: UserRole | str) -> Callable[[User], User]:
    allowed_roles = {role.value if isinstance(role, UserRole) else role for role in roles}

    def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Forbidden: Insufficient permissions",
            )
        return current_user

    return checker


def get_realtime(request: Request) -> RealtimeHub:
    return request.app.state.realtime
