import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from bughouse.auth import jwt_handler
from bughouse.core.errors import AuthRequiredError, ForbiddenError
from bughouse.database import get_db
from bughouse.models.user import User, UserRole

security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise AuthRequiredError("Authentication required.")

    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except jwt.PyJWTError as exc:
        raise AuthRequiredError("Invalid token.") from exc

    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise AuthRequiredError("Invalid token subject.")

    user = db.get(User, int(subject))
    if user is None:
        raise AuthRequiredError("User not found.")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role is not UserRole.ADMIN:
        raise ForbiddenError("Admin access required.")
    return user


def require_tutor(user: User = Depends(get_current_user)) -> User:
    if user.role is not UserRole.TUTOR:
        raise ForbiddenError("Tutor access required.")
    return user
