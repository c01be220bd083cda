"""FastAPI dependency injection utilities."""

from typing import Annotated

from fastapi import Depends, Header

from college_portal.core.exceptions import AuthenticationError, PermissionDeniedError
from college_portal.core.security import verify_access_token

COLLEGE_SUPER_ADMIN = "COLLEGE_SUPER_ADMIN"
TEACHER = "TEACHER"


class SessionUser:
    """Caller identity taken from the session provider's token."""

    def __init__(self, user_id: int, college_id: int | None, role: str):
        self.user_id = user_id
        self.college_id = college_id
        self.role = role

    def has_role(self, *roles: str) -> bool:
        return self.role in roles


def get_session_user(
    authorization: str = Header(..., description="Bearer token"),
) -> SessionUser:
    """Extract and validate the caller from the bearer token."""
    if not authorization.startswith("Bearer "):
        raise AuthenticationError("Invalid authorization header format")

    token = authorization[7:]  # Remove "Bearer " prefix
    payload = verify_access_token(token)

    if not payload:
        raise AuthenticationError("Invalid or expired token")

    user_id_str = payload.get("sub")
    if not user_id_str:
        raise AuthenticationError("Invalid token payload")

    try:
        user_id = int(user_id_str)
    except ValueError:
        raise AuthenticationError("Invalid user ID in token")

    return SessionUser(
        user_id=user_id,
        college_id=payload.get("college_id"),
        role=payload.get("role") or "",
    )


def require_role(*roles: str):
    """Dependency factory that requires one of the given roles and a college."""

    def check_role(
        user: Annotated[SessionUser, Depends(get_session_user)],
    ) -> SessionUser:
        if not user.has_role(*roles):
            raise PermissionDeniedError(
                "You are not allowed to perform this action",
                required_roles=list(roles),
            )
        if user.college_id is None:
            raise PermissionDeniedError("No college ID found in session")
        return user

    return check_role


# Type aliases for dependency injection
CollegeAdmin = Annotated[SessionUser, Depends(require_role(COLLEGE_SUPER_ADMIN))]
MarksEditor = Annotated[SessionUser, Depends(require_role(COLLEGE_SUPER_ADMIN, TEACHER))]
