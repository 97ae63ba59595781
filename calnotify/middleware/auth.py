"""JWT authentication for the notification API.

Tokens are issued by the calendar application; this service only verifies
them and checks that the path user matches the token subject.
"""
from typing import Optional

from fastapi import HTTPException, Request, status
from jose import JWTError, jwt
from pydantic import BaseModel

from calnotify.config import AUTH_ALGORITHM, AUTH_SECRET


class CurrentUser(BaseModel):
    """User information extracted from JWT."""
    user_id: str
    email: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(request: Request) -> CurrentUser:
    """
    Validate JWT token from Authorization header and extract user information.

    Raises:
        HTTPException: If token is missing, invalid or expired
    """
    # Preflight CORS requests carry no credentials
    if request.method == "OPTIONS":
        return CurrentUser(user_id="")

    auth_header = request.headers.get("authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise _unauthorized("Missing or invalid Authorization header")

    token = auth_header[7:]

    try:
        payload = jwt.decode(token, AUTH_SECRET, algorithms=[AUTH_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except JWTError as e:
        raise _unauthorized(f"Invalid token: {str(e)}")

    user_id = payload.get("sub")
    if user_id is None:
        raise _unauthorized("Invalid token: missing user ID")

    return CurrentUser(user_id=user_id, email=payload.get("email"), role=payload.get("role"))


def ensure_same_user(user_id: str, current_user: CurrentUser):
    """Verify that the authenticated user matches the requested user ID."""
    if user_id != current_user.user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to access this user's resources",
        )


async def require_admin(request: Request) -> CurrentUser:
    current_user = await get_current_user(request)
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return current_user
