"""Security dependencies: session authentication and role checks"""
from fastapi import Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging import security_logger
from app.db.redis import get_session, SESSION_TTL
from app.db.session import get_db
from app.models.user import User


def require_auth(request: Request) -> int:
    """Dependency: Require authentication, return user_id"""
    session_id = request.cookies.get("session_id")

    if not session_id:
        raise HTTPException(401, "Not authenticated. Please log in.")

    user_id = get_session(session_id)
    if not user_id:
        raise HTTPException(401, "Session expired. Please log in again.")

    return user_id


def get_current_user(user_id: int = Depends(require_auth), db: Session = Depends(get_db)) -> User:
    """Dependency: the authenticated User row"""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        # Session outlived the account
        raise HTTPException(401, "Not authenticated. Please log in.")
    return user


def require_role(role: str):
    """Dependency factory: require the given role. Admins pass every role check."""
    def _require_role(request: Request, user: User = Depends(get_current_user)) -> User:
        if user.role != role and not user.is_admin:
            security_logger.warning(
                f"Role check failed - User: {user.id} ({user.role}), "
                f"required: {role}, Path: {request.url.path}"
            )
            raise HTTPException(403, "Insufficient permissions")
        return user
    return _require_role


require_admin = require_role("admin")


def set_auth_cookie(response: Response, session_id: str, request: Request) -> None:
    """Set session cookie with proper domain for cross-subdomain sharing"""
    host = request.headers.get("host", settings.DOMAIN)
    if ":" in host:
        host = host.split(":")[0]

    # api.example.com -> .example.com; localhost gets no domain attribute
    domain_parts = host.split(".")
    if len(domain_parts) >= 2:
        cookie_domain = "." + ".".join(domain_parts[-2:])
    else:
        cookie_domain = None

    response.set_cookie(
        key="session_id",
        value=session_id,
        domain=cookie_domain,
        httponly=True,
        secure=settings.ENVIRONMENT == "production",
        samesite="lax",
        max_age=SESSION_TTL
    )
