"""Authentication service - business logic for user authentication"""
import bcrypt
import logging
import secrets
from typing import Optional
from sqlalchemy.orm import Session

from app.models.user import User, USER_ROLES
from app.core.metrics import login_attempts_counter
from app.db.redis import set_session, get_session, delete_session

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """Hash a password using bcrypt"""
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash"""
    if not password_hash or not password:
        return False
    return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))


def create_user(email: str, password: Optional[str], db: Session, role: str = "public",
                first_name: Optional[str] = None, last_name: Optional[str] = None) -> User:
    """Create a new user.

    Args:
        email: User email (must be unique)
        password: Raw password, or None for an account that cannot log in yet
        db: Database session
        role: 'admin', 'supplier' or 'public'
    """
    if role not in USER_ROLES:
        raise ValueError(f"Invalid role: {role}")
    if db.query(User).filter(User.email == email).first():
        raise ValueError("Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(password) if password else None,
        role=role,
        first_name=first_name,
        last_name=last_name,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def authenticate_user(email: str, password: str, db: Session) -> Optional[User]:
    """Authenticate a user by email and password"""
    user = db.query(User).filter(User.email == email).first()
    if not user:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def get_user_by_id(user_id: int, db: Session) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def create_session(user_id: int) -> str:
    """Create a new session for a user

    Returns:
        str: Session ID
    """
    session_id = secrets.token_urlsafe(32)
    set_session(session_id, user_id)
    return session_id


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "is_admin": user.is_admin,
    }


def login_user(email: str, password: str, db: Session) -> dict:
    """Authenticate and open a session

    Raises:
        ValueError: If invalid credentials
    """
    user = authenticate_user(email, password, db)
    if not user:
        login_attempts_counter.labels(status="failure").inc()
        raise ValueError("Invalid email or password")

    session_id = create_session(user.id)
    login_attempts_counter.labels(status="success").inc()
    logger.info(f"User logged in: {user.email} (ID: {user.id})")

    return {"user": serialize_user(user), "session_id": session_id}


def logout_user(session_id: Optional[str]) -> dict:
    if session_id:
        delete_session(session_id)
        logger.info(f"User logged out (session: {session_id[:16]}...)")
    return {"message": "Logged out successfully"}


def get_current_user_from_session(session_id: Optional[str], db: Session) -> dict:
    if not session_id:
        return {"user": None}
    user_id = get_session(session_id)
    if not user_id:
        return {"user": None}
    user = get_user_by_id(user_id, db)
    if not user:
        return {"user": None}
    return {"user": serialize_user(user)}
