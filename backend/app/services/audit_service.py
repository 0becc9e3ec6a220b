"""Audit service - who changed what"""
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.logging import audit_logger
from app.models.audit_log import AuditLog

logger = audit_logger


def request_info_from_headers(headers) -> Dict[str, str]:
    """Client address and user agent as recorded on audit rows"""
    return {
        "ip_address": headers.get("x-forwarded-for") or headers.get("x-real-ip") or "unknown",
        "user_agent": headers.get("user-agent") or "unknown",
    }


def log_audit(
    action: str,
    entity_type: str,
    entity_id: Any,
    db: Session,
    actor_id: Optional[int] = None,
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
    request_info: Optional[Dict[str, str]] = None,
) -> bool:
    """Write an audit row in its own commit.

    Best effort: the change being audited has already been committed, so a
    failure here is logged and rolled back but never raised.

    Returns:
        True if the row was written
    """
    request_info = request_info or {}
    try:
        db.add(AuditLog(
            user_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            old_values=old_values,
            new_values=new_values,
            ip_address=request_info.get("ip_address", "unknown"),
            user_agent=request_info.get("user_agent", "unknown"),
        ))
        db.commit()
        return True
    except Exception as e:
        db.rollback()
        logger.error(f"Audit log error for {action} on {entity_type}:{entity_id}: {e}", exc_info=True)
        return False
