"""CMS marketplace ad moderation routes (admin only)"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from app.core.exceptions import ModerationError
from app.core.security import require_admin
from app.db.session import get_db
from app.models.user import User
from app.schemas.moderation import BulkModerateRequest, ModerateAdRequest
from app.services.audit_service import request_info_from_headers
from app.services.moderation_service import bulk_moderate_ads, list_ads_for_moderation, moderate_ad

router = APIRouter(prefix="/api/cms/marketplace-ads", tags=["moderation"])
logger = logging.getLogger(__name__)


@router.get("")
def list_ads(
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Moderation queue, pending ads first"""
    return list_ads_for_moderation(db, status=status, page=page, limit=limit)


@router.put("/moderate")
def bulk_moderate(
    request_data: BulkModerateRequest,
    request: Request,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Approve or reject several ads; each succeeds or fails on its own"""
    try:
        return bulk_moderate_ads(
            request_data.ad_ids,
            request_data.action,
            db,
            reason=request_data.reason,
            actor=admin_user,
            request_info=request_info_from_headers(request.headers),
        )
    except ModerationError as e:
        raise HTTPException(e.status_code, e.message)


@router.post("/{ad_id}/moderate")
def moderate(
    ad_id: int,
    request_data: ModerateAdRequest,
    request: Request,
    admin_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Approve or reject a single pending ad"""
    try:
        result = moderate_ad(
            ad_id,
            request_data.action,
            db,
            reason=request_data.reason,
            actor=admin_user,
            request_info=request_info_from_headers(request.headers),
        )
    except ModerationError as e:
        raise HTTPException(e.status_code, e.message)
    return {"ad": result.ad, "message": result.message}
