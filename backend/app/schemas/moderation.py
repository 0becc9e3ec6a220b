"""Pydantic schemas for marketplace ad moderation"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class ModerateAdRequest(BaseModel):
    action: str  # 'approve' or 'reject'
    reason: Optional[str] = None


class BulkModerateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ad_ids: List[int] = Field(alias="adIds")
    action: str
    reason: Optional[str] = None
