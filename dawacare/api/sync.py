"""
Sync API routes (desktop <-> cloud)
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from dawacare.database import get_db
from dawacare.dependencies import get_current_actor
from dawacare.permissions import Actor
from dawacare.schemas.sync import SyncDownloadResponse, SyncUploadRequest, SyncUploadResponse
from dawacare.services.sync_service import SyncService

router = APIRouter()


@router.get("", response_model=SyncDownloadResponse)
def download_changes(
    last_sync_at: Optional[datetime] = Query(None, description="Cursor from the previous download"),
    lastSyncAt: Optional[datetime] = Query(None, include_in_schema=False),
    branch_id: Optional[UUID] = Query(None),
    branchId: Optional[UUID] = Query(None, include_in_schema=False),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """
    Download rows changed since the cursor (full sync without one).
    Store `synced_at` from the response as the next cursor.
    """
    return SyncService.download(db, last_sync_at or lastSyncAt, branch_id or branchId)


@router.post("", response_model=SyncUploadResponse)
def upload_changes(
    body: SyncUploadRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """
    Upload offline sales and customers. Sales already known by invoice number
    are skipped; per-record failures are listed in `errors`.
    """
    return SyncService.upload(db, body, actor)
