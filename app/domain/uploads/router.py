"""Upload router - presigned object storage URLs"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ...auth import get_current_actor
from ...services.storage import StorageService
from ...shared.access import Actor

router = APIRouter(prefix="/uploads", tags=["Uploads"])


class PresignRequest(BaseModel):
    purpose: str
    filename: str
    contentType: str


def get_storage_service() -> StorageService:
    return StorageService()


@router.post("/presign")
async def presign_upload(
    data: PresignRequest,
    actor: Actor = Depends(get_current_actor),
    storage: StorageService = Depends(get_storage_service),
):
    """Time-limited PUT URL; store the returned key on the owning record"""
    return storage.presign_upload(data.purpose, data.filename, data.contentType, actor.id)


@router.get("/download-url")
async def get_download_url(
    key: str = Query(...),
    filename: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
    storage: StorageService = Depends(get_storage_service),
):
    return storage.presign_download(key, filename)
