"""스토리지 라우터 — 이슈 이미지 업로드 URL 발급 + 로컬 업로드 API.

Storage Router — Issues presigned upload URLs for issue images (S3 or local).
로컬 모드에서는 PUT 엔드포인트로 파일을 직접 받아 temp/ 아래에 저장합니다.
Anonymous reporters may upload too, since anonymous issue creation is allowed.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from issuedesk.api.deps import get_caller
from issuedesk.schemas.auth import Caller
from issuedesk.services.storage_service import storage_service
from issuedesk.utils.exceptions import NotFoundError

router: APIRouter = APIRouter()


class PresignedUrlRequest(BaseModel):
    filename: str
    content_type: str


class PresignedUrlResponse(BaseModel):
    upload_url: str
    file_url: str


@router.post("/presigned-url", response_model=PresignedUrlResponse)
async def create_presigned_url(
    data: PresignedUrlRequest,
    caller: Annotated[Caller, Depends(get_caller)],
) -> dict:
    """이미지용 presigned upload URL을 생성합니다 (jpeg/png만 허용)."""
    result = storage_service.generate_presigned_upload_url(
        filename=data.filename,
        content_type=data.content_type,
    )
    return {"upload_url": result["upload_url"], "file_url": result["file_url"]}


@router.put("/upload/{key:path}")
async def upload_local(
    key: str,
    request: Request,
) -> dict:
    """로컬 모드 전용 — 업로드 본문을 temp/ 키에 저장합니다."""
    if not storage_service.is_local:
        raise NotFoundError("Direct upload is only available in local storage mode")
    body = await request.body()
    storage_service.save_local(key, body)
    return {"ok": True}
