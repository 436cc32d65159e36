"""앱 이슈 라우터 — 신고자용 이슈 API.

App Issue Router — Reporter-facing issue endpoints.
Anyone (even anonymous) can file an issue; identified reporters can list,
edit, delete and message their own issues and download their report.
"""

from io import BytesIO
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.api.deps import get_caller, require_user
from issuedesk.config import settings
from issuedesk.database import get_db
from issuedesk.models.issue import IssueStatus
from issuedesk.schemas.auth import Caller
from issuedesk.schemas.common import MessageResponse, PaginatedResponse
from issuedesk.schemas.issue import ImageAttach, IssueCreate, IssueUpdate, MarkReadRequest, MessageCreate
from issuedesk.services.export_service import ExportFormat, export_service
from issuedesk.services.issue_service import issue_service
from issuedesk.services.message_service import message_service
from issuedesk.utils.pagination import page_count

router: APIRouter = APIRouter()


@router.get("", response_model=PaginatedResponse)
async def list_my_issues(
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_user)],
    status: IssueStatus | None = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1),
) -> dict:
    """내 이슈 목록 조회 (최신순)."""
    issues, total = await issue_service.list_for_reporter(db, caller, status, page, per_page)
    items = [issue_service.build_response(i, caller) for i in issues]
    return {"items": items, "total": total, "page": page, "per_page": per_page, "pages": page_count(total, per_page)}


# === 내보내기 (must be registered BEFORE /{issue_id}) ===


@router.get("/export")
async def export_my_issues(
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_user)],
    fmt: Annotated[ExportFormat, Query(alias="format")] = "csv",
) -> StreamingResponse:
    """내 이슈 보고서를 CSV 또는 XLSX로 다운로드합니다."""
    rows = await export_service.export_rows(db, "mine", caller)
    content, media_type, ext = export_service.render(rows, fmt)
    return StreamingResponse(
        BytesIO(content),
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename=issue-report.{ext}"},
    )


@router.post("", status_code=201)
async def create_issue(
    data: IssueCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(get_caller)],
) -> dict:
    """이슈 생성. 로그인 없이도 가능 (익명 신고)."""
    issue = await issue_service.create_issue(db, data, caller)
    return issue_service.build_response(issue, caller)


@router.get("/{issue_id}")
async def get_my_issue(
    issue_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_user)],
) -> dict:
    """내 이슈 상세 조회."""
    issue = await issue_service.get_issue(db, issue_id, caller)
    return issue_service.build_response(issue, caller)


@router.put("/{issue_id}")
async def edit_my_issue(
    issue_id: UUID,
    data: IssueUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_user)],
) -> dict:
    """이슈 수정. PENDING 상태에서 신고자만 가능."""
    issue = await issue_service.edit_issue(db, issue_id, caller, data)
    return issue_service.build_response(issue, caller)


@router.delete("/{issue_id}", response_model=MessageResponse)
async def delete_my_issue(
    issue_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_user)],
) -> dict:
    """이슈 삭제. PENDING 상태에서 신고자만 가능."""
    await issue_service.delete_issue(db, issue_id, caller)
    return {"message": "Issue deleted"}


@router.post("/{issue_id}/images")
async def attach_images(
    issue_id: UUID,
    data: ImageAttach,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_user)],
) -> dict:
    """업로드된 이미지를 이슈에 추가합니다 (최대 MAX_ISSUE_IMAGES장)."""
    issue = await issue_service.attach_images(db, issue_id, caller, data.images)
    return issue_service.build_response(issue, caller)


# === 메시지 (Messages) ===


@router.get("/{issue_id}/messages")
async def list_messages(
    issue_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_user)],
) -> list[dict]:
    messages = await message_service.list_messages(db, issue_id, caller)
    return [message_service.build_response(m) for m in messages]


@router.post("/{issue_id}/messages", status_code=201)
async def append_message(
    issue_id: UUID,
    data: MessageCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_user)],
) -> dict:
    """메시지 전송. 종료(CLOSED)된 이슈에는 불가."""
    message = await message_service.append_message(db, issue_id, caller, data.content)
    return message_service.build_response(message)


@router.patch("/{issue_id}/messages/read", response_model=MessageResponse)
async def mark_messages_read(
    issue_id: UUID,
    data: MarkReadRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_user)],
) -> dict:
    """관리자 메시지 읽음 처리."""
    marked = await message_service.mark_read(db, issue_id, data.message_ids, caller)
    return {"message": f"{marked} message(s) marked as read"}
