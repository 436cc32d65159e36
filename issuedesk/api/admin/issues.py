"""관리자 이슈 라우터 — 스태프용 이슈 관리 API.

Admin Issue Router — Staff-facing issue management endpoints.
Status changes, admin notes, thread replies, technician assignment,
deletion and the full issue report export.
"""

from io import BytesIO
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.api.deps import require_staff
from issuedesk.config import settings
from issuedesk.database import get_db
from issuedesk.models.issue import IssueStatus
from issuedesk.schemas.auth import Caller
from issuedesk.schemas.common import MessageResponse, PaginatedResponse
from issuedesk.schemas.issue import (
    AdminNotesPatch,
    IssueStatusPatch,
    MarkReadRequest,
    MessageCreate,
    TechnicianAssign,
    TechnicianRemove,
)
from issuedesk.services.export_service import ExportFormat, export_service
from issuedesk.services.issue_service import issue_service
from issuedesk.services.message_service import message_service
from issuedesk.services.technician_service import technician_service
from issuedesk.utils.pagination import page_count

router: APIRouter = APIRouter()


@router.get("", response_model=PaginatedResponse)
async def list_issues(
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_staff)],
    status: IssueStatus | None = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1),
) -> dict:
    """전체 이슈 목록 조회 (상태 필터, 최신순)."""
    issues, total = await issue_service.list_all(db, caller, status, page, per_page)
    items = [issue_service.build_response(i, caller) for i in issues]
    return {"items": items, "total": total, "page": page, "per_page": per_page, "pages": page_count(total, per_page)}


@router.get("/export")
async def export_issues(
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_staff)],
    fmt: Annotated[ExportFormat, Query(alias="format")] = "csv",
) -> StreamingResponse:
    """전체 이슈 보고서 다운로드 (CSV/XLSX)."""
    rows = await export_service.export_rows(db, "all", caller)
    content, media_type, ext = export_service.render(rows, fmt)
    return StreamingResponse(
        BytesIO(content),
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename=issues-all.{ext}"},
    )


@router.get("/{issue_id}")
async def get_issue(
    issue_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_staff)],
) -> dict:
    issue = await issue_service.get_issue(db, issue_id, caller)
    return issue_service.build_response(issue, caller)


@router.patch("/{issue_id}/status")
async def change_status(
    issue_id: UUID,
    data: IssueStatusPatch,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_staff)],
) -> dict:
    """상태 변경. 같은 상태로의 변경은 409."""
    issue = await issue_service.change_status(db, issue_id, caller, data.status)
    return issue_service.build_response(issue, caller)


@router.patch("/{issue_id}/notes")
async def set_admin_notes(
    issue_id: UUID,
    data: AdminNotesPatch,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_staff)],
) -> dict:
    """관리자 메모 설정 (빈 값이면 삭제)."""
    issue = await issue_service.set_admin_notes(db, issue_id, caller, data.admin_notes)
    return issue_service.build_response(issue, caller)


@router.delete("/{issue_id}", response_model=MessageResponse)
async def delete_issue(
    issue_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_staff)],
) -> dict:
    """이슈 영구 삭제 — 상태와 무관."""
    await issue_service.delete_issue(db, issue_id, caller)
    return {"message": "Issue deleted"}


# === 메시지 (Messages) ===


@router.post("/{issue_id}/messages", status_code=201)
async def reply(
    issue_id: UUID,
    data: MessageCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_staff)],
) -> dict:
    """관리자 답변 전송 (CLOSED 이슈에도 가능)."""
    message = await message_service.append_message(db, issue_id, caller, data.content)
    return message_service.build_response(message)


@router.patch("/{issue_id}/messages/read", response_model=MessageResponse)
async def mark_messages_read(
    issue_id: UUID,
    data: MarkReadRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_staff)],
) -> dict:
    """신고자 메시지 읽음 처리."""
    marked = await message_service.mark_read(db, issue_id, data.message_ids, caller)
    return {"message": f"{marked} message(s) marked as read"}


# === 기술자 (Technician) ===


@router.post("/{issue_id}/technician")
async def assign_technician(
    issue_id: UUID,
    data: TechnicianAssign,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_staff)],
) -> dict:
    """기술자 배정. 기존 활성 배정은 자동 해제."""
    issue = await technician_service.assign(db, issue_id, caller, data.name, data.phone, data.message)
    return issue_service.build_response(issue, caller)


@router.delete("/{issue_id}/technician")
async def remove_technician(
    issue_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    caller: Annotated[Caller, Depends(require_staff)],
    data: TechnicianRemove | None = None,
) -> dict:
    """활성 기술자 배정 해제 (선택적으로 신고자에게 메시지)."""
    issue = await technician_service.remove(db, issue_id, caller, data.message if data else None)
    return issue_service.build_response(issue, caller)
