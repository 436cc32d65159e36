"""이슈 Pydantic 스키마.

Issue request schemas. Field rules (non-blank text, 10-digit contact
numbers, image limits) are enforced by the services so that direct service
callers get the same ValidationError as HTTP callers.
"""

from uuid import UUID

from pydantic import BaseModel

from issuedesk.models.issue import IssueStatus


class IssueCreate(BaseModel):
    title: str
    description: str
    location: str
    address: str
    district: str
    province: str
    mobile_no: str
    whatsapp_no: str
    images: list[str] = []  # 스토리지 file_url 목록 (presigned 업로드 결과)


class IssueUpdate(BaseModel):
    """신고자 수정 요청 — PENDING 상태에서만 허용 (부분 업데이트)."""

    title: str | None = None
    description: str | None = None
    location: str | None = None
    address: str | None = None
    district: str | None = None
    province: str | None = None
    mobile_no: str | None = None
    whatsapp_no: str | None = None


class IssueStatusPatch(BaseModel):
    status: IssueStatus


class AdminNotesPatch(BaseModel):
    admin_notes: str | None = None  # 빈 값이면 메모 삭제 (Empty clears the notes)


class ImageAttach(BaseModel):
    images: list[str]


class MessageCreate(BaseModel):
    content: str


class MarkReadRequest(BaseModel):
    message_ids: list[UUID]


class TechnicianAssign(BaseModel):
    name: str
    phone: str
    message: str | None = None  # 신고자에게 보낼 안내 메시지 (Optional notice to the reporter)


class TechnicianRemove(BaseModel):
    message: str | None = None
