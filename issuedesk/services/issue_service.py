"""이슈 라이프사이클 서비스.

Issue lifecycle service — Business logic for the issue aggregate: creation,
reporter edits, staff status changes and notes, image attachment, deletion,
listing and response building. Every mutation of an existing issue runs
under ``locked_issue`` so operations on one issue are totally ordered.
"""

import logging
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.config import settings
from issuedesk.models.issue import Issue, IssueStatus, MessageSender
from issuedesk.repositories.issue_repository import issue_repository
from issuedesk.schemas.auth import Caller
from issuedesk.schemas.issue import IssueCreate, IssueUpdate
from issuedesk.services.locking import get_issue_or_404, locked_issue
from issuedesk.services.message_service import message_service, unread_count_for
from issuedesk.services.storage_service import FinalizedUploads, storage_service
from issuedesk.services.technician_service import technician_service
from issuedesk.utils.exceptions import ForbiddenError, NoOpError, ValidationError
from issuedesk.utils.validators import require_contact, require_text

logger = logging.getLogger(__name__)

# 신고자가 수정 가능한 필드 — 라벨은 오류 메시지용 (Reporter-editable fields → error label)
TEXT_FIELDS: dict[str, str] = {
    "title": "Title",
    "description": "Description",
    "location": "Location",
    "address": "Address",
    "district": "District",
    "province": "Province",
}
CONTACT_FIELDS: dict[str, str] = {
    "mobile_no": "Mobile number",
    "whatsapp_no": "WhatsApp number",
}


def _clean_fields(values: dict[str, str | None]) -> dict[str, str]:
    cleaned: dict[str, str] = {}
    for field, value in values.items():
        if field in TEXT_FIELDS:
            cleaned[field] = require_text(TEXT_FIELDS[field], value)
        elif field in CONTACT_FIELDS:
            cleaned[field] = require_contact(CONTACT_FIELDS[field], value)
    return cleaned


def _check_image_total(current: int, adding: int) -> None:
    if current + adding > settings.MAX_ISSUE_IMAGES:
        raise ValidationError(f"An issue can have at most {settings.MAX_ISSUE_IMAGES} images")


def _check_can_view(issue: Issue, caller: Caller) -> None:
    if not (caller.is_staff or caller.owns(issue.reporter_id)):
        raise ForbiddenError("You do not have access to this issue")


class IssueService:

    def build_response(self, issue: Issue, caller: Caller) -> dict:
        """호출자 관점의 이슈 스냅샷을 만듭니다.

        Build the caller's view of the issue. Admin notes are hidden from
        non-staff callers while the issue is still PENDING; ``unread_count``
        counts the opposite party's unread messages.
        """
        side = MessageSender.ADMIN if caller.is_staff else MessageSender.USER
        show_notes = caller.is_staff or issue.status is not IssueStatus.PENDING
        return {
            "id": str(issue.id),
            "reporter_id": issue.reporter_id,
            "title": issue.title,
            "description": issue.description,
            "location": issue.location,
            "address": issue.address,
            "district": issue.district,
            "province": issue.province,
            "mobile_no": issue.mobile_no,
            "whatsapp_no": issue.whatsapp_no,
            "images": list(issue.images or []),
            "status": issue.status.value,
            "admin_notes": issue.admin_notes if show_notes else None,
            "messages": [message_service.build_response(m) for m in issue.messages],
            "unread_count": unread_count_for(issue, side),
            "technician": technician_service.build_response(issue.technician),
            "created_at": issue.created_at,
            "updated_at": issue.updated_at,
        }

    # --- 조회 (Queries) ---

    async def list_all(
        self,
        db: AsyncSession,
        caller: Caller,
        status: IssueStatus | None = None,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[Sequence[Issue], int]:
        """전체 이슈 목록 (스태프 전용, 최신순)."""
        if not caller.is_staff:
            raise ForbiddenError("Only staff can list all issues")
        return await issue_repository.list_all(db, status, page, per_page)

    async def list_for_reporter(
        self,
        db: AsyncSession,
        caller: Caller,
        status: IssueStatus | None = None,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[Sequence[Issue], int]:
        """내 이슈 목록 (최신순)."""
        if caller.is_anonymous:
            raise ForbiddenError("Sign in to see your issues")
        return await issue_repository.list_for_reporter(db, caller.user_id, status, page, per_page)

    async def get_issue(
        self,
        db: AsyncSession,
        issue_id: UUID,
        caller: Caller,
    ) -> Issue:
        issue = await get_issue_or_404(db, issue_id)
        _check_can_view(issue, caller)
        return issue

    # --- 명령 (Commands) ---

    async def create_issue(
        self,
        db: AsyncSession,
        data: IssueCreate,
        caller: Caller,
    ) -> Issue:
        """이슈를 생성합니다. 익명 신고 허용.

        Create an issue in PENDING with an empty thread and no technician.
        Image references are copied to their final location before the row is
        written; a store failure aborts the whole call. The temp uploads are
        removed only after the commit, and the copies are removed if the
        insert fails.

        Raises:
            ValidationError: 필수 값 누락, 연락처 형식 오류, 이미지 초과
            DependencyError: 스토리지 실패 (Object store failed)
        """
        fields = _clean_fields(data.model_dump(include=set(TEXT_FIELDS) | set(CONTACT_FIELDS)))
        _check_image_total(0, len(data.images))
        uploads = await storage_service.finalize_many(list(data.images)) if data.images else FinalizedUploads()

        try:
            issue = await issue_repository.create(
                db,
                {
                    **fields,
                    "reporter_id": caller.user_id,
                    "images": uploads.urls,
                    "status": IssueStatus.PENDING,
                    "messages": [],
                    "technicians": [],
                },
            )
            await db.commit()
        except Exception:
            await db.rollback()
            await storage_service.discard(uploads)
            raise
        await storage_service.release_sources(uploads)
        logger.info("issue %s created (anonymous=%s)", issue.id, caller.is_anonymous)
        return issue

    async def edit_issue(
        self,
        db: AsyncSession,
        issue_id: UUID,
        caller: Caller,
        patch: IssueUpdate,
    ) -> Issue:
        """신고자가 PENDING 상태의 이슈를 수정합니다.

        Raises:
            ForbiddenError: 신고자가 아니거나 PENDING이 아님 (Not the reporter, or not PENDING)
            ValidationError: 빈 패치 또는 필드 형식 오류 (Empty patch or invalid field)
        """
        changes = patch.model_dump(exclude_unset=True)
        async with locked_issue(db, issue_id) as issue:
            if not caller.owns(issue.reporter_id):
                raise ForbiddenError("Only the reporter can edit this issue")
            if issue.status is not IssueStatus.PENDING:
                raise ForbiddenError("Issues can only be edited while pending")
            if not changes:
                raise ValidationError("Nothing to update")
            for field, value in _clean_fields(changes).items():
                setattr(issue, field, value)
        return issue

    async def change_status(
        self,
        db: AsyncSession,
        issue_id: UUID,
        caller: Caller,
        new_status: IssueStatus,
    ) -> Issue:
        """상태를 변경합니다. 스태프 전용, 전이 제한 없음.

        Raises:
            ForbiddenError: 스태프가 아님 (Caller is not staff)
            NoOpError: 현재 상태와 동일 (Status unchanged)
        """
        if not caller.is_staff:
            raise ForbiddenError("Only staff can change issue status")
        new_status = IssueStatus(new_status)
        async with locked_issue(db, issue_id) as issue:
            if issue.status is new_status:
                raise NoOpError(f"Issue is already {new_status.value}")
            previous = issue.status
            issue.status = new_status
        logger.info("issue %s status %s -> %s", issue_id, previous.value, new_status.value)
        return issue

    async def set_admin_notes(
        self,
        db: AsyncSession,
        issue_id: UUID,
        caller: Caller,
        notes: str | None,
    ) -> Issue:
        """관리자 메모를 설정합니다. 빈 값이면 삭제. 스태프 전용."""
        if not caller.is_staff:
            raise ForbiddenError("Only staff can edit admin notes")
        text = (notes or "").strip() or None
        async with locked_issue(db, issue_id) as issue:
            issue.admin_notes = text
        return issue

    async def attach_images(
        self,
        db: AsyncSession,
        issue_id: UUID,
        caller: Caller,
        file_urls: list[str],
    ) -> Issue:
        """이미지를 추가합니다 (추가 전용, 기존 이미지 유지).

        Append image references. All references are copied before any is
        recorded; a store failure leaves ``images`` unchanged and the temp
        uploads in place for a retry.

        Raises:
            ValidationError: 빈 목록 또는 최대 개수 초과 (Empty list or over the cap)
            ForbiddenError: 신고자/스태프가 아님 (Not the reporter or staff)
            DependencyError: 스토리지 실패/시간 초과 (Object store failed)
        """
        if not file_urls:
            raise ValidationError("At least one image is required")
        uploads = FinalizedUploads()
        try:
            async with locked_issue(db, issue_id) as issue:
                _check_can_view(issue, caller)
                _check_image_total(len(issue.images or []), len(file_urls))
                uploads = await storage_service.finalize_many(list(file_urls))
                issue.images = [*(issue.images or []), *uploads.urls]
        except Exception:
            await storage_service.discard(uploads)
            raise
        await storage_service.release_sources(uploads)
        return issue

    async def delete_issue(
        self,
        db: AsyncSession,
        issue_id: UUID,
        caller: Caller,
    ) -> None:
        """이슈를 영구 삭제합니다 — 스레드와 배정 기록도 함께 삭제.

        Allowed for staff at any status, or for the reporter while PENDING.

        Raises:
            ForbiddenError: 권한 없음 (Not allowed for this caller/status)
        """
        async with locked_issue(db, issue_id) as issue:
            if not caller.is_staff:
                if not caller.owns(issue.reporter_id):
                    raise ForbiddenError("Only the reporter or staff can delete this issue")
                if issue.status is not IssueStatus.PENDING:
                    raise ForbiddenError("Issues can only be deleted by the reporter while pending")
            await issue_repository.delete(db, issue)
        logger.info("issue %s deleted", issue_id)


issue_service: IssueService = IssueService()
