"""이슈 라이프사이클 서비스 테스트.

Issue lifecycle service tests — creation, reporter edits, status changes,
admin notes visibility, deletion rules.
"""

import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.models.issue import Issue, IssueMessage, IssueStatus, TechnicianAssignment
from issuedesk.schemas.issue import IssueCreate, IssueUpdate
from issuedesk.services.issue_service import issue_service
from issuedesk.services.message_service import message_service
from issuedesk.services.technician_service import technician_service
from issuedesk.utils.exceptions import ForbiddenError, NoOpError, NotFoundError, ValidationError
from tests.conftest import issue_payload


async def _create(db: AsyncSession, caller, **overrides) -> Issue:
    return await issue_service.create_issue(db, IssueCreate(**issue_payload(**overrides)), caller)


async def _reload(session_factory, issue_id: uuid.UUID) -> Issue | None:
    """새 세션으로 다시 조회 (Fresh read, unaffected by rolled-back sessions)."""
    async with session_factory() as session:
        return await session.get(Issue, issue_id)


class TestCreateIssue:
    """이슈 생성 테스트."""

    async def test_create_pending_with_empty_thread(self, db: AsyncSession, reporter):
        """새 이슈는 PENDING, 메시지 없음, 기술자 없음."""
        issue = await _create(db, reporter)
        assert issue.status is IssueStatus.PENDING
        assert issue.messages == []
        assert issue.technician is None
        assert issue.reporter_id == reporter.user_id
        assert issue.images == []
        assert issue.created_at.tzinfo is not None

    async def test_anonymous_create(self, db: AsyncSession, anonymous):
        issue = await _create(db, anonymous)
        assert issue.reporter_id is None
        assert issue.status is IssueStatus.PENDING

    async def test_fields_are_trimmed(self, db: AsyncSession, reporter):
        issue = await _create(db, reporter, title="  Pothole  ", mobile_no=" 0711234567 ")
        assert issue.title == "Pothole"
        assert issue.mobile_no == "0711234567"

    @pytest.mark.parametrize("field", ["title", "description", "location", "address", "district", "province"])
    async def test_blank_text_rejected(self, db: AsyncSession, reporter, field):
        with pytest.raises(ValidationError):
            await _create(db, reporter, **{field: "   "})

    @pytest.mark.parametrize("number", ["071123456", "07112345678", "07112345a7", ""])
    async def test_bad_contact_rejected(self, db: AsyncSession, reporter, number):
        with pytest.raises(ValidationError):
            await _create(db, reporter, mobile_no=number)

    async def test_too_many_images_rejected(self, db: AsyncSession, reporter):
        urls = [f"http://localhost:8000/uploads/temp/issues/x/{i}.png" for i in range(6)]
        with pytest.raises(ValidationError):
            await _create(db, reporter, images=urls)
        count = (await db.execute(select(func.count()).select_from(Issue))).scalar()
        assert count == 0


class TestEditIssue:
    """신고자 수정 테스트 — PENDING 상태에서만."""

    async def test_reporter_edits_pending(self, db: AsyncSession, reporter):
        issue = await _create(db, reporter)
        before = issue.updated_at
        edited = await issue_service.edit_issue(db, issue.id, reporter, IssueUpdate(title="Big pothole"))
        assert edited.title == "Big pothole"
        assert edited.description == "Deep hole on Main St"
        assert edited.updated_at >= before

    async def test_other_user_cannot_edit(self, db: AsyncSession, reporter, other_user):
        issue = await _create(db, reporter)
        with pytest.raises(ForbiddenError):
            await issue_service.edit_issue(db, issue.id, other_user, IssueUpdate(title="Mine now"))

    async def test_edit_in_progress_forbidden_for_everyone(self, db: AsyncSession, session_factory, reporter, admin):
        """IN_PROGRESS 이슈 수정은 신고자 포함 누구도 불가."""
        issue_id = (await _create(db, reporter)).id
        await issue_service.change_status(db, issue_id, admin, IssueStatus.IN_PROGRESS)
        for caller in (reporter, admin):
            with pytest.raises(ForbiddenError):
                await issue_service.edit_issue(db, issue_id, caller, IssueUpdate(title="Changed"))
        fresh = await _reload(session_factory, issue_id)
        assert fresh.title == "Pothole"

    async def test_empty_patch_rejected(self, db: AsyncSession, reporter):
        issue = await _create(db, reporter)
        with pytest.raises(ValidationError):
            await issue_service.edit_issue(db, issue.id, reporter, IssueUpdate())

    async def test_invalid_patch_leaves_issue_unchanged(self, db: AsyncSession, session_factory, reporter):
        issue_id = (await _create(db, reporter)).id
        with pytest.raises(ValidationError):
            await issue_service.edit_issue(
                db, issue_id, reporter, IssueUpdate(title="New title", whatsapp_no="123")
            )
        fresh = await _reload(session_factory, issue_id)
        assert fresh.title == "Pothole"
        assert fresh.whatsapp_no == "0711234567"

    async def test_unknown_issue(self, db: AsyncSession, reporter):
        with pytest.raises(NotFoundError):
            await issue_service.edit_issue(db, uuid.uuid4(), reporter, IssueUpdate(title="x"))


class TestStatusAndNotes:
    """상태 변경 및 관리자 메모 테스트."""

    async def test_any_transition_allowed(self, db: AsyncSession, reporter, admin):
        issue = await _create(db, reporter)
        for target in (IssueStatus.CLOSED, IssueStatus.PENDING, IssueStatus.RESOLVED, IssueStatus.IN_PROGRESS):
            issue = await issue_service.change_status(db, issue.id, admin, target)
            assert issue.status is target

    async def test_same_status_is_noop_error(self, db: AsyncSession, reporter, admin):
        issue = await _create(db, reporter)
        with pytest.raises(NoOpError):
            await issue_service.change_status(db, issue.id, admin, IssueStatus.PENDING)

    async def test_non_staff_cannot_change_status(self, db: AsyncSession, reporter, other_user):
        issue = await _create(db, reporter)
        for caller in (reporter, other_user):
            with pytest.raises(ForbiddenError):
                await issue_service.change_status(db, issue.id, caller, IssueStatus.RESOLVED)

    async def test_notes_hidden_from_reporter_while_pending(self, db: AsyncSession, reporter, admin):
        issue = await _create(db, reporter)
        issue = await issue_service.set_admin_notes(db, issue.id, admin, "Crew scheduled")
        assert issue_service.build_response(issue, admin)["admin_notes"] == "Crew scheduled"
        assert issue_service.build_response(issue, reporter)["admin_notes"] is None

        issue = await issue_service.change_status(db, issue.id, admin, IssueStatus.IN_PROGRESS)
        assert issue_service.build_response(issue, reporter)["admin_notes"] == "Crew scheduled"

    async def test_blank_notes_clear(self, db: AsyncSession, reporter, admin):
        issue = await _create(db, reporter)
        await issue_service.set_admin_notes(db, issue.id, admin, "note")
        issue = await issue_service.set_admin_notes(db, issue.id, admin, "   ")
        assert issue.admin_notes is None

    async def test_notes_staff_only(self, db: AsyncSession, reporter):
        issue = await _create(db, reporter)
        with pytest.raises(ForbiddenError):
            await issue_service.set_admin_notes(db, issue.id, reporter, "sneaky")


class TestDeleteIssue:
    """이슈 삭제 테스트 — 스레드/배정 기록도 함께 삭제."""

    async def test_reporter_deletes_pending(self, db: AsyncSession, reporter):
        issue = await _create(db, reporter)
        await issue_service.delete_issue(db, issue.id, reporter)
        with pytest.raises(NotFoundError):
            await issue_service.get_issue(db, issue.id, reporter)

    async def test_reporter_cannot_delete_after_pending(self, db: AsyncSession, reporter, admin):
        issue = await _create(db, reporter)
        await issue_service.change_status(db, issue.id, admin, IssueStatus.RESOLVED)
        with pytest.raises(ForbiddenError):
            await issue_service.delete_issue(db, issue.id, reporter)

    async def test_staff_delete_cascades(self, db: AsyncSession, reporter, admin):
        issue = await _create(db, reporter)
        await message_service.append_message(db, issue.id, reporter, "Any update?")
        await technician_service.assign(db, issue.id, admin, "Kasun", "0770000000")
        await issue_service.change_status(db, issue.id, admin, IssueStatus.CLOSED)

        await issue_service.delete_issue(db, issue.id, admin)

        messages = (await db.execute(select(func.count()).select_from(IssueMessage))).scalar()
        technicians = (await db.execute(select(func.count()).select_from(TechnicianAssignment))).scalar()
        assert messages == 0
        assert technicians == 0

    async def test_other_user_cannot_delete(self, db: AsyncSession, reporter, other_user):
        issue = await _create(db, reporter)
        with pytest.raises(ForbiddenError):
            await issue_service.delete_issue(db, issue.id, other_user)

    async def test_anonymous_issue_has_no_owner(self, db: AsyncSession, anonymous, reporter):
        issue = await _create(db, anonymous)
        with pytest.raises(ForbiddenError):
            await issue_service.get_issue(db, issue.id, reporter)
        with pytest.raises(ForbiddenError):
            await issue_service.delete_issue(db, issue.id, anonymous)
