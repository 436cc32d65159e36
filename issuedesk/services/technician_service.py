"""기술자 배정 서비스.

Technician Assignment service — Manages the single active technician slot
of an issue. Assigning over an active technician removes it first, and
only the most recently removed assignment is kept as history.
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.database import utcnow
from issuedesk.models.issue import Issue, MessageSender, TechnicianAssignment
from issuedesk.schemas.auth import Caller
from issuedesk.services.locking import locked_issue
from issuedesk.services.message_service import add_message
from issuedesk.utils.exceptions import ForbiddenError, NotFoundError, ValidationError
from issuedesk.utils.validators import is_contact_number

logger = logging.getLogger(__name__)


def _retire(issue: Issue, record: TechnicianAssignment, message: str | None) -> None:
    """활성 배정을 해제 기록으로 바꾸고, 그 이전 해제 기록은 버립니다."""
    for old in [t for t in issue.technicians if t.removed_at is not None]:
        issue.technicians.remove(old)
    record.removed_at = utcnow()
    record.removal_message = message


class TechnicianService:

    async def assign(
        self,
        db: AsyncSession,
        issue_id: UUID,
        caller: Caller,
        name: str,
        phone: str,
        message: str | None = None,
    ) -> Issue:
        """기술자를 배정합니다. 스태프 전용.

        Assign a technician. An already active technician is removed first
        (keeping it as the history entry). When ``message`` is given it is
        appended to the thread as an ADMIN message to inform the reporter.

        Raises:
            ForbiddenError: 스태프가 아님 (Caller is not staff)
            ValidationError: 이름/연락처 누락 또는 형식 오류 (Blank name or bad phone)
            NotFoundError: 이슈 없음 (Unknown issue)
        """
        if not caller.is_staff:
            raise ForbiddenError("Only staff can assign technicians")
        name = (name or "").strip()
        phone = (phone or "").strip()
        if not name:
            raise ValidationError("Technician name is required")
        if not phone:
            raise ValidationError("Technician phone is required")
        if not is_contact_number(phone):
            raise ValidationError("Technician phone must be exactly 10 digits")

        async with locked_issue(db, issue_id) as issue:
            active = issue.active_technician
            if active is not None:
                _retire(issue, active, f"Replaced by {name}")
                # 부분 유니크 인덱스 — 새 활성 행보다 해제가 먼저 반영되어야 함
                await db.flush()
            issue.technicians.append(TechnicianAssignment(name=name, phone=phone, assigned_at=utcnow()))
            if message and message.strip():
                add_message(issue, MessageSender.ADMIN, message)
            await db.flush()
        logger.info("technician %s assigned to issue %s", name, issue_id)
        return issue

    async def remove(
        self,
        db: AsyncSession,
        issue_id: UUID,
        caller: Caller,
        message: str | None = None,
    ) -> Issue:
        """활성 기술자 배정을 해제합니다. 스태프 전용.

        Raises:
            ForbiddenError: 스태프가 아님 (Caller is not staff)
            NotFoundError: 활성 배정 없음 (No active assignment)
        """
        if not caller.is_staff:
            raise ForbiddenError("Only staff can remove technicians")

        note = message.strip() if message and message.strip() else None
        async with locked_issue(db, issue_id) as issue:
            active = issue.active_technician
            if active is None:
                raise NotFoundError("No technician is currently assigned to this issue")
            _retire(issue, active, note)
            if note:
                add_message(issue, MessageSender.ADMIN, note)
            await db.flush()
        logger.info("technician removed from issue %s", issue_id)
        return issue

    def build_response(self, record: TechnicianAssignment | None) -> dict | None:
        if record is None:
            return None
        return {
            "name": record.name,
            "phone": record.phone,
            "assigned_at": record.assigned_at,
            "removed_at": record.removed_at,
            "removal_message": record.removal_message,
            "is_active": record.removed_at is None,
        }


technician_service: TechnicianService = TechnicianService()
