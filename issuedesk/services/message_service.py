"""이슈 메시지 스레드 서비스.

Message Thread service — Append-only conversation per issue with
per-message read tracking. Appends are serialized by the per-issue lock,
so positions are dense and timestamps never go backwards.
"""

import logging
from typing import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.database import utcnow
from issuedesk.models.issue import Issue, IssueMessage, IssueStatus, MessageSender
from issuedesk.schemas.auth import Caller
from issuedesk.services.locking import get_issue_or_404, locked_issue
from issuedesk.utils.exceptions import ForbiddenError, ValidationError

logger = logging.getLogger(__name__)


def sender_for(issue: Issue, caller: Caller) -> MessageSender:
    """호출자의 스레드 측을 결정합니다 — 스태프는 ADMIN, 신고자는 USER.

    Raises:
        ForbiddenError: 스태프도 신고자도 아님 (Caller is neither staff nor the reporter)
    """
    if caller.is_staff:
        return MessageSender.ADMIN
    if caller.owns(issue.reporter_id):
        return MessageSender.USER
    raise ForbiddenError("Only the reporter or staff can access this issue's messages")


def opposite(side: MessageSender) -> MessageSender:
    return MessageSender.USER if side is MessageSender.ADMIN else MessageSender.ADMIN


def unread_count_for(issue: Issue, side: MessageSender) -> int:
    """side 입장에서 읽지 않은 상대방 메시지 수 (Derived, never stored)."""
    other = opposite(side)
    return sum(1 for m in issue.messages if m.sender is other and not m.read_status)


def add_message(issue: Issue, sender: MessageSender, content: str) -> IssueMessage:
    """스레드 끝에 메시지를 추가합니다. 호출자는 이슈 잠금을 보유해야 합니다.

    Append to the thread of a locked issue. Also used by the technician
    service for in-band assignment notices.
    """
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message content is required")

    last = issue.messages[-1] if issue.messages else None
    now = utcnow()
    if last is not None and last.created_at > now:
        now = last.created_at

    message = IssueMessage(
        sender=sender,
        content=text,
        read_status=False,
        position=(last.position + 1) if last is not None else 1,
        created_at=now,
    )
    issue.messages.append(message)
    return message


class MessageService:

    async def append_message(
        self,
        db: AsyncSession,
        issue_id: UUID,
        caller: Caller,
        content: str,
    ) -> IssueMessage:
        """이슈에 메시지를 추가합니다.

        Append a message as the caller's side of the thread. Reporters may not
        message a CLOSED issue; staff always can.

        Raises:
            ValidationError: 빈 내용 (Empty content)
            ForbiddenError: 권한 없음 또는 종료된 이슈 (Not allowed, or reporter on CLOSED)
            NotFoundError: 이슈 없음 (Unknown issue)
        """
        async with locked_issue(db, issue_id) as issue:
            sender = sender_for(issue, caller)
            if sender is MessageSender.USER and issue.status is IssueStatus.CLOSED:
                raise ForbiddenError("This issue is closed and no longer accepts messages")
            message = add_message(issue, sender, content)
            await db.flush()
        logger.info("message %s appended to issue %s by %s", message.position, issue_id, sender.value)
        return message

    async def mark_read(
        self,
        db: AsyncSession,
        issue_id: UUID,
        message_ids: list[UUID],
        caller: Caller,
    ) -> int:
        """상대방 메시지를 읽음 처리합니다 — 모르는 ID는 무시.

        Mark the listed messages read when they were sent by the opposite
        party of the reader. Unknown ids, ids of other issues and the reader's
        own messages are ignored. Idempotent.

        Returns:
            int: 새로 읽음 처리된 메시지 수 (Messages newly marked read)
        """
        wanted = set(message_ids)
        async with locked_issue(db, issue_id, touch=False) as issue:
            other = opposite(sender_for(issue, caller))
            marked = 0
            for message in issue.messages:
                if message.id in wanted and message.sender is other and not message.read_status:
                    message.read_status = True
                    marked += 1
        return marked

    async def list_messages(
        self,
        db: AsyncSession,
        issue_id: UUID,
        caller: Caller,
    ) -> Sequence[IssueMessage]:
        """스레드를 추가 순서대로 반환합니다 (Thread in append order)."""
        issue = await get_issue_or_404(db, issue_id)
        sender_for(issue, caller)
        return list(issue.messages)

    def build_response(self, message: IssueMessage) -> dict:
        return {
            "id": str(message.id),
            "issue_id": str(message.issue_id),
            "position": message.position,
            "sender": message.sender.value,
            "content": message.content,
            "read_status": message.read_status,
            "created_at": message.created_at,
        }


message_service: MessageService = MessageService()
