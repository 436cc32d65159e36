"""이슈 집합체 잠금 헬퍼.

Issue aggregate locking helper shared by the lifecycle, thread and
technician services. A mutation runs entirely inside ``locked_issue``:
per-issue lock → row re-read with FOR UPDATE → caller mutates → commit →
lock release. Any exception rolls the transaction back, so no operation
is partially applied.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.database import utcnow
from issuedesk.models.issue import Issue
from issuedesk.repositories.issue_repository import issue_repository
from issuedesk.utils.exceptions import NotFoundError
from issuedesk.utils.locks import issue_locks

ISSUE_NOT_FOUND: str = "Issue not found"


async def get_issue_or_404(db: AsyncSession, issue_id: UUID) -> Issue:
    issue = await issue_repository.get_by_id(db, issue_id)
    if issue is None:
        raise NotFoundError(ISSUE_NOT_FOUND)
    return issue


@asynccontextmanager
async def locked_issue(
    db: AsyncSession,
    issue_id: UUID,
    touch: bool = True,
) -> AsyncIterator[Issue]:
    """잠금 상태의 이슈를 제공하고 블록 종료 시 커밋합니다.

    Yield the freshly re-read issue under its lock and commit on exit.

    Args:
        db: 비동기 데이터베이스 세션 (Async database session)
        issue_id: 대상 이슈 UUID (Target issue)
        touch: True이면 커밋 전에 updated_at 갱신 (Refresh updated_at before commit)

    Raises:
        NotFoundError: 이슈가 없음 (Issue does not exist)
    """
    async with issue_locks.hold(issue_id):
        try:
            issue = await issue_repository.get_by_id(db, issue_id, for_update=True)
            if issue is None:
                raise NotFoundError(ISSUE_NOT_FOUND)
            yield issue
            if touch and issue in db:
                issue.updated_at = utcnow()
            await db.commit()
        except Exception:
            await db.rollback()
            raise
