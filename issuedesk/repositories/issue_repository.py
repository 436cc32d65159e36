"""이슈 레포지토리.

Issue repository — Handles issues DB queries: locked lookup for mutations,
newest-first paginated listing, and export snapshots.
"""

from typing import Sequence

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.models.issue import Issue, IssueStatus
from issuedesk.repositories.base import BaseRepository


class IssueRepository(BaseRepository[Issue]):

    def __init__(self) -> None:
        super().__init__(Issue)

    def _newest_first(self, status: IssueStatus | None = None) -> Select:
        query: Select = select(Issue).order_by(Issue.created_at.desc(), Issue.id.desc())
        if status is not None:
            query = query.where(Issue.status == status)
        return query

    async def list_all(
        self,
        db: AsyncSession,
        status: IssueStatus | None = None,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[Sequence[Issue], int]:
        return await self.get_paginated(db, self._newest_first(status), page, per_page)

    async def list_for_reporter(
        self,
        db: AsyncSession,
        reporter_id: str,
        status: IssueStatus | None = None,
        page: int = 1,
        per_page: int = 20,
    ) -> tuple[Sequence[Issue], int]:
        query: Select = self._newest_first(status).where(Issue.reporter_id == reporter_id)
        return await self.get_paginated(db, query, page, per_page)

    async def get_for_export(
        self,
        db: AsyncSession,
        reporter_id: str | None = None,
    ) -> Sequence[Issue]:
        """내보내기용 스냅샷 — reporter_id가 있으면 해당 신고자의 이슈만.

        Snapshot for export, read without per-issue locks.
        """
        query: Select = self._newest_first()
        if reporter_id is not None:
            query = query.where(Issue.reporter_id == reporter_id)
        result = await db.execute(query)
        return result.scalars().all()


issue_repository: IssueRepository = IssueRepository()
