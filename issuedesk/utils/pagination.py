"""페이지네이션 유틸리티 모듈.

Pagination utility module for SQLAlchemy async queries.
Pages are 1-indexed; asking for a page past the end yields an empty item
list with the real total, never an error.
"""

import math
from typing import Any, Sequence

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.utils.exceptions import ValidationError


def page_count(total: int, per_page: int) -> int:
    """전체 페이지 수 — ceil(total / per_page), 항목이 없으면 0."""
    return math.ceil(total / per_page) if total else 0


def check_page_args(page: int, per_page: int) -> None:
    if page < 1:
        raise ValidationError("page must be >= 1")
    if per_page < 1:
        raise ValidationError("per_page must be >= 1")


async def paginate(
    db: AsyncSession,
    query: Select[Any],
    page: int = 1,
    per_page: int = 20,
) -> tuple[Sequence[Any], int]:
    """SQLAlchemy 쿼리에 대한 페이지네이션을 수행합니다.

    Execute a paginated SQLAlchemy query, returning items and total count.
    Runs two queries: one for the total count (via subquery) and one for
    the actual page of results with OFFSET/LIMIT.

    Args:
        db: 비동기 DB 세션 (Async database session)
        query: SQLAlchemy Select 쿼리 (Base query to paginate)
        page: 요청 페이지 번호, 1부터 시작 (Page number, 1-indexed)
        per_page: 페이지당 항목 수 (Items per page)

    Returns:
        tuple[Sequence[Any], int]: (항목 목록, 전체 개수) 튜플
    """
    check_page_args(page, per_page)

    # 전체 개수 조회 — 서브쿼리로 감싸서 COUNT 실행 (Count total via subquery)
    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total: int = (await db.execute(count_query)).scalar() or 0

    if (page - 1) * per_page >= total:
        return [], total

    # 페이지 항목 조회 — OFFSET/LIMIT 적용 (Fetch page items with offset/limit)
    offset: int = (page - 1) * per_page
    result = await db.execute(query.offset(offset).limit(per_page))
    items: Sequence[Any] = result.scalars().all()

    return items, total
