"""이슈별 직렬화 잠금 모듈.

Per-issue serialization locks.
Every mutating operation on one issue runs while holding that issue's lock,
so concurrent callers on the same issue observe a total order. Different
issues never share a lock. Entries are dropped once nobody holds or waits
on them.

Within one process this lock is authoritative; across worker processes the
services additionally re-read the issue row with ``SELECT ... FOR UPDATE``.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID


class IssueLockRegistry:
    """이슈 ID → asyncio.Lock 레지스트리 (참조 카운트로 정리)."""

    def __init__(self) -> None:
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._users: dict[UUID, int] = {}

    @asynccontextmanager
    async def hold(self, issue_id: UUID) -> AsyncIterator[None]:
        """해당 이슈의 잠금을 획득하여 블록 종료 시 해제합니다.

        Acquire the lock for ``issue_id`` for the duration of the block.
        """
        lock = self._locks.get(issue_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[issue_id] = lock
        self._users[issue_id] = self._users.get(issue_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._users[issue_id] - 1
            if remaining:
                self._users[issue_id] = remaining
            else:
                del self._users[issue_id]
                del self._locks[issue_id]

    def __len__(self) -> int:
        return len(self._locks)


# 전역 레지스트리 싱글턴 — Process-wide registry singleton
issue_locks: IssueLockRegistry = IssueLockRegistry()
