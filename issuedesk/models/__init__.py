"""SQLAlchemy ORM 모델 패키지 — 모든 도메인 모델의 중앙 임포트 지점.

SQLAlchemy ORM models package — Central import point for all domain models.
Importing from this package ensures all models are registered with the
SQLAlchemy metadata, which is required for Alembic migrations and
relationship resolution.

Modules:
    issue: 이슈, 메시지, 기술자 배정 (Issues, thread messages, technician assignments)
"""

from issuedesk.models.issue import Issue, IssueMessage, IssueStatus, MessageSender, TechnicianAssignment

__all__ = [
    "Issue", "IssueMessage", "IssueStatus", "MessageSender", "TechnicianAssignment",
]
