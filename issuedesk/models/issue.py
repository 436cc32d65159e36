"""이슈 관련 SQLAlchemy ORM 모델 정의.

Issue-related SQLAlchemy ORM model definitions.
An issue is the aggregate root: it exclusively owns its message thread and
its technician assignment records, which are deleted together with it.

Tables:
    - issues: 신고된 이슈 (Reported infrastructure/service issues)
    - issue_messages: 이슈 메시지 스레드 (Append-only message thread per issue)
    - technician_assignments: 기술자 배정 (Active assignment + last removed one)
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from issuedesk.database import Base, UTCDateTime, utcnow


class IssueStatus(str, enum.Enum):
    """이슈 상태 — 모든 상태 간 전환 가능 (All states mutually reachable by staff)."""

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class MessageSender(str, enum.Enum):
    """메시지 발신 측 — USER(신고자) 또는 ADMIN(스태프)."""

    USER = "USER"
    ADMIN = "ADMIN"


class Issue(Base):
    """이슈 모델 — 신고자가 제출한 인프라/서비스 문제.

    Issue model — a single reported problem and the aggregate root of the
    subsystem. ``reporter_id`` is NULL for anonymous reports.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        reporter_id: 신고자 ID (Identity provider user id, NULL = anonymous)
        title: 제목 (Issue title)
        description: 상세 설명 (Issue description)
        location / address / district / province: 위치 정보 (Location fields)
        mobile_no / whatsapp_no: 연락처 10자리 (10-digit contact numbers)
        images: 이미지 URL 목록 (Ordered object-store references)
        status: 진행 상태 (PENDING / IN_PROGRESS / RESOLVED / CLOSED)
        admin_notes: 관리자 메모 (Staff notes, shown to reporter after PENDING)
        created_at: 생성 일시 UTC (Creation timestamp)
        updated_at: 수정 일시 UTC (Last mutation timestamp)

    Relationships:
        messages: 메시지 스레드 (Thread in append order, cascade delete)
        technicians: 기술자 배정 기록 (Active + last removed, cascade delete)
    """

    __tablename__ = "issues"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # 신고자 — 외부 ID 공급자의 사용자 ID (NULL이면 익명 신고)
    reporter_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str] = mapped_column(String(300), nullable=False)
    address: Mapped[str] = mapped_column(String(300), nullable=False)
    district: Mapped[str] = mapped_column(String(100), nullable=False)
    province: Mapped[str] = mapped_column(String(100), nullable=False)
    mobile_no: Mapped[str] = mapped_column(String(10), nullable=False)
    whatsapp_no: Mapped[str] = mapped_column(String(10), nullable=False)
    # 이미지 참조 목록 — 스토리지 URL만 저장 (Object-store URLs only, never bytes)
    images: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[IssueStatus] = mapped_column(
        Enum(IssueStatus, name="issue_status", native_enum=False, length=20),
        nullable=False,
        default=IssueStatus.PENDING,
        index=True,
    )
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    messages: Mapped[list["IssueMessage"]] = relationship(
        back_populates="issue",
        cascade="all, delete-orphan",
        order_by="IssueMessage.position",
        lazy="selectin",
    )
    technicians: Mapped[list["TechnicianAssignment"]] = relationship(
        back_populates="issue",
        cascade="all, delete-orphan",
        order_by="TechnicianAssignment.assigned_at",
        lazy="selectin",
    )

    @property
    def active_technician(self) -> "TechnicianAssignment | None":
        for record in self.technicians:
            if record.removed_at is None:
                return record
        return None

    @property
    def technician(self) -> "TechnicianAssignment | None":
        """현재 배정 또는 가장 최근 해제된 배정 (Active, else most recently removed)."""
        active = self.active_technician
        if active is not None:
            return active
        removed = [t for t in self.technicians if t.removed_at is not None]
        if not removed:
            return None
        return max(removed, key=lambda t: t.removed_at)


class IssueMessage(Base):
    """이슈 메시지 모델 — 신고자와 스태프 간 스레드 메시지.

    Issue message model. Messages are append-only; ``position`` is the
    1-based append index and ``created_at`` never decreases along it.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        issue_id: 소속 이슈 FK (Parent issue, CASCADE)
        position: 스레드 내 순번 (Append position, unique per issue)
        sender: 발신 측 (USER or ADMIN)
        content: 메시지 내용 (Non-empty text)
        read_status: 상대방 읽음 여부 (Read by the opposite party)
        created_at: 작성 일시 UTC (Append timestamp)
    """

    __tablename__ = "issue_messages"
    __table_args__ = (UniqueConstraint("issue_id", "position", name="uq_issue_messages_position"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    issue_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("issues.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    sender: Mapped[MessageSender] = mapped_column(
        Enum(MessageSender, name="message_sender", native_enum=False, length=10),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    read_status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    issue: Mapped[Issue] = relationship(back_populates="messages")


class TechnicianAssignment(Base):
    """기술자 배정 모델 — 이슈당 활성 배정은 최대 1건.

    Technician assignment model. At most one row per issue has
    ``removed_at IS NULL`` (enforced by a partial unique index); at most one
    removed row is kept as history.

    Attributes:
        id: 고유 식별자 UUID (Unique identifier)
        issue_id: 소속 이슈 FK (Parent issue, CASCADE)
        name: 기술자 이름 (Technician name)
        phone: 기술자 연락처 (Technician phone)
        assigned_at: 배정 일시 (Assignment timestamp)
        removed_at: 해제 일시 (Removal timestamp, NULL = active)
        removal_message: 해제 사유 (Optional removal note)
    """

    __tablename__ = "technician_assignments"
    __table_args__ = (
        Index(
            "uq_technician_assignments_active",
            "issue_id",
            unique=True,
            postgresql_where=text("removed_at IS NULL"),
            sqlite_where=text("removed_at IS NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    issue_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("issues.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    removed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    removal_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    issue: Mapped[Issue] = relationship(back_populates="technicians")
