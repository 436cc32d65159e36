"""호출자 식별 스키마 정의.

Caller identity schema definitions.
The identity provider supplies an optional user id and a role for each
request; the service trusts it as given. Roles are compared as enum
members, never as strings.
"""

import enum

from pydantic import BaseModel, ConfigDict


class CallerRole(str, enum.Enum):
    """ID 공급자 역할 — GENERAL(일반), ADMIN(스태프), EMPLOYEE(직원)."""

    GENERAL = "GENERAL"
    ADMIN = "ADMIN"
    EMPLOYEE = "EMPLOYEE"


class Caller(BaseModel):
    """요청 호출자 — 익명이면 user_id와 role이 모두 None.

    Request caller resolved from the bearer token.
    Anonymous callers have neither a user id nor a role.

    Attributes:
        user_id: 사용자 ID (Identity provider subject, None = anonymous)
        role: 역할 (Caller role, None = anonymous)
    """

    model_config = ConfigDict(frozen=True)

    user_id: str | None = None
    role: CallerRole | None = None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None

    @property
    def is_staff(self) -> bool:
        # 스태프 = ADMIN 역할 (Staff means the ADMIN role only)
        return self.role is CallerRole.ADMIN

    def owns(self, reporter_id: str | None) -> bool:
        """호출자가 해당 이슈의 신고자인지 (Anonymous issues have no owner)."""
        return reporter_id is not None and self.user_id == reporter_id


ANONYMOUS: Caller = Caller()
