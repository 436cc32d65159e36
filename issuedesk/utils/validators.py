"""입력 값 검증 헬퍼.

Input validation helpers shared by the issue and technician services.
"""

import re

from issuedesk.utils.exceptions import ValidationError

# 연락처 — 정확히 10자리 숫자 (Exactly 10 ASCII digits)
_CONTACT_RE = re.compile(r"[0-9]{10}")


def is_contact_number(value: str | None) -> bool:
    return value is not None and _CONTACT_RE.fullmatch(value) is not None


def require_text(field: str, value: str | None) -> str:
    """공백 제거 후 비어 있으면 ValidationError (Blank text is rejected)."""
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    return text


def require_contact(field: str, value: str | None) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required")
    if not is_contact_number(text):
        raise ValidationError(f"{field} must be exactly 10 digits")
    return text
