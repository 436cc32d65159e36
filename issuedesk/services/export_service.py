"""이슈 보고서 내보내기 서비스.

Reporting/Export service — Projects issues into a flat table with a fixed
column set and renders it as CSV or XLSX. Downstream consumers rely on the
column identity and order, so EXPORT_COLUMNS must only ever be appended to.
"""

import csv
from datetime import datetime
from io import BytesIO, StringIO
from typing import Any, Literal

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from sqlalchemy.ext.asyncio import AsyncSession

from issuedesk.models.issue import Issue
from issuedesk.repositories.issue_repository import issue_repository
from issuedesk.schemas.auth import Caller
from issuedesk.utils.exceptions import ForbiddenError, ValidationError

ExportScope = Literal["mine", "all"]
ExportFormat = Literal["csv", "xlsx"]

XLSX_MEDIA_TYPE: str = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# (컬럼 키, 헤더) — 순서 고정 (Fixed order; keys are the stable identity)
EXPORT_COLUMNS: tuple[tuple[str, str], ...] = (
    ("id", "Issue ID"),
    ("title", "Title"),
    ("status", "Status"),
    ("location", "Location"),
    ("address", "Address"),
    ("district", "District"),
    ("province", "Province"),
    ("mobile_no", "Mobile No"),
    ("whatsapp_no", "WhatsApp No"),
    ("created_at", "Created At"),
    ("updated_at", "Updated At"),
    ("technician_name", "Technician"),
)


def _fmt_time(value: datetime | None) -> str:
    return value.isoformat() if value is not None else ""


# 스프레드시트가 수식으로 해석하는 선행 문자 (Leading characters spreadsheets read as formulas)
_FORMULA_PREFIXES: tuple[str, ...] = ("=", "+", "-", "@", "\t", "\r")


def _csv_safe(value: str) -> str:
    if value and value.startswith(_FORMULA_PREFIXES):
        return "'" + value
    return value


def issue_to_row(issue: Issue) -> tuple[str, ...]:
    active = issue.active_technician
    values: dict[str, Any] = {
        "id": str(issue.id),
        "title": issue.title,
        "status": issue.status.value,
        "location": issue.location,
        "address": issue.address,
        "district": issue.district,
        "province": issue.province,
        "mobile_no": issue.mobile_no,
        "whatsapp_no": issue.whatsapp_no,
        "created_at": _fmt_time(issue.created_at),
        "updated_at": _fmt_time(issue.updated_at),
        "technician_name": active.name if active is not None else "",
    }
    return tuple(values[key] for key, _ in EXPORT_COLUMNS)


class ExportService:

    async def export_rows(
        self,
        db: AsyncSession,
        scope: ExportScope,
        caller: Caller,
    ) -> list[tuple[str, ...]]:
        """범위에 맞는 이슈를 행 목록으로 투영합니다 (잠금 없이 스냅샷 조회).

        Args:
            scope: "mine" — 호출자의 이슈만 / "all" — 전체 (스태프 전용)

        Raises:
            ForbiddenError: 익명 호출자의 mine, 비스태프의 all
            ValidationError: 알 수 없는 범위 (Unknown scope)
        """
        if scope == "mine":
            if caller.is_anonymous:
                raise ForbiddenError("Sign in to export your issues")
            issues = await issue_repository.get_for_export(db, reporter_id=caller.user_id)
        elif scope == "all":
            if not caller.is_staff:
                raise ForbiddenError("Only staff can export all issues")
            issues = await issue_repository.get_for_export(db)
        else:
            raise ValidationError(f"Unknown export scope: {scope}")
        return [issue_to_row(issue) for issue in issues]

    @staticmethod
    def header() -> list[str]:
        return [label for _, label in EXPORT_COLUMNS]

    @staticmethod
    def render_csv(rows: list[tuple[str, ...]]) -> str:
        buf = StringIO()
        writer = csv.writer(buf)
        writer.writerow(ExportService.header())
        writer.writerows([_csv_safe(value) for value in row] for row in rows)
        return buf.getvalue()

    @staticmethod
    def render_xlsx(rows: list[tuple[str, ...]]) -> bytes:
        """XLSX 보고서를 생성합니다 (헤더 스타일 적용)."""
        wb = Workbook()
        ws = wb.active
        ws.title = "Issues"

        header_font = Font(bold=True, color="FFFFFF", size=11)
        header_fill = PatternFill(start_color="1F6FEB", end_color="1F6FEB", fill_type="solid")
        for col_idx, label in enumerate(ExportService.header(), 1):
            cell = ws.cell(row=1, column=col_idx, value=label)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")

        # 모든 값은 텍스트로 기록 — 수식으로 평가되지 않음 (Cells are always text, never formulas)
        for row_idx, row in enumerate(rows, 2):
            for col_idx, value in enumerate(row, 1):
                cell = ws.cell(row=row_idx, column=col_idx, value=value)
                cell.data_type = "s"

        ws.freeze_panes = "A2"
        buf = BytesIO()
        wb.save(buf)
        return buf.getvalue()

    def render(self, rows: list[tuple[str, ...]], fmt: ExportFormat) -> tuple[bytes, str, str]:
        """(본문, media type, 확장자) — HTTP 다운로드용 (For HTTP downloads)."""
        if fmt == "xlsx":
            return self.render_xlsx(rows), XLSX_MEDIA_TYPE, "xlsx"
        return self.render_csv(rows).encode("utf-8"), "text/csv; charset=utf-8", "csv"


export_service: ExportService = ExportService()
