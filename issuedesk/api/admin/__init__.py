"""관리자 API 라우터 패키지 — 스태프 엔드포인트 통합.

Admin API Router package — Aggregates all staff-facing endpoints
into a single router for inclusion in the FastAPI application.

Included routers:
    - issues: 이슈 관리/상태/메모/답변/기술자 배정/내보내기
      (Issue management, status, notes, replies, technicians, export)
"""

from fastapi import APIRouter

from issuedesk.api.admin.issues import router as issues_router

admin_router: APIRouter = APIRouter()

admin_router.include_router(issues_router, prefix="/issues", tags=["Admin Issues"])
