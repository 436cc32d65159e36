"""앱 API 라우터 패키지 — 신고자용 엔드포인트 통합.

App API Router package — Aggregates all reporter-facing endpoints
into a single router for inclusion in the FastAPI application.

Included routers:
    - issues: 이슈 신고/조회/수정/메시지/내보내기 (Issue reporting, thread, export)
    - storage: 이미지 업로드 URL 발급 (Image upload URLs)
"""

from fastapi import APIRouter

from issuedesk.api.app.issues import router as issues_router
from issuedesk.api.app.storage import router as storage_router

app_router: APIRouter = APIRouter()

app_router.include_router(issues_router, prefix="/issues", tags=["App Issues"])
app_router.include_router(storage_router, prefix="/storage", tags=["Storage"])
