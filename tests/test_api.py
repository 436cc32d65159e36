"""HTTP API 테스트 — 앱(신고자) / 관리자 엔드포인트.

HTTP API tests — role mapping from bearer tokens, reporter and staff flows
over /api/v1/app and /api/v1/admin, error status codes and exports.
"""

import csv
from io import StringIO

from httpx import AsyncClient

from issuedesk.services.export_service import XLSX_MEDIA_TYPE
from tests.conftest import auth_header, issue_payload, make_token

APP = "/api/v1/app"
ADMIN = "/api/v1/admin"


async def _create(client: AsyncClient, token: str | None = None, **overrides) -> dict:
    headers = auth_header(token) if token else {}
    res = await client.post(f"{APP}/issues", json=issue_payload(**overrides), headers=headers)
    assert res.status_code == 201, res.text
    return res.json()


class TestAuth:
    """토큰 → 호출자 역할 매핑 테스트."""

    async def test_health(self, client: AsyncClient):
        res = await client.get("/health")
        assert res.status_code == 200
        assert res.json() == {"status": "ok"}

    async def test_anonymous_create(self, client: AsyncClient):
        """토큰 없이 이슈 생성 가능 — 신고자 없음."""
        data = await _create(client)
        assert data["status"] == "PENDING"
        assert data["reporter_id"] is None
        assert data["messages"] == []
        assert data["technician"] is None

    async def test_anonymous_cannot_list(self, client: AsyncClient):
        res = await client.get(f"{APP}/issues")
        assert res.status_code == 401

    async def test_invalid_token(self, client: AsyncClient):
        res = await client.get(f"{APP}/issues", headers=auth_header("not-a-jwt"))
        assert res.status_code == 401

    async def test_expired_token(self, client: AsyncClient):
        from issuedesk.utils.jwt import create_access_token

        token = create_access_token({"sub": "user-x", "role": "GENERAL"}, expires_minutes=-1)
        res = await client.get(f"{APP}/issues", headers=auth_header(token))
        assert res.status_code == 401

    async def test_unknown_role(self, client: AsyncClient):
        res = await client.get(f"{APP}/issues", headers=auth_header(make_token("user-x", "SUPERUSER")))
        assert res.status_code == 401

    async def test_role_is_case_sensitive(self, client: AsyncClient):
        res = await client.get(f"{ADMIN}/issues", headers=auth_header(make_token("user-x", "admin")))
        assert res.status_code == 401

    async def test_employee_is_not_staff(self, client: AsyncClient, other_token):
        res = await client.get(f"{ADMIN}/issues", headers=auth_header(other_token))
        assert res.status_code == 403

    async def test_admin_endpoints_need_token(self, client: AsyncClient):
        res = await client.get(f"{ADMIN}/issues")
        assert res.status_code == 401


class TestReporterFlow:
    """신고자 흐름 테스트."""

    async def test_create_list_get(self, client: AsyncClient, reporter_token, other_token):
        created = await _create(client, reporter_token)
        assert created["reporter_id"] == "user-reporter"

        res = await client.get(f"{APP}/issues", headers=auth_header(reporter_token))
        assert res.status_code == 200
        page = res.json()
        assert page["total"] == 1
        assert page["pages"] == 1
        assert page["items"][0]["id"] == created["id"]

        res = await client.get(f"{APP}/issues/{created['id']}", headers=auth_header(other_token))
        assert res.status_code == 403

    async def test_page_past_end(self, client: AsyncClient, reporter_token):
        await _create(client, reporter_token)
        res = await client.get(f"{APP}/issues", params={"page": 3, "per_page": 10}, headers=auth_header(reporter_token))
        assert res.status_code == 200
        assert res.json()["items"] == []
        assert res.json()["total"] == 1

    async def test_invalid_field_is_422(self, client: AsyncClient, reporter_token):
        res = await client.post(
            f"{APP}/issues", json=issue_payload(mobile_no="12345"), headers=auth_header(reporter_token)
        )
        assert res.status_code == 422

    async def test_edit_and_delete_pending(self, client: AsyncClient, reporter_token):
        created = await _create(client, reporter_token)
        res = await client.put(
            f"{APP}/issues/{created['id']}", json={"district": "Gampaha"}, headers=auth_header(reporter_token)
        )
        assert res.status_code == 200
        assert res.json()["district"] == "Gampaha"

        res = await client.delete(f"{APP}/issues/{created['id']}", headers=auth_header(reporter_token))
        assert res.status_code == 200
        res = await client.get(f"{APP}/issues/{created['id']}", headers=auth_header(reporter_token))
        assert res.status_code == 404

    async def test_unknown_issue_is_404(self, client: AsyncClient, reporter_token):
        res = await client.get(
            f"{APP}/issues/00000000-0000-0000-0000-000000000000", headers=auth_header(reporter_token)
        )
        assert res.status_code == 404

    async def test_export_csv(self, client: AsyncClient, reporter_token, other_token):
        await _create(client, reporter_token, title="Mine")
        await _create(client, other_token, title="Theirs")
        res = await client.get(f"{APP}/issues/export", headers=auth_header(reporter_token))
        assert res.status_code == 200
        assert res.headers["content-type"].startswith("text/csv")
        assert "attachment" in res.headers["content-disposition"]
        rows = list(csv.reader(StringIO(res.text)))
        assert len(rows) == 2
        assert rows[1][1] == "Mine"

    async def test_export_xlsx(self, client: AsyncClient, reporter_token):
        await _create(client, reporter_token)
        res = await client.get(f"{APP}/issues/export", params={"format": "xlsx"}, headers=auth_header(reporter_token))
        assert res.status_code == 200
        assert res.headers["content-type"] == XLSX_MEDIA_TYPE
        assert res.content[:2] == b"PK"

    async def test_export_unknown_format(self, client: AsyncClient, reporter_token):
        res = await client.get(f"{APP}/issues/export", params={"format": "pdf"}, headers=auth_header(reporter_token))
        assert res.status_code == 422


class TestStaffFlow:
    """스태프 흐름 테스트 — 상태, 메모, 답변, 기술자."""

    async def test_full_lifecycle(self, client: AsyncClient, reporter_token, admin_token):
        issue = await _create(client, reporter_token)
        iid = issue["id"]
        reporter = auth_header(reporter_token)
        staff = auth_header(admin_token)

        res = await client.post(f"{APP}/issues/{iid}/messages", json={"content": "Any update?"}, headers=reporter)
        assert res.status_code == 201
        assert res.json()["sender"] == "USER"

        res = await client.patch(f"{ADMIN}/issues/{iid}/status", json={"status": "IN_PROGRESS"}, headers=staff)
        assert res.status_code == 200
        assert res.json()["status"] == "IN_PROGRESS"
        assert res.json()["unread_count"] == 1

        res = await client.patch(f"{ADMIN}/issues/{iid}/status", json={"status": "IN_PROGRESS"}, headers=staff)
        assert res.status_code == 409

        res = await client.put(f"{APP}/issues/{iid}", json={"title": "Changed"}, headers=reporter)
        assert res.status_code == 403

        res = await client.post(
            f"{ADMIN}/issues/{iid}/technician",
            json={"name": "Kasun", "phone": "0770000000", "message": "Kasun is on the way"},
            headers=staff,
        )
        assert res.status_code == 200
        assert res.json()["technician"]["name"] == "Kasun"
        assert res.json()["technician"]["is_active"] is True

        res = await client.get(f"{APP}/issues/{iid}", headers=reporter)
        body = res.json()
        assert body["unread_count"] == 1
        admin_message = body["messages"][-1]
        assert admin_message["sender"] == "ADMIN"

        res = await client.patch(
            f"{APP}/issues/{iid}/messages/read", json={"message_ids": [admin_message["id"]]}, headers=reporter
        )
        assert res.status_code == 200
        res = await client.get(f"{APP}/issues/{iid}", headers=reporter)
        assert res.json()["unread_count"] == 0

        res = await client.request(
            "DELETE", f"{ADMIN}/issues/{iid}/technician", json={"message": "reassigning"}, headers=staff
        )
        assert res.status_code == 200
        assert res.json()["technician"]["removed_at"] is not None
        res = await client.delete(f"{ADMIN}/issues/{iid}/technician", headers=staff)
        assert res.status_code == 404

        res = await client.patch(f"{ADMIN}/issues/{iid}/status", json={"status": "CLOSED"}, headers=staff)
        assert res.status_code == 200
        res = await client.post(f"{APP}/issues/{iid}/messages", json={"content": "Hello?"}, headers=reporter)
        assert res.status_code == 403
        res = await client.post(f"{ADMIN}/issues/{iid}/messages", json={"content": "Fixed."}, headers=staff)
        assert res.status_code == 201

        res = await client.delete(f"{ADMIN}/issues/{iid}", headers=staff)
        assert res.status_code == 200

    async def test_notes_visibility(self, client: AsyncClient, reporter_token, admin_token):
        iid = (await _create(client, reporter_token))["id"]
        res = await client.patch(
            f"{ADMIN}/issues/{iid}/notes", json={"admin_notes": "Check drainage"}, headers=auth_header(admin_token)
        )
        assert res.json()["admin_notes"] == "Check drainage"

        res = await client.get(f"{APP}/issues/{iid}", headers=auth_header(reporter_token))
        assert res.json()["admin_notes"] is None

    async def test_status_filter_and_export_all(self, client: AsyncClient, reporter_token, other_token, admin_token):
        first = await _create(client, reporter_token)
        await _create(client, other_token)
        staff = auth_header(admin_token)
        await client.patch(f"{ADMIN}/issues/{first['id']}/status", json={"status": "RESOLVED"}, headers=staff)

        res = await client.get(f"{ADMIN}/issues", params={"status": "RESOLVED"}, headers=staff)
        assert res.json()["total"] == 1

        res = await client.get(f"{ADMIN}/issues/export", headers=staff)
        assert res.status_code == 200
        assert len(list(csv.reader(StringIO(res.text)))) == 3

    async def test_invalid_status_value(self, client: AsyncClient, reporter_token, admin_token):
        iid = (await _create(client, reporter_token))["id"]
        res = await client.patch(
            f"{ADMIN}/issues/{iid}/status", json={"status": "REOPENED"}, headers=auth_header(admin_token)
        )
        assert res.status_code == 422
