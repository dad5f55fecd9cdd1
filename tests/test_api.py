"""API endpoint tests.

Tests the FastAPI endpoints against an in-memory database.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from decimal import Decimal
from uuid import uuid4

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from paystub_engine.api.app import create_app
from paystub_engine.api.dependencies import get_db_session

from conftest import ALICE_ID, BOB_ID, CAROL_ID, COMPANY_ID, PERIOD_ID

HEADERS = {
    "X-Company-ID": str(COMPANY_ID),
    "X-User-ID": "payroll-admin@example.com",
    "User-Agent": "api-tests",
}


class UnavailableRenderer:
    provider_name = "unavailable_pdf"
    accessible = True

    async def render(self, record, disclaimers):
        raise RuntimeError("renderer unavailable")


def _override_sessions(app, session_factory) -> None:
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_session


@pytest_asyncio.fixture
async def client(seeded_db, session_factory, calculations) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client whose requests use the seeded test database."""
    await seeded_db.commit()

    app = create_app(calculations=calculations)
    _override_sessions(app, session_factory)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def broken_renderer_client(
    seeded_db, session_factory, calculations
) -> AsyncGenerator[AsyncClient, None]:
    """Client for an app whose PDF renderer always fails."""
    await seeded_db.commit()

    app = create_app(calculations=calculations, renderer=UnavailableRenderer())
    _override_sessions(app, session_factory)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def _generate(client: AsyncClient, *employee_ids) -> list[str]:
    response = await client.post(
        "/api/v1/pay-stubs/generate",
        headers=HEADERS,
        json={
            "payroll_period_id": str(PERIOD_ID),
            "employee_ids": [str(e) for e in employee_ids],
        },
    )
    assert response.status_code == 200, response.text
    return response.json()["pay_stub_ids"]


class UnreachableDatabase:
    async def execute(self, statement):
        raise ConnectionRefusedError("database is down")


class TestHealthEndpoints:
    async def test_health_reports_compliance_and_providers(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"
        assert data["compliance_version"] == "2024.1"
        assert data["state_rule_count"] >= 4
        assert data["providers"] == {"renderer": "pdf_sandbox", "email": "email_sandbox"}

    async def test_readiness_and_liveness(self, client: AsyncClient):
        assert (await client.get("/ready")).json()["status"] == "ready"
        assert (await client.get("/live")).json()["status"] == "alive"

    async def test_unreachable_database(self, calculations):
        app = create_app(calculations=calculations)

        async def override_session():
            yield UnreachableDatabase()

        app.dependency_overrides[get_db_session] = override_session
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            health = await client.get("/health")
            ready = await client.get("/ready")

        assert health.status_code == 200
        assert health.json()["status"] == "degraded"
        assert health.json()["database"] == "unreachable"
        assert ready.status_code == 503


class TestGenerateEndpoint:
    async def test_generate_reports_per_employee_errors(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/pay-stubs/generate",
            headers=HEADERS,
            json={
                "payroll_period_id": str(PERIOD_ID),
                "employee_ids": [str(ALICE_ID), str(BOB_ID), str(CAROL_ID)],
            },
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["success"] is False
        assert data["generated_count"] == 2
        assert data["failed_count"] == 1
        assert data["errors"][0]["employee_id"] == str(CAROL_ID)
        assert data["errors"][0]["error_code"] == "MISSING_REQUIRED_FIELD"

    async def test_generated_stub_records_creator(self, client: AsyncClient):
        (stub_id,) = await _generate(client, ALICE_ID)

        response = await client.get(f"/api/v1/pay-stubs/{stub_id}", headers=HEADERS)

        assert response.json()["created_by"] == "payroll-admin@example.com"

    async def test_unknown_period_is_404(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/pay-stubs/generate",
            headers=HEADERS,
            json={"payroll_period_id": str(uuid4())},
        )

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_requires_company_header(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/pay-stubs/generate",
            headers={"X-User-ID": "payroll-admin@example.com"},
            json={"payroll_period_id": str(PERIOD_ID)},
        )

        assert response.status_code == 400
        assert "X-Company-ID" in response.json()["detail"]

    async def test_requires_user_header(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/pay-stubs/generate",
            headers={"X-Company-ID": str(COMPANY_ID)},
            json={"payroll_period_id": str(PERIOD_ID)},
        )

        assert response.status_code == 400
        assert "X-User-ID" in response.json()["detail"]


class TestPayStubEndpoints:
    async def test_search(self, client: AsyncClient):
        await _generate(client, ALICE_ID, BOB_ID)

        response = await client.get(
            "/api/v1/pay-stubs", headers=HEADERS, params={"employee_name": "okafor"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        item = data["items"][0]
        assert item["employee_name"] == "Bob Okafor"
        assert Decimal(item["gross_pay"]) == Decimal("5468.75")
        assert item["metadata"]["compliance_version"]

    async def test_search_rejects_unknown_status(self, client: AsyncClient):
        response = await client.get(
            "/api/v1/pay-stubs", headers=HEADERS, params={"status": "archived"}
        )

        assert response.status_code == 422

    async def test_view_records_access(self, client: AsyncClient):
        (stub_id,) = await _generate(client, ALICE_ID)

        response = await client.get(f"/api/v1/pay-stubs/{stub_id}", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["status"] == "viewed"

        logs = await client.get(f"/api/v1/pay-stubs/{stub_id}/access-logs", headers=HEADERS)
        assert logs.status_code == 200
        entries = logs.json()
        assert len(entries) == 1
        assert entries[0]["access_type"] == "view"
        assert entries[0]["accessed_by"] == "payroll-admin@example.com"
        assert entries[0]["user_agent"] == "api-tests"

    async def test_view_unknown_stub_is_404(self, client: AsyncClient):
        response = await client.get(f"/api/v1/pay-stubs/{uuid4()}", headers=HEADERS)

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_download(self, client: AsyncClient):
        (stub_id,) = await _generate(client, BOB_ID)

        response = await client.get(f"/api/v1/pay-stubs/{stub_id}/download", headers=HEADERS)

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert f'filename="pay-stub-{stub_id}.pdf"' in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF")

    async def test_failed_render_leaves_stub_in_error(self, broken_renderer_client: AsyncClient):
        (stub_id,) = await _generate(broken_renderer_client, BOB_ID)

        response = await broken_renderer_client.get(
            f"/api/v1/pay-stubs/{stub_id}/download", headers=HEADERS
        )

        assert response.status_code == 502
        assert response.json()["code"] == "PDF_RENDER_FAILED"

        listed = await broken_renderer_client.get(
            "/api/v1/pay-stubs", headers=HEADERS, params={"status": "error"}
        )
        data = listed.json()
        assert data["total"] == 1
        assert data["items"][0]["id"] == stub_id
        assert "renderer unavailable" in data["items"][0]["metadata"]["last_error"]

    async def test_metrics(self, client: AsyncClient):
        await _generate(client, ALICE_ID, BOB_ID)

        response = await client.get("/api/v1/pay-stubs/metrics", headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["total_generated"] == 2
        assert data["employee_count"] == 2
        assert Decimal(data["average_gross_pay"]) == Decimal("5468.75")

    async def test_metrics_requires_both_range_ends(self, client: AsyncClient):
        response = await client.get(
            "/api/v1/pay-stubs/metrics", headers=HEADERS, params={"start": "2024-03-01"}
        )

        assert response.status_code == 400


class TestBatchEndpoint:
    async def test_compliance_check_batch(self, client: AsyncClient):
        (stub_id,) = await _generate(client, ALICE_ID)
        missing = str(uuid4())

        response = await client.post(
            "/api/v1/pay-stubs/batch",
            headers=HEADERS,
            json={"operation": "compliance_check", "pay_stub_ids": [stub_id, missing]},
        )

        assert response.status_code == 200, response.text
        data = response.json()
        assert data["operation"] == "compliance_check"
        assert data["succeeded_count"] == 1
        assert data["failed_count"] == 1
        first, second = data["results"]
        assert first["data"]["is_compliant"] is True
        assert second["pay_stub_id"] == missing
        assert second["error_code"] == "NOT_FOUND"

    async def test_regenerate_batch(self, client: AsyncClient):
        (stub_id,) = await _generate(client, BOB_ID)

        response = await client.post(
            "/api/v1/pay-stubs/batch",
            headers=HEADERS,
            json={"operation": "regenerate", "pay_stub_ids": [stub_id], "generate_pdf": True},
        )

        assert response.status_code == 200, response.text
        result = response.json()["results"][0]
        assert result["success"] is True
        assert result["data"]["status"] == "pdf_ready"
        assert result["data"]["regeneration_count"] == 1

    async def test_unknown_operation_is_rejected(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/pay-stubs/batch",
            headers=HEADERS,
            json={"operation": "archive", "pay_stub_ids": [str(uuid4())]},
        )

        assert response.status_code == 422

    async def test_empty_id_list_is_rejected(self, client: AsyncClient):
        response = await client.post(
            "/api/v1/pay-stubs/batch",
            headers=HEADERS,
            json={"operation": "download", "pay_stub_ids": []},
        )

        assert response.status_code == 422


class TestComplianceEndpoints:
    async def test_check_with_state_override(self, client: AsyncClient):
        (stub_id,) = await _generate(client, ALICE_ID)

        response = await client.get(
            f"/api/v1/pay-stubs/{stub_id}/compliance",
            headers=HEADERS,
            params={"state_code": "ZZ"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["federal_compliance"] is True
        assert data["state_compliance"] is False

    async def test_report(self, client: AsyncClient):
        (stub_id,) = await _generate(client, ALICE_ID)

        response = await client.get(
            f"/api/v1/pay-stubs/{stub_id}/compliance/report", headers=HEADERS
        )

        assert response.status_code == 200
        data = response.json()
        assert data["result"]["is_compliant"] is True
        assert data["compliance_summary"]["total_issues"] == 0
        assert any("Labor Code Section 226" in d for d in data["required_disclaimers"])

    async def test_list_states(self, client: AsyncClient):
        response = await client.get("/api/v1/compliance/states")

        assert response.status_code == 200
        assert {"CA", "NY", "IL", "WA"} <= set(response.json())

    async def test_state_requirements(self, client: AsyncClient):
        response = await client.get("/api/v1/compliance/states/ca")

        assert response.status_code == 200
        data = response.json()
        assert data["state_code"] == "CA"
        assert data["requires_sick_leave_balance"] is True
        assert "sick_leave_balance" in data["all_required_fields"]

    async def test_unknown_state_is_404(self, client: AsyncClient):
        response = await client.get("/api/v1/compliance/states/zz")

        assert response.status_code == 404
