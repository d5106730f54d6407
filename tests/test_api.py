"""HTTP-level tests for the payments API."""

from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from zonepay.auth import Principal, get_principal
from zonepay.database import get_session
from zonepay.main import app


@pytest_asyncio.fixture
async def api(orchestrator, seeded_factory):
    async def override_session():
        async with seeded_factory() as session:
            yield session

    principal = {"value": Principal(id=1, role="manager")}

    app.state.orchestrator = orchestrator
    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_principal] = lambda: principal["value"]

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        client.principal = principal
        yield client

    app.dependency_overrides.clear()
    app.state.orchestrator = None


async def _create(api, **overrides):
    body = {"clientId": 7, "amount": 5000, "phoneNumber": "0788000111"}
    body.update(overrides)
    return await api.post("/api/payments/transactions", json=body)


class TestCreateEndpoint:
    @pytest.mark.asyncio
    async def test_create(self, api):
        response = await _create(api)

        assert response.status_code == 201
        txn = response.json()["transaction"]
        assert txn["status"] == "initiated"
        assert txn["phone_number"] == "250788000111"
        assert Decimal(txn["amount"]) == Decimal("5000")
        assert txn["external_ref"]

    @pytest.mark.asyncio
    async def test_provider_down_still_created(self, api, provider):
        provider.fail_requests = True

        response = await _create(api)

        assert response.status_code == 201
        assert response.json()["transaction"]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_missing_fields(self, api):
        response = await api.post("/api/payments/transactions", json={"amount": 10})

        assert response.status_code == 400
        assert "clientId" in response.json()["error"]

    @pytest.mark.asyncio
    async def test_unknown_client(self, api):
        response = await _create(api, clientId=999)

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_chief_flagged(self, api):
        api.principal["value"] = Principal(id=55, role="chief")

        response = await _create(api)

        txn = response.json()["transaction"]
        assert txn["is_paid_by_chief"] is True
        assert txn["paid_by_chief_id"] == 55


class TestAccess:
    @pytest.mark.asyncio
    async def test_forbidden_role(self, api):
        api.principal["value"] = Principal(id=3, role="driver")

        response = await api.get("/api/payments/transactions")

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_principal(self, api):
        del app.dependency_overrides[get_principal]

        response = await api.get("/api/payments/transactions")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_gateway_headers(self, api):
        del app.dependency_overrides[get_principal]

        response = await api.get(
            "/api/payments/transactions",
            headers={"X-Principal-Id": "7", "X-Principal-Role": "client"},
        )

        assert response.status_code == 200


class TestCompleteEndpoint:
    @pytest.mark.asyncio
    async def test_complete_then_gone(self, api, provider):
        txn = (await _create(api)).json()["transaction"]
        provider.fail_status = True

        response = await api.post(f"/api/payments/transactions/{txn['id']}/complete", json={"status": "success"})

        assert response.status_code == 200
        payment = response.json()["payment"]
        assert payment["status"] == "success"
        assert payment["transaction_id"] is None
        assert payment["external_ref"] == txn["external_ref"]

        again = await api.post(f"/api/payments/transactions/{txn['id']}/complete", json={"status": "success"})
        assert again.status_code == 404

        pending = (await api.get("/api/payments/transactions")).json()["transactions"]
        assert pending == []
        completed = (await api.get("/api/payments/completed")).json()["payments"]
        assert [p["id"] for p in completed] == [payment["id"]]
        assert completed[0]["client_username"] == "amahoro"

    @pytest.mark.asyncio
    async def test_complete_without_body_resolves_from_provider(self, api, provider):
        txn = (await _create(api)).json()["transaction"]
        provider.settle(txn["external_ref"], "SUCCESSFUL", "fin-9")

        response = await api.post(f"/api/payments/transactions/{txn['id']}/complete")

        payment = response.json()["payment"]
        assert payment["status"] == "success"
        assert payment["transaction_id"] == "fin-9"

    @pytest.mark.asyncio
    async def test_reference_mismatch(self, api):
        txn = (await _create(api)).json()["transaction"]

        response = await api.post(
            f"/api/payments/transactions/{txn['id']}/complete",
            json={"status": "success", "referenceId": "not-the-ref"},
        )

        assert response.status_code == 400
        assert len((await api.get("/api/payments/transactions")).json()["transactions"]) == 1


class TestProviderEndpoints:
    @pytest.mark.asyncio
    async def test_submit(self, api, provider):
        provider.fail_requests = True
        txn = (await _create(api)).json()["transaction"]
        provider.fail_requests = False

        response = await api.post(f"/api/payments/transactions/{txn['id']}/submit")

        assert response.status_code == 200
        assert response.json()["transaction"]["status"] == "initiated"

    @pytest.mark.asyncio
    async def test_status(self, api, provider):
        txn = (await _create(api)).json()["transaction"]

        response = await api.get(f"/api/payments/transactions/{txn['id']}/status")

        assert response.status_code == 200
        assert response.json()["status"] == "PENDING"

    @pytest.mark.asyncio
    async def test_status_provider_down(self, api, provider):
        txn = (await _create(api)).json()["transaction"]
        provider.fail_status = True

        response = await api.get(f"/api/payments/transactions/{txn['id']}/status")

        assert response.status_code == 502


class TestListings:
    @pytest.mark.asyncio
    async def test_invalid_filter(self, api):
        response = await api.get("/api/payments/transactions", params={"filter": "yesterday"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_today_and_mine(self, api):
        await _create(api, clientId=7)
        await _create(api, clientId=8)
        api.principal["value"] = Principal(id=8, role="supervisor")

        response = await api.get("/api/payments/transactions", params={"mine": "true", "filter": "today"})

        rows = response.json()["transactions"]
        assert [r["client_id"] for r in rows] == [8]

    @pytest.mark.asyncio
    async def test_clients(self, api):
        response = await api.get("/api/payments/clients")

        assert [c["username"] for c in response.json()["clients"]] == ["amahoro", "ineza", "no_phone"]


@pytest.mark.asyncio
async def test_health(api):
    response = await api.get("/health")

    assert response.json() == {"status": "ok", "provider": "mock_momo"}
