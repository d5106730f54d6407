"""Protocol tests for the MoMo collection client against a fake provider."""

import base64
import json
import uuid
from decimal import Decimal

import httpx
import pytest

from zonepay.config import MomoSettings
from zonepay.engine.errors import ProviderAuthError, ProviderRequestError, ProviderValidationError
from zonepay.providers.momo import MomoClient, format_amount
from zonepay.providers.token_cache import TokenCache

BASE_URL = "https://sandbox.momodeveloper.mtn.com"


class FakeMomo:
    """Minimal stand-in for the provider's HTTP API."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_responses: list[httpx.Response] = []
        self.pay_responses: list[httpx.Response] = []
        self.status_response = httpx.Response(
            200,
            json={"status": "SUCCESSFUL", "financialTransactionId": "fin-123", "externalId": "ext-1"},
        )
        self.tokens_issued = 0

    def paths(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/collection/token/":
            if self.token_responses:
                return self.token_responses.pop(0)
            self.tokens_issued += 1
            return httpx.Response(
                200,
                json={"access_token": f"tok-{self.tokens_issued}", "token_type": "access_token", "expires_in": 3600},
            )
        if path == "/collection/v1_0/requesttopay" and request.method == "POST":
            if self.pay_responses:
                return self.pay_responses.pop(0)
            return httpx.Response(202)
        if path.startswith("/collection/v1_0/requesttopay/") and request.method == "GET":
            return self.status_response
        return httpx.Response(404, json={"code": "RESOURCE_NOT_FOUND"})


def make_client(fake, **overrides) -> MomoClient:
    values = {
        "base_url": BASE_URL + "/",
        "api_user": "api-user",
        "api_key": "api-key",
        "primary_key": "sub-key",
        "target_env": "sandbox",
        "default_currency": "EUR",
        "default_country_code": "250",
        "max_retries": 0,
        "retry_base_delay": 0,
    }
    values.update(overrides)
    settings = MomoSettings(_env_file=None, **values)
    return MomoClient(settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(fake)))


class TestAccessToken:
    @pytest.mark.asyncio
    async def test_basic_auth_exchange(self):
        fake = FakeMomo()
        client = make_client(fake)

        token = await client.get_access_token()

        assert token == "tok-1"
        request = fake.requests[0]
        assert request.method == "POST"
        assert str(request.url) == f"{BASE_URL}/collection/token/"
        expected = base64.b64encode(b"api-user:api-key").decode()
        assert request.headers["Authorization"] == f"Basic {expected}"
        assert request.headers["Ocp-Apim-Subscription-Key"] == "sub-key"

    @pytest.mark.asyncio
    async def test_non_2xx_is_auth_error(self):
        fake = FakeMomo()
        fake.token_responses.append(httpx.Response(401, json={"error": "login_failed"}))
        client = make_client(fake)

        with pytest.raises(ProviderAuthError) as exc:
            await client.get_access_token()
        assert exc.value.provider_status == 401
        assert exc.value.body == {"error": "login_failed"}

    @pytest.mark.asyncio
    async def test_missing_token_field(self):
        fake = FakeMomo()
        fake.token_responses.append(httpx.Response(200, json={"token_type": "access_token"}))
        client = make_client(fake)

        with pytest.raises(ProviderAuthError, match="missing"):
            await client.get_access_token()

    @pytest.mark.asyncio
    async def test_each_call_is_a_fresh_exchange(self):
        fake = FakeMomo()
        client = make_client(fake)

        assert await client.get_access_token() == "tok-1"
        assert await client.get_access_token() == "tok-2"


class TestRequestToPay:
    @pytest.mark.asyncio
    async def test_request_shape(self):
        fake = FakeMomo()
        client = make_client(fake)

        response = await client.request_to_pay(
            amount=Decimal("5000.00"),
            currency=None,
            phone_number="0788000111",
            external_id="invoice-42",
            payer_message="Payment for 2026-10",
            payee_note=None,
        )

        uuid.UUID(response.reference_id)
        pay = fake.paths("/collection/v1_0/requesttopay")[0]
        assert pay.headers["Authorization"] == "Bearer tok-1"
        assert pay.headers["X-Reference-Id"] == response.reference_id
        assert pay.headers["X-Target-Environment"] == "sandbox"
        assert pay.headers["Ocp-Apim-Subscription-Key"] == "sub-key"
        assert "X-Callback-Url" not in pay.headers
        assert json.loads(pay.content) == {
            "amount": "5000",
            "currency": "EUR",
            "externalId": "invoice-42",
            "payer": {"partyIdType": "MSISDN", "partyId": "250788000111"},
            "payerMessage": "Payment for 2026-10",
            "payeeNote": "Payment",
        }

    @pytest.mark.asyncio
    async def test_supplied_reference_and_callback(self):
        fake = FakeMomo()
        client = make_client(fake, callback_host="https://zonepay.example/callback")

        response = await client.request_to_pay(
            amount=12.5, currency="RWF", phone_number="250788000111", reference_id="ref-fixed"
        )

        assert response.reference_id == "ref-fixed"
        pay = fake.paths("/collection/v1_0/requesttopay")[0]
        assert pay.headers["X-Reference-Id"] == "ref-fixed"
        assert pay.headers["X-Callback-Url"] == "https://zonepay.example/callback"
        body = json.loads(pay.content)
        assert body["amount"] == "12.5"
        assert body["externalId"] == "ref-fixed"

    @pytest.mark.asyncio
    async def test_error_carries_status_and_body(self):
        fake = FakeMomo()
        fake.pay_responses.append(httpx.Response(400, json={"code": "PAYER_NOT_FOUND"}))
        client = make_client(fake, max_retries=3)

        with pytest.raises(ProviderRequestError) as exc:
            await client.request_to_pay(amount=100, currency="EUR", phone_number="0788000111")

        assert exc.value.provider_status == 400
        assert exc.value.body == {"code": "PAYER_NOT_FOUND"}
        assert len(fake.paths("/collection/v1_0/requesttopay")) == 1

    @pytest.mark.asyncio
    async def test_retry_reuses_reference_id(self):
        fake = FakeMomo()
        fake.pay_responses.append(httpx.Response(503, text="Service Unavailable"))
        client = make_client(fake, max_retries=2)

        response = await client.request_to_pay(amount=100, currency="EUR", phone_number="0788000111")

        attempts = fake.paths("/collection/v1_0/requesttopay")
        assert len(attempts) == 2
        assert {r.headers["X-Reference-Id"] for r in attempts} == {response.reference_id}

    @pytest.mark.asyncio
    async def test_retry_after_accepted_timeout(self):
        seen = []

        def accepted_then_timed_out(request):
            if request.url.path == "/collection/token/":
                return httpx.Response(200, json={"access_token": "tok"})
            reference_id = request.headers["X-Reference-Id"]
            if reference_id in seen:
                return httpx.Response(409, json={"code": "RESOURCE_ALREADY_EXIST"})
            seen.append(reference_id)
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(accepted_then_timed_out, max_retries=2)

        response = await client.request_to_pay(amount=100, currency="EUR", phone_number="0788000111")

        assert seen == [response.reference_id]

    @pytest.mark.asyncio
    async def test_resubmitted_reference_is_accepted(self):
        fake = FakeMomo()
        fake.pay_responses.append(httpx.Response(409, json={"code": "RESOURCE_ALREADY_EXIST"}))
        client = make_client(fake, max_retries=3)

        response = await client.request_to_pay(
            amount=100, currency="EUR", phone_number="0788000111", reference_id="ref-sent-before"
        )

        assert response.reference_id == "ref-sent-before"
        assert len(fake.paths("/collection/v1_0/requesttopay")) == 1

    @pytest.mark.asyncio
    async def test_timeout_is_request_error(self):
        def timeout(request):
            if request.url.path == "/collection/token/":
                return httpx.Response(200, json={"access_token": "tok"})
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(timeout)

        with pytest.raises(ProviderRequestError, match="timed out") as exc:
            await client.request_to_pay(amount=100, currency="EUR", phone_number="0788000111")
        assert exc.value.retriable

    @pytest.mark.asyncio
    async def test_token_reused_across_operations(self):
        fake = FakeMomo()
        client = make_client(fake)

        await client.request_to_pay(amount=100, currency="EUR", phone_number="0788000111")
        await client.request_to_pay(amount=200, currency="EUR", phone_number="0788000111")

        assert len(fake.paths("/collection/token/")) == 1

    @pytest.mark.asyncio
    async def test_unauthorized_drops_cached_token(self):
        fake = FakeMomo()
        fake.pay_responses.append(httpx.Response(401, json={"message": "Access token expired"}))
        client = make_client(fake)

        with pytest.raises(ProviderRequestError):
            await client.request_to_pay(amount=100, currency="EUR", phone_number="0788000111")
        await client.request_to_pay(amount=100, currency="EUR", phone_number="0788000111")

        assert len(fake.paths("/collection/token/")) == 2
        assert fake.paths("/collection/v1_0/requesttopay")[-1].headers["Authorization"] == "Bearer tok-2"

    @pytest.mark.asyncio
    async def test_token_failure_surfaces_as_auth_error(self):
        fake = FakeMomo()
        fake.token_responses.append(httpx.Response(500, text="boom"))
        client = make_client(fake)

        with pytest.raises(ProviderAuthError):
            await client.request_to_pay(amount=100, currency="EUR", phone_number="0788000111")
        assert fake.paths("/collection/v1_0/requesttopay") == []


class TestGetStatus:
    @pytest.mark.asyncio
    async def test_status_lookup(self):
        fake = FakeMomo()
        client = make_client(fake)

        status = await client.get_status("ref-1")

        request = fake.paths("/collection/v1_0/requesttopay/ref-1")[0]
        assert request.method == "GET"
        assert request.headers["Authorization"] == "Bearer tok-1"
        assert request.headers["X-Target-Environment"] == "sandbox"
        assert request.headers["Ocp-Apim-Subscription-Key"] == "sub-key"
        assert status.status == "SUCCESSFUL"
        assert status.financial_transaction_id == "fin-123"
        assert status.raw["externalId"] == "ext-1"

    @pytest.mark.asyncio
    async def test_failed_with_reason(self):
        fake = FakeMomo()
        fake.status_response = httpx.Response(
            200, json={"status": "FAILED", "reason": {"code": "APPROVAL_REJECTED", "message": "Rejected"}}
        )
        client = make_client(fake)

        status = await client.get_status("ref-2")

        assert status.status == "FAILED"
        assert status.financial_transaction_id is None
        assert status.reason == "Rejected"

    @pytest.mark.asyncio
    async def test_empty_reference_rejected_locally(self):
        fake = FakeMomo()
        client = make_client(fake)

        with pytest.raises(ProviderValidationError):
            await client.get_status("")
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_not_found(self):
        fake = FakeMomo()
        fake.status_response = httpx.Response(404, json={"code": "RESOURCE_NOT_FOUND"})
        client = make_client(fake)

        with pytest.raises(ProviderRequestError) as exc:
            await client.get_status("missing")
        assert exc.value.provider_status == 404


class TestTokenCache:
    @pytest.mark.asyncio
    async def test_refreshes_only_after_expiry(self):
        now = [1000.0]
        issued = []

        async def fetch():
            issued.append(len(issued) + 1)
            return f"tok-{len(issued)}", 120

        cache = TokenCache(fetch, skew=20, clock=lambda: now[0])

        assert await cache.get() == "tok-1"
        now[0] += 99
        assert await cache.get() == "tok-1"
        now[0] += 2
        assert await cache.get() == "tok-2"

        cache.invalidate()
        assert await cache.get() == "tok-3"


def test_format_amount():
    assert format_amount(Decimal("5000.00")) == "5000"
    assert format_amount(Decimal("12.50")) == "12.5"
    assert format_amount(250) == "250"
