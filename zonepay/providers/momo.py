"""
MTN MoMo collection API client.

Implements the three calls the payment flow needs:

  POST /collection/token/                          Basic auth -> access_token
  POST /collection/v1_0/requesttopay               submit a collection request
  GET  /collection/v1_0/requesttopay/{referenceId}  query its status

The reference id travels in the X-Reference-Id header and is generated
client-side, so a transport-level retry re-sends the same instruction
instead of creating a second one.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Optional

import httpx

from zonepay.config import MomoSettings
from zonepay.engine.errors import (
    ProviderAuthError,
    ProviderRequestError,
    ProviderValidationError,
)
from zonepay.engine.phone import normalize_phone
from zonepay.engine.retry import is_retriable_status, with_retry
from zonepay.providers.base import PaymentProvider, ProviderStatus, RequestToPayResponse
from zonepay.providers.token_cache import TokenCache

logger = logging.getLogger("zonepay.momo")

DEFAULT_MESSAGE = "Payment"
# RESOURCE_ALREADY_EXIST: the X-Reference-Id was used before.
DUPLICATE_REFERENCE_STATUS = 409


def format_amount(amount: Any) -> str:
    """Render an amount the way the provider expects it: '5000', '5000.5'."""
    value = Decimal(str(amount)).normalize()
    return format(value, "f")


def _read_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


class MomoClient(PaymentProvider):
    """
    Async client for the MoMo collection product.

    Args:
        settings: Provider credentials and defaults, loaded once at startup.
        http_client: Optional pre-built httpx client (tests inject one with a
            MockTransport). When omitted the client owns its own.
        token_cache: Optional token cache; defaults to one backed by
            get_access_token().
    """

    def __init__(
        self,
        settings: MomoSettings,
        http_client: Optional[httpx.AsyncClient] = None,
        token_cache: Optional[TokenCache] = None,
    ):
        self._settings = settings
        self._timeout = httpx.Timeout(settings.timeout_seconds)
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=self._timeout)
        self._tokens = token_cache or TokenCache(self._exchange_token)

    @property
    def name(self) -> str:
        return "momo"

    @property
    def settings(self) -> MomoSettings:
        return self._settings

    def _url(self, path: str) -> str:
        return f"{self._settings.base_url}{path}"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # ── Token ────────────────────────────────────────────────────────

    async def get_access_token(self) -> str:
        """Perform a fresh token exchange (bypasses the cache)."""
        token, _ = await self._exchange_token()
        return token

    async def _exchange_token(self) -> tuple[str, Optional[float]]:
        try:
            response = await self._http.post(
                self._url("/collection/token/"),
                auth=httpx.BasicAuth(self._settings.api_user, self._settings.api_key),
                headers={
                    "Ocp-Apim-Subscription-Key": self._settings.primary_key,
                    "Content-Type": "application/json",
                },
                timeout=self._timeout,
            )
        except httpx.RequestError as e:
            logger.error("MoMo token request failed: %s", e)
            raise ProviderAuthError(f"MoMo token request failed: {e}", retriable=True) from e

        if not response.is_success:
            body = _read_body(response)
            logger.error("MoMo token error %s | body=%s", response.status_code, body)
            raise ProviderAuthError(
                f"MoMo token error {response.status_code}",
                provider_status=response.status_code,
                body=body,
                retriable=is_retriable_status(response.status_code),
            )

        body = _read_body(response)
        token = body.get("access_token") if isinstance(body, dict) else None
        if not token:
            raise ProviderAuthError("MoMo token missing", provider_status=response.status_code, body=body)

        expires_in = body.get("expires_in")
        try:
            expires_in = float(expires_in) if expires_in is not None else None
        except (TypeError, ValueError):
            expires_in = None
        return token, expires_in

    # ── Shared plumbing ──────────────────────────────────────────────

    def _headers(self, token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "X-Target-Environment": self._settings.target_env,
            "Ocp-Apim-Subscription-Key": self._settings.primary_key,
        }

    async def _send(self, operation: str, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._http.request(method, url, timeout=self._timeout, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("MoMo %s timed out after %.1fs", operation, self._settings.timeout_seconds)
            raise ProviderRequestError(f"MoMo {operation} timed out", retriable=True) from e
        except httpx.RequestError as e:
            logger.warning("MoMo %s transport error: %s", operation, e)
            raise ProviderRequestError(f"MoMo {operation} transport error: {e}", retriable=True) from e

        if response.is_success:
            return response

        body = _read_body(response)
        if response.status_code == 401:
            self._tokens.invalidate()
        logger.error("MoMo %s error %s | body=%s", operation, response.status_code, body)
        raise ProviderRequestError(
            f"MoMo {operation} error {response.status_code}",
            provider_status=response.status_code,
            body=body,
            retriable=is_retriable_status(response.status_code),
        )

    async def _retrying(self, func, *args: Any) -> Any:
        return await with_retry(
            func,
            *args,
            max_retries=self._settings.max_retries,
            base_delay=self._settings.retry_base_delay,
        )

    # ── Request to pay ───────────────────────────────────────────────

    async def request_to_pay(
        self,
        amount: Decimal,
        currency: Optional[str],
        phone_number: str,
        external_id: Optional[str] = None,
        payer_message: Optional[str] = None,
        payee_note: Optional[str] = None,
        reference_id: Optional[str] = None,
        callback_url: Optional[str] = None,
    ) -> RequestToPayResponse:
        reference_id = reference_id or str(uuid.uuid4())
        body = {
            "amount": format_amount(amount or 0),
            "currency": currency or self._settings.default_currency,
            "externalId": external_id or reference_id,
            "payer": {
                "partyIdType": "MSISDN",
                "partyId": normalize_phone(phone_number, self._settings.default_country_code),
            },
            "payerMessage": payer_message or DEFAULT_MESSAGE,
            "payeeNote": payee_note or DEFAULT_MESSAGE,
        }
        callback = callback_url or self._settings.callback_host

        async def submit() -> None:
            token = await self._tokens.get()
            headers = self._headers(token)
            headers["X-Reference-Id"] = reference_id
            headers["Content-Type"] = "application/json"
            if callback:
                headers["X-Callback-Url"] = callback
            try:
                await self._send(
                    "requestToPay",
                    "POST",
                    self._url("/collection/v1_0/requesttopay"),
                    headers=headers,
                    json=body,
                )
            except ProviderRequestError as e:
                # The reference id is the idempotency key: a 409 means an
                # earlier attempt with this id was already accepted.
                if e.provider_status != DUPLICATE_REFERENCE_STATUS:
                    raise
                logger.info("MoMo requestToPay ref=%s already exists; treating as accepted", reference_id)

        await self._retrying(submit)
        logger.info(
            "MoMo requestToPay accepted ref=%s amount=%s %s",
            reference_id,
            body["amount"],
            body["currency"],
        )
        return RequestToPayResponse(reference_id=reference_id)

    # ── Status ───────────────────────────────────────────────────────

    async def get_status(self, reference_id: str) -> ProviderStatus:
        if not reference_id:
            raise ProviderValidationError("referenceId required")

        async def fetch() -> httpx.Response:
            token = await self._tokens.get()
            headers = self._headers(token)
            headers["Accept"] = "application/json"
            return await self._send(
                "status",
                "GET",
                self._url(f"/collection/v1_0/requesttopay/{reference_id}"),
                headers=headers,
            )

        response = await self._retrying(fetch)
        data = _read_body(response)
        if not isinstance(data, dict):
            raise ProviderRequestError(
                "MoMo status response is not a JSON object",
                provider_status=response.status_code,
                body=data,
            )

        reason = data.get("reason")
        if isinstance(reason, dict):
            reason = reason.get("message") or reason.get("code")

        return ProviderStatus(
            reference_id=reference_id,
            status=str(data.get("status") or "").upper(),
            financial_transaction_id=data.get("financialTransactionId") or None,
            reason=str(reason) if reason else None,
            raw=data,
        )
