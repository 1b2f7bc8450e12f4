"""HTTP client for the Daraja (M-Pesa) OAuth and STK push endpoints."""

import base64
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx

from stk_enroll.common.config import EnrollSettings
from stk_enroll.common.exceptions import GatewayError

logger = logging.getLogger(__name__)

# Daraja validates timestamps against Nairobi local time
EAT = timezone(timedelta(hours=3), name="EAT")

TOKEN_PATH = "/oauth/v1/generate"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"


def make_timestamp(now: Optional[datetime] = None) -> str:
    """Return the ``YYYYMMDDHHMMSS`` timestamp Daraja expects."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(EAT).strftime("%Y%m%d%H%M%S")


def make_password(shortcode: str, passkey: str, timestamp: str) -> str:
    """Base64 of shortcode + passkey + timestamp."""
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode()).decode("ascii")


def _response_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


class DarajaGateway:
    """Stateless calls to obtain an access token and request a push payment."""

    def __init__(self, settings: EnrollSettings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.base_url = settings.daraja_base_url.rstrip("/")
        self._http_client = client

    def _get_http_client(self) -> httpx.AsyncClient:
        """Lazy-init httpx.AsyncClient."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.settings.request_timeout)
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def get_access_token(self) -> str:
        key = self.settings.daraja_consumer_key
        secret = self.settings.daraja_consumer_secret
        if not key or not secret:
            raise GatewayError("Daraja consumer credentials are not configured")

        try:
            resp = await self._get_http_client().get(
                f"{self.base_url}{TOKEN_PATH}",
                params={"grant_type": "client_credentials"},
                auth=(key, secret),
            )
        except httpx.TimeoutException as exc:
            raise GatewayError("Timed out fetching Daraja access token") from exc
        except httpx.HTTPError as exc:
            raise GatewayError(f"Daraja token request failed: {exc}") from exc

        body = _response_body(resp)
        if resp.status_code != 200:
            raise GatewayError(
                f"Daraja token request rejected: HTTP {resp.status_code}",
                response_body=body,
            )
        token = body.get("access_token") if isinstance(body, dict) else None
        if not token:
            raise GatewayError("Daraja token response had no access_token", response_body=body)
        return token

    async def request_push_payment(
        self,
        phone: str,
        amount: int,
        callback_url: str,
        account_reference: str,
        transaction_desc: str = "Payment",
    ) -> dict[str, Any]:
        """Ask Daraja to prompt ``phone`` for ``amount``.

        Returns the acknowledgment (MerchantRequestID, CheckoutRequestID,
        ResponseCode, CustomerMessage). Raises GatewayError on any non-success.
        """
        token = await self.get_access_token()
        timestamp = make_timestamp()
        shortcode = self.settings.daraja_shortcode

        payload = {
            "BusinessShortCode": shortcode,
            "Password": make_password(shortcode, self.settings.daraja_passkey, timestamp),
            "Timestamp": timestamp,
            "TransactionType": self.settings.daraja_transaction_type,
            "Amount": amount,
            "PartyA": phone,
            "PartyB": self.settings.daraja_party_b,
            "PhoneNumber": phone,
            "CallBackURL": callback_url,
            # Daraja caps AccountReference at 12 characters
            "AccountReference": account_reference[:12],
            "TransactionDesc": transaction_desc[:13],
        }

        try:
            resp = await self._get_http_client().post(
                f"{self.base_url}{STK_PUSH_PATH}",
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as exc:
            raise GatewayError("Timed out requesting STK push") from exc
        except httpx.HTTPError as exc:
            raise GatewayError(f"STK push request failed: {exc}") from exc

        body = _response_body(resp)
        if not 200 <= resp.status_code < 300:
            raise GatewayError(f"STK push rejected: HTTP {resp.status_code}", response_body=body)
        if not isinstance(body, dict) or str(body.get("ResponseCode", "0")) != "0":
            raise GatewayError("STK push not accepted", response_body=body)

        logger.info(
            "STK push accepted",
            extra={"checkout_request_id": body.get("CheckoutRequestID")},
        )
        return body
