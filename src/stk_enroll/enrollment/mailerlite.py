"""HTTP client for the MailerLite subscribers API."""

import logging
from typing import Any, Optional

import httpx

from stk_enroll.common.exceptions import NotificationError

logger = logging.getLogger(__name__)


class MailerLiteClient:
    """Creates or updates a subscriber and assigns them to a group."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://connect.mailerlite.com",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http_client = client

    def _get_http_client(self) -> httpx.AsyncClient:
        """Lazy-init httpx.AsyncClient."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def subscribe(
        self,
        email: str,
        name: str,
        phone: str,
        industry: str,
        group: Optional[str] = None,
    ) -> dict[str, Any]:
        """Upsert a subscriber. Raises NotificationError on any non-2xx."""
        if not self.api_key:
            raise NotificationError("MailerLite API key is not configured")

        payload: dict[str, Any] = {
            "email": email,
            "fields": {"name": name, "phone": phone, "industry": industry},
        }
        if group:
            payload["groups"] = [group]

        try:
            resp = await self._get_http_client().post(
                f"{self.base_url}/api/subscribers",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
            )
        except httpx.TimeoutException as exc:
            raise NotificationError("Timed out calling MailerLite") from exc
        except httpx.HTTPError as exc:
            raise NotificationError(f"MailerLite request failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = resp.text

        # 200 = updated existing subscriber, 201 = created
        if resp.status_code not in (200, 201):
            raise NotificationError(
                f"MailerLite rejected subscriber: HTTP {resp.status_code}",
                response_body=body,
            )
        return body if isinstance(body, dict) else {"raw": body}
