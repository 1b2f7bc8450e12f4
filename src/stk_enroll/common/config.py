"""STK-Enroll configuration via pydantic-settings."""

import json
import warnings
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

from pydantic import PrivateAttr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_REQUIRED_CREDENTIALS = (
    "daraja_consumer_key",
    "daraja_consumer_secret",
    "daraja_shortcode",
    "daraja_passkey",
    "daraja_callback_url",
    "mailerlite_api_key",
)


class EnrollSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STK_ENROLL_")

    environment: str = "development"
    log_level: str = "INFO"

    # API
    api_title: str = "STK-Enroll"
    api_version: str = "0.1.0"
    api_prefix: str = ""
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = ["http://localhost:3000"]

    # Admin-only debug surface; empty disables it
    admin_api_key: str = ""

    # Daraja (M-Pesa) push payments
    daraja_base_url: str = "https://api.safaricom.co.ke"
    daraja_consumer_key: str = ""
    daraja_consumer_secret: str = ""
    daraja_shortcode: str = ""
    daraja_passkey: str = ""
    daraja_party_b: str = "6976785"
    daraja_transaction_type: str = "CustomerBuyGoodsOnline"
    daraja_callback_url: str = ""
    daraja_account_reference: str = "Payment"
    daraja_transaction_desc: str = "Payment"
    payment_amount: int = 100

    # MailerLite
    mailerlite_base_url: str = "https://connect.mailerlite.com"
    mailerlite_api_key: str = ""

    # Correlation
    key_strategy: str = "phone"  # "phone" or "reference"
    reference_prefix: str = "SUB"
    pending_ttl: int = 900  # seconds
    sweep_interval: float = 60  # seconds; 0 disables the background sweep
    allow_resubscribe: bool = True  # a repeat submission replaces the pending record

    # Outbound HTTP
    request_timeout: float = 30.0

    # Groups: JSON dict mapping industry token to MailerLite group id.
    # e.g. '{"RETAIL": "1234", "REAL_ESTATE": "5678"}'
    group_map: str = ""
    default_group_id: str = ""

    _group_table: Mapping[str, str] = PrivateAttr(default_factory=lambda: MappingProxyType({}))

    @model_validator(mode="after")
    def check_group_map(self) -> "EnrollSettings":
        # A bad map fails at startup, not on the first paid callback
        if self.group_map:
            self._group_table = _parse_group_map(self.group_map)
        return self

    @property
    def group_table(self) -> Mapping[str, str]:
        """Return the industry → group id table as a read-only mapping.

        Keys are upper-cased so lookups match normalized industry tokens.
        """
        return self._group_table

    def validate_for_production(self) -> None:
        """Raise if provider credentials are missing outside development."""
        missing = [field for field in _REQUIRED_CREDENTIALS if not getattr(self, field)]

        if self.environment != "development" and missing:
            env_vars = ", ".join(f"STK_ENROLL_{f.upper()}" for f in missing)
            raise RuntimeError(
                f"Missing provider credentials in '{self.environment}' environment. "
                f"Set these environment variables: {env_vars}."
            )

        if missing:
            warnings.warn(
                "Provider credentials not set — push payments and enrollment "
                "calls will fail until STK_ENROLL_DARAJA_* and "
                "STK_ENROLL_MAILERLITE_API_KEY are configured",
                UserWarning,
                stacklevel=2,
            )


def _parse_group_map(raw_map: str) -> Mapping[str, str]:
    try:
        raw = json.loads(raw_map)
    except json.JSONDecodeError as exc:
        raise ValueError(
            f"STK_ENROLL_GROUP_MAP must be valid JSON (e.g. '{{\"RETAIL\": \"123\"}}'), got: {raw_map!r}"
        ) from exc
    if not isinstance(raw, dict):
        raise ValueError("STK_ENROLL_GROUP_MAP must be a JSON object")
    return MappingProxyType({str(k).upper(): str(v) for k, v in raw.items()})


@lru_cache
def get_settings() -> EnrollSettings:
    settings = EnrollSettings()
    settings.validate_for_production()
    return settings
