"""Shared test fixtures for STK-Enroll."""

import json
import os

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from stk_enroll.common.config import EnrollSettings
from stk_enroll.correlation.keys import PhoneKeyStrategy
from stk_enroll.correlation.store import InMemoryCorrelationStore
from stk_enroll.enrollment.dispatcher import NotificationDispatcher
from stk_enroll.enrollment.groups import GroupResolver
from stk_enroll.enrollment.mailerlite import MailerLiteClient
from stk_enroll.payments.callback import CallbackProcessor
from stk_enroll.payments.gateway import DarajaGateway
from stk_enroll.payments.initiator import PaymentInitiator

ADMIN_KEY = "test-admin-key"

TEST_ENV = {
    "STK_ENROLL_DARAJA_BASE_URL": "https://daraja.test",
    "STK_ENROLL_DARAJA_CONSUMER_KEY": "consumer-key",
    "STK_ENROLL_DARAJA_CONSUMER_SECRET": "consumer-secret",
    "STK_ENROLL_DARAJA_SHORTCODE": "174379",
    "STK_ENROLL_DARAJA_PASSKEY": "passkey",
    "STK_ENROLL_DARAJA_CALLBACK_URL": "https://example.com/callback",
    "STK_ENROLL_MAILERLITE_BASE_URL": "https://mailerlite.test",
    "STK_ENROLL_MAILERLITE_API_KEY": "ml-key",
    "STK_ENROLL_GROUP_MAP": '{"RETAIL": "grp-retail", "REAL_ESTATE": "grp-realty"}',
    "STK_ENROLL_DEFAULT_GROUP_ID": "grp-default",
    "STK_ENROLL_ADMIN_API_KEY": ADMIN_KEY,
}


def make_settings(**overrides) -> EnrollSettings:
    defaults = {
        "daraja_base_url": "https://daraja.test",
        "daraja_consumer_key": "consumer-key",
        "daraja_consumer_secret": "consumer-secret",
        "daraja_shortcode": "174379",
        "daraja_passkey": "passkey",
        "daraja_callback_url": "https://example.com/callback",
        "mailerlite_base_url": "https://mailerlite.test",
        "mailerlite_api_key": "ml-key",
        "group_map": '{"RETAIL": "grp-retail"}',
        "default_group_id": "grp-default",
    }
    defaults.update(overrides)
    return EnrollSettings(**defaults)


class FakeProviders:
    """Stands in for Daraja and MailerLite behind an httpx.MockTransport."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.stk_status = 200
        self.stk_body = {
            "MerchantRequestID": "29115-34620561-1",
            "CheckoutRequestID": "ws_CO_191220191020363925",
            "ResponseCode": "0",
            "ResponseDescription": "Success. Request accepted for processing",
            "CustomerMessage": "Success. Request accepted for processing",
        }
        self.mailerlite_status = 201

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/oauth/v1/generate":
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"errorMessage": "Invalid credentials"})
            return httpx.Response(200, json={"access_token": "test-token", "expires_in": "3599"})
        if path == "/mpesa/stkpush/v1/processrequest":
            return httpx.Response(self.stk_status, json=self.stk_body)
        if path == "/api/subscribers":
            if self.mailerlite_status >= 400:
                return httpx.Response(self.mailerlite_status, json={"message": "The given data was invalid."})
            return httpx.Response(self.mailerlite_status, json={"data": {"id": "31897397363737859"}})
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    @property
    def stk_pushes(self) -> list[dict]:
        return [json.loads(r.content) for r in self.calls_to("/mpesa/stkpush/v1/processrequest")]

    @property
    def enrollments(self) -> list[dict]:
        return [json.loads(r.content) for r in self.calls_to("/api/subscribers")]


def build_callback(result_code=0, phone=None, checkout_id="ws_CO_191220191020363925", **items):
    """Daraja STK callback envelope; metadata only when items are given."""
    callback = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": checkout_id,
        "ResultCode": result_code,
        "ResultDesc": "The service request is processed successfully." if result_code == 0
        else "Request cancelled by user",
    }
    metadata = dict(items)
    if phone is not None:
        metadata["PhoneNumber"] = phone
    if metadata:
        callback["CallbackMetadata"] = {
            "Item": [{"Name": name, "Value": value} for name, value in metadata.items()]
        }
    return {"Body": {"stkCallback": callback}}


@pytest.fixture
def callback_payload():
    return build_callback


@pytest.fixture
def providers():
    return FakeProviders()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def store():
    return InMemoryCorrelationStore(ttl_seconds=900)


@pytest.fixture
def mailing_list(settings, providers):
    return MailerLiteClient(
        api_key=settings.mailerlite_api_key,
        base_url=settings.mailerlite_base_url,
        client=providers.client(),
    )


@pytest.fixture
def dispatcher(settings, mailing_list):
    return NotificationDispatcher(
        mailing_list, GroupResolver(settings.group_table, settings.default_group_id),
    )


@pytest.fixture
def gateway(settings, providers):
    return DarajaGateway(settings, client=providers.client())


@pytest.fixture
def initiator(settings, store, gateway):
    return PaymentInitiator(settings, store, PhoneKeyStrategy(), gateway)


@pytest.fixture
def processor(store, dispatcher):
    return CallbackProcessor(store, PhoneKeyStrategy(), dispatcher)


@pytest.fixture
def app(providers):
    """Create a test app whose outbound clients talk to FakeProviders."""
    os.environ.update(TEST_ENV)

    # Clear caches and singletons so new env vars take effect
    from stk_enroll.common.config import get_settings
    get_settings.cache_clear()

    from stk_enroll import deps
    deps.reset_singletons()
    deps._gateway = DarajaGateway(get_settings(), client=providers.client())
    deps._mailing_list = MailerLiteClient(
        api_key="ml-key", base_url="https://mailerlite.test", client=providers.client(),
    )

    from stk_enroll.app import create_app
    yield create_app()

    for name in TEST_ENV:
        os.environ.pop(name, None)
    get_settings.cache_clear()
    deps.reset_singletons()


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def admin_headers():
    return {"X-Admin-Api-Key": ADMIN_KEY}
