"""Dependency injection singletons for STK-Enroll."""

from stk_enroll.common.config import get_settings
from stk_enroll.correlation.keys import KeyStrategy, get_key_strategy
from stk_enroll.correlation.store import CorrelationStore, InMemoryCorrelationStore
from stk_enroll.enrollment.dispatcher import NotificationDispatcher
from stk_enroll.enrollment.groups import GroupResolver
from stk_enroll.enrollment.mailerlite import MailerLiteClient
from stk_enroll.payments.callback import CallbackProcessor
from stk_enroll.payments.gateway import DarajaGateway
from stk_enroll.payments.initiator import PaymentInitiator

_store: CorrelationStore | None = None
_key_strategy: KeyStrategy | None = None
_gateway: DarajaGateway | None = None
_mailing_list: MailerLiteClient | None = None
_dispatcher: NotificationDispatcher | None = None
_initiator: PaymentInitiator | None = None
_processor: CallbackProcessor | None = None
_group_resolver: GroupResolver | None = None


def get_store() -> CorrelationStore:
    global _store
    if _store is None:
        settings = get_settings()
        _store = InMemoryCorrelationStore(ttl_seconds=settings.pending_ttl or None)
    return _store


def get_key_strategy_instance() -> KeyStrategy:
    global _key_strategy
    if _key_strategy is None:
        settings = get_settings()
        _key_strategy = get_key_strategy(settings.key_strategy, settings.reference_prefix)
    return _key_strategy


def get_gateway() -> DarajaGateway:
    global _gateway
    if _gateway is None:
        _gateway = DarajaGateway(get_settings())
    return _gateway


def get_mailing_list() -> MailerLiteClient:
    global _mailing_list
    if _mailing_list is None:
        settings = get_settings()
        _mailing_list = MailerLiteClient(
            api_key=settings.mailerlite_api_key,
            base_url=settings.mailerlite_base_url,
            timeout=settings.request_timeout,
        )
    return _mailing_list


def get_group_resolver() -> GroupResolver:
    global _group_resolver
    if _group_resolver is None:
        settings = get_settings()
        _group_resolver = GroupResolver(settings.group_table, settings.default_group_id)
    return _group_resolver


def get_notification_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher(get_mailing_list(), get_group_resolver())
    return _dispatcher


def get_payment_initiator() -> PaymentInitiator:
    global _initiator
    if _initiator is None:
        _initiator = PaymentInitiator(
            get_settings(), get_store(), get_key_strategy_instance(), get_gateway(),
        )
    return _initiator


def get_callback_processor() -> CallbackProcessor:
    global _processor
    if _processor is None:
        _processor = CallbackProcessor(
            get_store(), get_key_strategy_instance(), get_notification_dispatcher(),
        )
    return _processor


async def close_clients() -> None:
    """Close outbound HTTP clients (app shutdown)."""
    if _gateway is not None:
        await _gateway.close()
    if _mailing_list is not None:
        await _mailing_list.close()


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _store, _key_strategy, _gateway, _mailing_list, _dispatcher, _initiator, _processor
    global _group_resolver
    _store = None
    _key_strategy = None
    _gateway = None
    _mailing_list = None
    _dispatcher = None
    _initiator = None
    _processor = None
    _group_resolver = None
