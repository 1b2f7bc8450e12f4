"""STK-Enroll exception hierarchy."""

from typing import Any


class EnrollError(Exception):
    """Base exception for all STK-Enroll errors."""

    def __init__(self, message: str = "", code: str = "ENROLL_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(EnrollError):
    """Raised when a subscription request is missing fields or malformed."""

    def __init__(self, message: str = "Invalid subscription request"):
        super().__init__(message, code="VALIDATION_ERROR")


class DuplicateKeyError(EnrollError):
    """Raised when a live pending subscription already holds a correlation key."""

    def __init__(self, message: str = "A payment prompt is already pending"):
        super().__init__(message, code="DUPLICATE_KEY")


class GatewayError(EnrollError):
    """Raised when the payment provider is unreachable or rejects a call."""

    def __init__(self, message: str = "Payment gateway request failed", response_body: Any = None):
        self.response_body = response_body
        super().__init__(message, code="GATEWAY_ERROR")


class CallbackParseError(EnrollError):
    """Raised when a webhook body lacks the expected envelope."""

    def __init__(self, message: str = "No callback body present"):
        super().__init__(message, code="CALLBACK_PARSE_ERROR")


class KeyResolutionError(EnrollError):
    """Raised when a webhook carries no usable correlation key."""

    def __init__(self, message: str = "Correlation key not found in callback"):
        super().__init__(message, code="KEY_NOT_FOUND")


class NotificationError(EnrollError):
    """Raised when the mailing-list enrollment call fails after payment."""

    def __init__(self, message: str = "Mailing list enrollment failed", response_body: Any = None):
        self.response_body = response_body
        super().__init__(message, code="NOTIFICATION_ERROR")
