"""Domain exceptions raised by the payment core and its collaborators.

The HTTP layer maps each family to a status code; nothing below this module
knows about HTTP.
"""


class BotPayError(Exception):
    """Base exception for payment service errors"""
    pass


class ValidationError(BotPayError):
    """Bad caller input (non-positive amount, disallowed currency, missing field)"""
    pass


class AuthenticationError(BotPayError):
    """Missing, unknown or inactive caller credential"""
    pass


class PaymentNotFound(BotPayError):
    """No payment matches the lookup in the caller's scope"""
    pass


class InvalidSignature(BotPayError):
    """Webhook signature missing or does not verify against the bot secret"""
    pass


class DuplicateKey(BotPayError):
    """A record with the same unique key already exists"""
    pass


class NotificationError(BotPayError):
    """Outbound confirmation message could not be delivered"""
    pass


class GatewayError(BotPayError):
    """Base class for failures talking to the payment gateway"""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class GatewayUnavailable(GatewayError):
    """Network error, timeout or 5xx from the gateway"""
    pass


class GatewayRejected(GatewayError):
    """Gateway answered 4xx; `message` carries its explanation"""
    pass


class GatewayNotFound(GatewayRejected):
    """Gateway has no payment with the requested id"""
    pass


class GatewayMalformedResponse(GatewayError):
    """Gateway answered 2xx but the body is missing required fields"""
    pass
