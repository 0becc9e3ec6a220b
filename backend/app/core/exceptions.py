"""Domain exceptions raised by services and mapped to HTTP responses by the routers"""


class MarketplaceError(Exception):
    """Base class for expected, caller-facing failures"""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class WebhookVerificationError(MarketplaceError):
    """Inbound webhook could not be authenticated"""
    status_code = 400


class ModerationError(MarketplaceError):
    """Base class for moderation gate failures"""
    status_code = 400


class InvalidModerationError(ModerationError):
    """Bad input or ad in the wrong state"""
    status_code = 400


class AdNotFoundError(ModerationError):
    status_code = 404


class SubscriptionRequiredError(ModerationError):
    """Supplier has no subscription, or it is not active"""
    status_code = 400


class InsufficientCreditsError(ModerationError):
    """Supplier subscription is active but every credit for the period is used"""
    status_code = 400
