"""Exception hierarchy and exchange error classification."""
from enum import Enum


class ExchangeErrorKind(str, Enum):
    INVALID_KEY = "invalid_key"
    INVALID_NONCE = "invalid_nonce"
    PERMISSION_DENIED = "permission_denied"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    INVALID_ARGUMENTS = "invalid_arguments"
    ORDER_MINIMUM = "order_minimum"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    NETWORK = "network"
    UNKNOWN = "unknown"


# Kraken error strings look like "EOrder:Insufficient funds"; keyed on the
# "category:message" prefix, most specific first.
_KRAKEN_ERROR_CODES: list[tuple[str, ExchangeErrorKind]] = [
    ("EAPI:Invalid key", ExchangeErrorKind.INVALID_KEY),
    ("EAPI:Invalid signature", ExchangeErrorKind.INVALID_KEY),
    ("EAPI:Invalid nonce", ExchangeErrorKind.INVALID_NONCE),
    ("EAPI:Rate limit exceeded", ExchangeErrorKind.RATE_LIMITED),
    ("EAPI:Invalid arguments", ExchangeErrorKind.INVALID_ARGUMENTS),
    ("EGeneral:Permission denied", ExchangeErrorKind.PERMISSION_DENIED),
    ("EGeneral:Invalid arguments", ExchangeErrorKind.INVALID_ARGUMENTS),
    ("EGeneral:Temporary lockout", ExchangeErrorKind.RATE_LIMITED),
    ("EOrder:Insufficient funds", ExchangeErrorKind.INSUFFICIENT_FUNDS),
    ("EOrder:Order minimum not met", ExchangeErrorKind.ORDER_MINIMUM),
    ("EOrder:Rate limit exceeded", ExchangeErrorKind.RATE_LIMITED),
    ("EOrder:Orders limit exceeded", ExchangeErrorKind.RATE_LIMITED),
    ("EOrder:", ExchangeErrorKind.INVALID_ARGUMENTS),
    ("EService:Unavailable", ExchangeErrorKind.UNAVAILABLE),
    ("EService:Busy", ExchangeErrorKind.UNAVAILABLE),
    ("EService:Market in cancel_only mode", ExchangeErrorKind.UNAVAILABLE),
    ("EService:Market in post_only mode", ExchangeErrorKind.UNAVAILABLE),
    ("EService:", ExchangeErrorKind.UNAVAILABLE),
]


def classify_exchange_error(error: str) -> ExchangeErrorKind:
    """Map a Kraken error code string to an ExchangeErrorKind."""
    for prefix, kind in _KRAKEN_ERROR_CODES:
        if error.startswith(prefix):
            return kind
    return ExchangeErrorKind.UNKNOWN


class CharityBotError(Exception):
    """Base class for all charity-bot errors."""
    pass


class BrokerError(CharityBotError):
    """Raised for failures talking to the broker."""
    pass


class ExchangeError(BrokerError):
    """Raised when the exchange reports an error or cannot be reached."""
    def __init__(self, kind: ExchangeErrorKind, message: str = "Exchange error", errors=None):
        super().__init__(message)
        self.kind = kind
        self.errors = errors or []

    @classmethod
    def from_response(cls, errors: list[str]) -> "ExchangeError":
        kind = classify_exchange_error(errors[0]) if errors else ExchangeErrorKind.UNKNOWN
        return cls(kind, "; ".join(errors) or "Exchange error", errors)


class MissingCredentialsError(BrokerError):
    """Raised when a private call is attempted without API credentials."""
    def __init__(self, message="Kraken API credentials are not configured"):
        super().__init__(message)


class OrderError(CharityBotError):
    """Base class for refused or invalid orders."""
    pass


class TradingDisabledError(OrderError):
    """Raised when real trading is disabled or requires confirmation."""
    def __init__(self, message="Real trading is disabled"):
        super().__init__(message)


class RiskDeniedError(OrderError):
    """Raised when the risk gate denies an order."""
    def __init__(self, reason: str):
        super().__init__(f"Risk check failed: {reason}")
        self.reason = reason


class MinimumOrderError(OrderError):
    """Raised when an order is below the exchange minimum volume."""
    def __init__(self, message="Order below exchange minimum", minimum_usd: float = 0.0):
        super().__init__(message)
        self.minimum_usd = minimum_usd


class InvalidOrderError(OrderError):
    """Raised for malformed order requests."""
    pass


class SchemaError(CharityBotError):
    """Raised when the database schema fails verification."""
    pass
