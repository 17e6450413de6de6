from enum import Enum


class PumpDeskError(Exception):
    """Base class for all desk errors"""
    pass


class ConfigError(PumpDeskError):
    """Raised when trade parameters are invalid, before any network call"""
    pass


class BuildErrorKind(str, Enum):
    UPSTREAM_REJECTED = "upstream_rejected"
    MALFORMED_RESPONSE = "malformed_response"


class BuildError(PumpDeskError):
    """Raised when the quote-and-build service cannot produce a signable transaction"""

    def __init__(self, kind: BuildErrorKind, detail: str = ""):
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)


class SubmitError(PumpDeskError):
    """Raised when the bundle relay or a node rejects a submission"""
    pass


class ConfirmTimeout(PumpDeskError):
    """Confirmation did not arrive in time. Never changes a reported outcome."""
    pass


class MarketDataError(PumpDeskError):
    """Raised when the market data service answers with a non-success status"""
    pass


class EntryRejected(PumpDeskError):
    """Raised when the entry guard refuses to open a position"""
    pass
