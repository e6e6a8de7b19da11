class CallerError(Exception):
    pass


class DataFetchError(CallerError):
    """Market-data request failed or timed out. Callers treat it as "no data"."""


class DeliveryError(CallerError):
    """Notification could not be delivered to a channel."""

    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"

    def __init__(self, message: str, *, kind: str = ERROR, channel_id: str = "") -> None:
        super().__init__(message)
        self.kind = kind
        self.channel_id = channel_id


class ConfigError(CallerError):
    """Guild or policy configuration is missing or invalid."""
