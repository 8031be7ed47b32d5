"""Error taxonomy for configuration, field resolution and delivery."""


class ConfigError(ValueError):
    """Raised while loading configuration. Always fatal to startup."""


class FieldResolutionError(Exception):
    """Raised when an optional notification field cannot be resolved."""


class DeliveryAbortError(RuntimeError):
    """Raised when one operation for one alert cannot be delivered."""


class DeliveryError(DeliveryAbortError):
    """Raised when the relay rejects a request or the transport fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
