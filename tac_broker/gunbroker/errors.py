# tac_broker/gunbroker/errors.py
from typing import Any, Optional


class GunbrokerError(Exception):
    """
    Base class for every failure the GunBroker integration surfaces.
    `status_code` is what the API layer answers with, `message` is safe to show to the user.
    """

    status_code: int = 500
    default_message: str = "GunBroker request failed"
    reconnect: bool = False

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_response(self) -> dict:
        return {"error": self.message, "details": self.details, "reconnect": self.reconnect}


class ConfigurationError(GunbrokerError):
    status_code = 500
    default_message = "Server configuration error"


class CredentialError(GunbrokerError):
    status_code = 409
    default_message = "Stored GunBroker credentials could not be read, please reconnect"
    reconnect = True


class MarketplaceAuthError(GunbrokerError):
    status_code = 401
    default_message = "Invalid GunBroker credentials"
    reconnect = True

    def __init__(self, upstream_status: int, message: Optional[str] = None, details: Any = None):
        self.upstream_status = upstream_status
        if upstream_status >= 500:
            # GunBroker is down, the stored credentials are not the problem
            self.status_code = 502
            self.reconnect = False
            message = message or "GunBroker sign-in is unavailable, please try again later"
        super().__init__(message, details)


class ConcurrentConnectError(GunbrokerError):
    status_code = 409
    default_message = "Another GunBroker connection was made at the same time, please retry"


class MarketplaceApiError(GunbrokerError):
    default_message = "GunBroker API error"

    def __init__(self, status: int, body: Any = None, message: Optional[str] = None):
        self.status = status
        self.body = body
        # redirects and other oddities are a bad gateway from the client's point of view
        self.status_code = status if status >= 400 else 502
        if status == 401:
            self.reconnect = True
            message = "Your GunBroker session has expired, please reconnect"
        super().__init__(message or f"GunBroker API error ({status})", details=body)


class RateLimitedError(GunbrokerError):
    status_code = 429
    default_message = "GunBroker API rate limit exceeded. Please try again later."

    def __init__(self, retry_after: Optional[int] = None, body: Any = None):
        self.retry_after = retry_after
        self.body = body
        super().__init__(details=body)


class IntegrationNotFoundError(GunbrokerError):
    status_code = 404
    default_message = "Gunbroker integration not found"
