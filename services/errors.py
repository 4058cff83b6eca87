"""Exceptions raised by the setting and subscription data services."""

from typing import Optional


class ServiceError(Exception):
    """Base exception for all service-layer errors."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class SettingError(ServiceError):
    """Setting could not be read or its stored value is invalid."""
    pass


class SubscriptionNotFound(ServiceError):
    """No client is registered under the requested sub_id."""
    pass
