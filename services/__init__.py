"""Service layer package: settings and subscriber data."""

from .errors import ServiceError, SettingError, SubscriptionNotFound
from .setting_service import SettingService, DEFAULT_SETTINGS
from .sub_service import SubService, format_traffic
from .sub_json_service import SubJsonService
from .types import (
    Traffic,
    SubscriptionPayload,
    SubProvider,
    JsonSubProvider,
)

__all__ = [
    'ServiceError',
    'SettingError',
    'SubscriptionNotFound',
    'SettingService',
    'DEFAULT_SETTINGS',
    'SubService',
    'SubJsonService',
    'format_traffic',
    'Traffic',
    'SubscriptionPayload',
    'SubProvider',
    'JsonSubProvider',
]
