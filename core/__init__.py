"""
Core building blocks shared by the realtime and client packages.

- Domain models (Session, Preferences, CartItem, ...)
- Settings and logging setup
- Cancellation tokens for remote calls
- The data service and device storage boundaries with in-memory implementations
"""

from core.cancellation import CancellationToken, OperationCancelled
from core.config import SyncSettings
from core.data_service import DataService, DataServiceError, InMemoryDataService
from core.models import (
    CartItem,
    PointsDirection,
    Preferences,
    ScanHistoryEntry,
    Session,
    UserProfile,
)
from core.storage import JsonFileStorage, KeyValueStorage, MemoryStorage

__all__ = [
    "CancellationToken",
    "OperationCancelled",
    "SyncSettings",
    "DataService",
    "DataServiceError",
    "InMemoryDataService",
    "CartItem",
    "PointsDirection",
    "Preferences",
    "ScanHistoryEntry",
    "Session",
    "UserProfile",
    "JsonFileStorage",
    "KeyValueStorage",
    "MemoryStorage",
]
