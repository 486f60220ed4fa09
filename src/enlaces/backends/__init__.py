"""
Backend adapters for the external authentication and data services.
"""

from .base import AuthProvider, DataStore, Subscription, Unsubscribe, join_path
from .memory import MemoryAuthProvider, MemoryDataStore

__all__ = [
    "AuthProvider",
    "DataStore",
    "Subscription",
    "Unsubscribe",
    "join_path",
    "MemoryAuthProvider",
    "MemoryDataStore",
]
