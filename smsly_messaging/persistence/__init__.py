"""
Persistence
===========
SQLAlchemy async engine, table mappings and SQL store implementations.
"""

from .database import (
    Base,
    close_engine,
    create_all,
    create_async_engine,
    get_engine,
    get_session_factory,
)
from .repositories import (
    SqlMessageStore,
    SqlNotificationStore,
    SqlOtpStore,
    SqlUserDirectory,
)

__all__ = [
    "Base",
    "create_async_engine",
    "get_engine",
    "get_session_factory",
    "create_all",
    "close_engine",
    "SqlMessageStore",
    "SqlOtpStore",
    "SqlNotificationStore",
    "SqlUserDirectory",
]
