"""
Push Stores
===========
Persistence contracts for notifications and user push profiles, with
in-memory implementations.
"""

import copy
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from .models import Notification, NotificationTimeFilter, PushProfile


class NotificationStore(ABC):
    """Storage for notifications. Soft-deleted rows are never returned."""

    @abstractmethod
    async def add(self, notification: Notification) -> None:
        """Insert a new notification."""

    @abstractmethod
    async def get(self, notification_id: str) -> Optional[Notification]:
        """Fetch a notification by id."""

    @abstractmethod
    async def update(self, notification: Notification) -> None:
        """Persist the current state of a notification."""

    @abstractmethod
    async def list_for_user(
        self,
        user_id: str,
        last_notification_id: Optional[str] = None,
        page_size: int = 10,
        time_filter: NotificationTimeFilter = NotificationTimeFilter.ALL,
        now: Optional[datetime] = None,
    ) -> Tuple[List[Notification], bool]:
        """
        Page through a user's notifications, newest first.

        Returns:
            Tuple of (notifications, has_more)
        """

    @abstractmethod
    async def list_unread(self, user_id: str) -> List[Notification]:
        """All unread notifications of a user, newest first."""

    @abstractmethod
    async def update_many(self, notifications: List[Notification]) -> None:
        """Persist several notifications at once."""


class UserDirectory(ABC):
    """Read access to users' push profiles."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[PushProfile]:
        """Fetch a user's push profile, None if the user does not exist."""

    @abstractmethod
    async def set_push_token(self, user_id: str, push_token: Optional[str], language: Optional[str] = None) -> None:
        """Register or clear a user's device token."""


def matches_time_filter(created_at: datetime, time_filter: NotificationTimeFilter, now: datetime) -> bool:
    """Whether a creation time falls in a day bucket relative to ``now``."""
    today = now.date()
    day = created_at.date()
    if time_filter is NotificationTimeFilter.TODAY:
        return day == today
    if time_filter is NotificationTimeFilter.YESTERDAY:
        return day == today - timedelta(days=1)
    if time_filter is NotificationTimeFilter.EARLIER:
        return day < today - timedelta(days=1)
    return True


def _sort_key(notification: Notification):
    return (notification.created_at, notification.id)


class InMemoryNotificationStore(NotificationStore):
    """Dict-backed notification store."""

    def __init__(self):
        self._items: Dict[str, Notification] = {}

    async def add(self, notification: Notification) -> None:
        self._items[notification.id] = copy.copy(notification)

    async def get(self, notification_id: str) -> Optional[Notification]:
        item = self._items.get(notification_id)
        if item is None or item.is_deleted:
            return None
        return copy.copy(item)

    async def update(self, notification: Notification) -> None:
        if notification.id not in self._items:
            raise KeyError(notification.id)
        self._items[notification.id] = copy.copy(notification)

    async def list_for_user(
        self,
        user_id: str,
        last_notification_id: Optional[str] = None,
        page_size: int = 10,
        time_filter: NotificationTimeFilter = NotificationTimeFilter.ALL,
        now: Optional[datetime] = None,
    ) -> Tuple[List[Notification], bool]:
        items = [
            n for n in self._items.values()
            if n.user_id == user_id
            and not n.is_deleted
            and (now is None or matches_time_filter(n.created_at, time_filter, now))
        ]
        items.sort(key=_sort_key, reverse=True)

        cursor = self._items.get(last_notification_id) if last_notification_id else None
        if cursor is not None:
            items = [n for n in items if _sort_key(n) < _sort_key(cursor)]

        has_more = len(items) > page_size
        return [copy.copy(n) for n in items[:page_size]], has_more

    async def list_unread(self, user_id: str) -> List[Notification]:
        items = [
            n for n in self._items.values()
            if n.user_id == user_id and not n.is_read and not n.is_deleted
        ]
        items.sort(key=_sort_key, reverse=True)
        return [copy.copy(n) for n in items]

    async def update_many(self, notifications: List[Notification]) -> None:
        for notification in notifications:
            await self.update(notification)


class InMemoryUserDirectory(UserDirectory):
    """Dict-backed push profiles."""

    def __init__(self, profiles: Optional[List[PushProfile]] = None):
        self._profiles: Dict[str, PushProfile] = {p.user_id: p for p in profiles or []}

    async def get_profile(self, user_id: str) -> Optional[PushProfile]:
        profile = self._profiles.get(user_id)
        return copy.copy(profile) if profile else None

    async def set_push_token(self, user_id: str, push_token: Optional[str], language: Optional[str] = None) -> None:
        profile = self._profiles.setdefault(user_id, PushProfile(user_id=user_id))
        profile.push_token = push_token or None
        if language:
            profile.language = language
