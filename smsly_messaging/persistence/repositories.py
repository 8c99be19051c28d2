"""
SQL Stores
==========
SQLAlchemy implementations of the message, OTP, notification and push
profile stores.

Every query filters out soft-deleted rows. OTP consumption is a single
conditional UPDATE so concurrent validations cannot both win.
"""

from datetime import datetime, time, timedelta, timezone
from typing import List, Optional, Tuple

import structlog
from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from smsly_messaging.messaging.models import Message, MessageChannel, MessageStatus, Otp
from smsly_messaging.messaging.stores import STATUS_FIELDS, MessageStore, OtpStore
from smsly_messaging.push.models import (
    Notification,
    NotificationPriority,
    NotificationStatus,
    NotificationTimeFilter,
    NotificationType,
    PushProfile,
)
from smsly_messaging.push.stores import NotificationStore, UserDirectory

from .tables import MessageRow, NotificationRow, OtpRow, UserPushProfileRow

logger = structlog.get_logger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


# =============================================================================
# Row mapping
# =============================================================================

_MESSAGE_FIELDS = (
    "recipient_phone_number", "body", "message_sid", "template_id", "template_variables",
    "sent_at", "delivered_at", "failed_at", "failure_reason", "fallback_message_id",
    "created_at", "updated_at", "is_deleted",
)

_NOTIFICATION_FIELDS = (
    "user_id", "title", "title_ar", "body", "body_ar", "action_url",
    "is_read", "read_at", "created_at", "updated_at", "is_deleted",
)


def _message_values(message: Message) -> dict:
    values = {name: getattr(message, name) for name in _MESSAGE_FIELDS}
    values.update(channel=message.channel.value, status=message.status.value)
    return values


def _to_message(row: MessageRow) -> Message:
    values = {name: getattr(row, name) for name in _MESSAGE_FIELDS}
    return Message(
        id=row.id,
        channel=MessageChannel(row.channel),
        status=MessageStatus(row.status),
        **values,
    )


def _to_otp(row: OtpRow) -> Otp:
    return Otp(
        id=row.id,
        phone_number=row.phone_number,
        code=row.code,
        expires_at=row.expires_at,
        is_used=row.is_used,
        used_at=row.used_at,
        created_at=row.created_at,
        is_deleted=row.is_deleted,
    )


def _notification_values(notification: Notification) -> dict:
    values = {name: getattr(notification, name) for name in _NOTIFICATION_FIELDS}
    values.update(
        type=notification.type.value,
        priority=notification.priority.value,
        status=notification.status.value,
    )
    return values


def _to_notification(row: NotificationRow) -> Notification:
    values = {name: getattr(row, name) for name in _NOTIFICATION_FIELDS}
    return Notification(
        id=row.id,
        type=NotificationType(row.type),
        priority=NotificationPriority(row.priority),
        status=NotificationStatus(row.status),
        **values,
    )


# =============================================================================
# Messaging
# =============================================================================

class SqlMessageStore(MessageStore):
    """Messages in the ``messages`` table."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def add(self, message: Message) -> None:
        async with self._session_factory.begin() as session:
            session.add(MessageRow(id=message.id, **_message_values(message)))

    async def update(self, message: Message) -> None:
        async with self._session_factory.begin() as session:
            result = await session.execute(
                update(MessageRow)
                .where(MessageRow.id == message.id)
                .values(**_message_values(message))
            )
            if result.rowcount != 1:
                raise KeyError(message.id)

    async def update_if_status(self, message: Message, expected_status: MessageStatus) -> bool:
        values = {name: getattr(message, name) for name in STATUS_FIELDS}
        values["status"] = message.status.value
        async with self._session_factory.begin() as session:
            result = await session.execute(
                update(MessageRow)
                .where(
                    MessageRow.id == message.id,
                    MessageRow.status == expected_status.value,
                    MessageRow.is_deleted.is_(False),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def get(self, message_id: str) -> Optional[Message]:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(MessageRow).where(MessageRow.id == message_id, MessageRow.is_deleted.is_(False))
            )
            return _to_message(row) if row else None

    async def get_by_sid(self, message_sid: str) -> Optional[Message]:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(MessageRow).where(
                    MessageRow.message_sid == message_sid,
                    MessageRow.is_deleted.is_(False),
                )
            )
            return _to_message(row) if row else None

    async def list(
        self,
        phone: Optional[str] = None,
        channel: Optional[MessageChannel] = None,
        status: Optional[MessageStatus] = None,
        limit: int = 50,
    ) -> List[Message]:
        query = select(MessageRow).where(MessageRow.is_deleted.is_(False))
        if phone is not None:
            query = query.where(MessageRow.recipient_phone_number == phone)
        if channel is not None:
            query = query.where(MessageRow.channel == channel.value)
        if status is not None:
            query = query.where(MessageRow.status == status.value)
        query = query.order_by(MessageRow.created_at.desc()).limit(limit)

        async with self._session_factory() as session:
            rows = (await session.scalars(query)).all()
            return [_to_message(row) for row in rows]


class SqlOtpStore(OtpStore):
    """OTP challenges in the ``otps`` table."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def add(self, otp: Otp) -> None:
        async with self._session_factory.begin() as session:
            session.add(OtpRow(
                id=otp.id,
                phone_number=otp.phone_number,
                code=otp.code,
                expires_at=otp.expires_at,
                is_used=otp.is_used,
                used_at=otp.used_at,
                created_at=otp.created_at,
                is_deleted=otp.is_deleted,
            ))

    async def get_latest_valid(self, phone: str, now: datetime) -> Optional[Otp]:
        query = (
            select(OtpRow)
            .where(
                OtpRow.phone_number == phone,
                OtpRow.is_used.is_(False),
                OtpRow.is_deleted.is_(False),
                OtpRow.expires_at > now,
            )
            .order_by(OtpRow.created_at.desc())
            .limit(1)
        )
        async with self._session_factory() as session:
            row = await session.scalar(query)
            return _to_otp(row) if row else None

    async def mark_used(self, otp_id: str, now: datetime) -> bool:
        async with self._session_factory.begin() as session:
            result = await session.execute(
                update(OtpRow)
                .where(
                    OtpRow.id == otp_id,
                    OtpRow.is_used.is_(False),
                    OtpRow.is_deleted.is_(False),
                )
                .values(is_used=True, used_at=now)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    async def delete_expired(self, now: datetime) -> int:
        async with self._session_factory.begin() as session:
            result = await session.execute(
                update(OtpRow)
                .where(OtpRow.expires_at <= now, OtpRow.is_deleted.is_(False))
                .values(is_deleted=True)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount


# =============================================================================
# Push
# =============================================================================

def _day_window(time_filter: NotificationTimeFilter, now: datetime):
    """(start, end) creation-time bounds for a day bucket; None is unbounded."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    today = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
    yesterday = today - timedelta(days=1)
    if time_filter is NotificationTimeFilter.TODAY:
        return today, today + timedelta(days=1)
    if time_filter is NotificationTimeFilter.YESTERDAY:
        return yesterday, today
    if time_filter is NotificationTimeFilter.EARLIER:
        return None, yesterday
    return None, None


class SqlNotificationStore(NotificationStore):
    """Notifications in the ``notifications`` table."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def add(self, notification: Notification) -> None:
        async with self._session_factory.begin() as session:
            session.add(NotificationRow(id=notification.id, **_notification_values(notification)))

    async def get(self, notification_id: str) -> Optional[Notification]:
        async with self._session_factory() as session:
            row = await session.scalar(
                select(NotificationRow).where(
                    NotificationRow.id == notification_id,
                    NotificationRow.is_deleted.is_(False),
                )
            )
            return _to_notification(row) if row else None

    async def update(self, notification: Notification) -> None:
        await self.update_many([notification])

    async def update_many(self, notifications: List[Notification]) -> None:
        async with self._session_factory.begin() as session:
            for notification in notifications:
                result = await session.execute(
                    update(NotificationRow)
                    .where(NotificationRow.id == notification.id)
                    .values(**_notification_values(notification))
                )
                if result.rowcount != 1:
                    raise KeyError(notification.id)

    async def list_for_user(
        self,
        user_id: str,
        last_notification_id: Optional[str] = None,
        page_size: int = 10,
        time_filter: NotificationTimeFilter = NotificationTimeFilter.ALL,
        now: Optional[datetime] = None,
    ) -> Tuple[List[Notification], bool]:
        query = select(NotificationRow).where(
            NotificationRow.user_id == user_id,
            NotificationRow.is_deleted.is_(False),
        )

        if now is not None:
            start, end = _day_window(time_filter, now)
            if start is not None:
                query = query.where(NotificationRow.created_at >= start)
            if end is not None:
                query = query.where(NotificationRow.created_at < end)

        async with self._session_factory() as session:
            if last_notification_id:
                cursor = await session.get(NotificationRow, last_notification_id)
                if cursor is not None:
                    query = query.where(or_(
                        NotificationRow.created_at < cursor.created_at,
                        and_(
                            NotificationRow.created_at == cursor.created_at,
                            NotificationRow.id < cursor.id,
                        ),
                    ))

            query = query.order_by(
                NotificationRow.created_at.desc(),
                NotificationRow.id.desc(),
            ).limit(page_size + 1)
            rows = (await session.scalars(query)).all()

        has_more = len(rows) > page_size
        return [_to_notification(row) for row in rows[:page_size]], has_more

    async def list_unread(self, user_id: str) -> List[Notification]:
        query = (
            select(NotificationRow)
            .where(
                NotificationRow.user_id == user_id,
                NotificationRow.is_read.is_(False),
                NotificationRow.is_deleted.is_(False),
            )
            .order_by(NotificationRow.created_at.desc(), NotificationRow.id.desc())
        )
        async with self._session_factory() as session:
            rows = (await session.scalars(query)).all()
            return [_to_notification(row) for row in rows]


class SqlUserDirectory(UserDirectory):
    """Push profiles in the ``user_push_profiles`` table."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def get_profile(self, user_id: str) -> Optional[PushProfile]:
        async with self._session_factory() as session:
            row = await session.get(UserPushProfileRow, user_id)
            if row is None:
                return None
            return PushProfile(user_id=row.user_id, push_token=row.push_token, language=row.language or "en")

    async def set_push_token(self, user_id: str, push_token: Optional[str], language: Optional[str] = None) -> None:
        async with self._session_factory.begin() as session:
            row = await session.get(UserPushProfileRow, user_id)
            if row is None:
                row = UserPushProfileRow(user_id=user_id, language=language or "en")
                session.add(row)
            row.push_token = push_token or None
            if language:
                row.language = language
        logger.info("Push token registered", user_id=user_id)
