"""
Messaging Stores
================
Persistence contracts for messages and OTP challenges, with in-memory
implementations for tests and single-process deployments.

Every query excludes soft-deleted records.
"""

import copy
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from .models import Message, MessageChannel, MessageStatus, Otp

# Columns written by a conditional status update
STATUS_FIELDS = (
    "status", "sent_at", "delivered_at", "failed_at", "failure_reason", "updated_at",
)


class MessageStore(ABC):
    """Storage for outbound messages."""

    @abstractmethod
    async def add(self, message: Message) -> None:
        """Insert a new message."""

    @abstractmethod
    async def update(self, message: Message) -> None:
        """Persist the current state of an existing message."""

    @abstractmethod
    async def update_if_status(self, message: Message, expected_status: MessageStatus) -> bool:
        """
        Persist the delivery state of a message if its stored status is still
        ``expected_status``.

        Only the status columns (status, timestamps, failure reason) are
        written.

        Returns:
            True only for the caller whose update was applied
        """

    @abstractmethod
    async def get(self, message_id: str) -> Optional[Message]:
        """Fetch a message by id."""

    @abstractmethod
    async def get_by_sid(self, message_sid: str) -> Optional[Message]:
        """Fetch a message by provider correlation id."""

    @abstractmethod
    async def list(
        self,
        phone: Optional[str] = None,
        channel: Optional[MessageChannel] = None,
        status: Optional[MessageStatus] = None,
        limit: int = 50,
    ) -> List[Message]:
        """List messages, newest first."""


class OtpStore(ABC):
    """Storage for OTP challenges."""

    @abstractmethod
    async def add(self, otp: Otp) -> None:
        """Insert a new challenge."""

    @abstractmethod
    async def get_latest_valid(self, phone: str, now: datetime) -> Optional[Otp]:
        """Fetch the newest unused, unexpired challenge for a phone."""

    @abstractmethod
    async def mark_used(self, otp_id: str, now: datetime) -> bool:
        """
        Consume a challenge if it is still unused.

        Returns:
            True only for the caller whose update consumed it
        """

    @abstractmethod
    async def delete_expired(self, now: datetime) -> int:
        """Soft-delete expired challenges. Returns the number affected."""


class InMemoryMessageStore(MessageStore):
    """Dict-backed message store. Returns copies, like a database would."""

    def __init__(self):
        self._messages: Dict[str, Message] = {}

    async def add(self, message: Message) -> None:
        self._messages[message.id] = copy.copy(message)

    async def update(self, message: Message) -> None:
        if message.id not in self._messages:
            raise KeyError(message.id)
        self._messages[message.id] = copy.copy(message)

    async def update_if_status(self, message: Message, expected_status: MessageStatus) -> bool:
        # Check-and-set with no await in between
        stored = self._messages.get(message.id)
        if stored is None or stored.is_deleted or stored.status is not expected_status:
            return False
        for name in STATUS_FIELDS:
            setattr(stored, name, getattr(message, name))
        return True

    async def get(self, message_id: str) -> Optional[Message]:
        message = self._messages.get(message_id)
        if message is None or message.is_deleted:
            return None
        return copy.copy(message)

    async def get_by_sid(self, message_sid: str) -> Optional[Message]:
        for message in self._messages.values():
            if message.message_sid == message_sid and not message.is_deleted:
                return copy.copy(message)
        return None

    async def list(
        self,
        phone: Optional[str] = None,
        channel: Optional[MessageChannel] = None,
        status: Optional[MessageStatus] = None,
        limit: int = 50,
    ) -> List[Message]:
        results = [
            m for m in self._messages.values()
            if not m.is_deleted
            and (phone is None or m.recipient_phone_number == phone)
            and (channel is None or m.channel == channel)
            and (status is None or m.status == status)
        ]
        results.sort(key=lambda m: m.created_at, reverse=True)
        return [copy.copy(m) for m in results[:limit]]


class InMemoryOtpStore(OtpStore):
    """Dict-backed OTP store."""

    def __init__(self):
        self._otps: Dict[str, Otp] = {}

    async def add(self, otp: Otp) -> None:
        self._otps[otp.id] = copy.copy(otp)

    async def get_latest_valid(self, phone: str, now: datetime) -> Optional[Otp]:
        candidates = [
            otp for otp in self._otps.values()
            if otp.phone_number == phone and not otp.is_deleted and otp.is_valid_at(now)
        ]
        if not candidates:
            return None
        return copy.copy(max(candidates, key=lambda otp: otp.created_at))

    async def mark_used(self, otp_id: str, now: datetime) -> bool:
        # Check-and-set with no await in between
        otp = self._otps.get(otp_id)
        if otp is None or otp.is_deleted:
            return False
        return otp.mark_used(now)

    async def delete_expired(self, now: datetime) -> int:
        count = 0
        for otp in self._otps.values():
            if not otp.is_deleted and otp.is_expired_at(now):
                otp.is_deleted = True
                count += 1
        return count
