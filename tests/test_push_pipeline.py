"""
Unit Tests for Push Delivery
============================
Event bus, notification service and the NotificationCreated handler.
"""

import pytest

from conftest import FakePushProvider


@pytest.fixture
def notification_store():
    from smsly_messaging.push import InMemoryNotificationStore

    return InMemoryNotificationStore()


@pytest.fixture
def users():
    from smsly_messaging.push import InMemoryUserDirectory, PushProfile

    return InMemoryUserDirectory([
        PushProfile(user_id="with-token", push_token="token-1", language="en"),
        PushProfile(user_id="arabic", push_token="token-2", language="ar"),
        PushProfile(user_id="no-token", push_token=None),
    ])


@pytest.fixture
def push_provider():
    return FakePushProvider()


@pytest.fixture
def handler(notification_store, users, push_provider, clock):
    from smsly_messaging.push import NotificationCreatedHandler, PushNotificationSender

    return NotificationCreatedHandler(notification_store, users, PushNotificationSender(push_provider), clock=clock)


async def create(store, user_id, **kwargs):
    from smsly_messaging.push import Notification, NotificationCreatedEvent

    notification = Notification(
        user_id=user_id,
        title=kwargs.pop("title", "Booking confirmed"),
        body=kwargs.pop("body", "See you at 10:00"),
        **kwargs,
    )
    await store.add(notification)
    return notification, NotificationCreatedEvent(notification_id=notification.id, user_id=user_id)


class TestNotificationCreatedHandler:
    """Tests for the push delivery handler."""

    @pytest.mark.asyncio
    async def test_sends_and_marks_sent(self, handler, notification_store, push_provider):
        """A user with a token should receive the push."""
        from smsly_messaging.push import NotificationPriority, NotificationStatus, NotificationType

        notification, event = await create(
            notification_store, "with-token",
            type=NotificationType.ALERT,
            priority=NotificationPriority.HIGH,
            action_url="app://bookings/1",
        )

        await handler(event)

        stored = await notification_store.get(notification.id)
        assert stored.status == NotificationStatus.SENT
        assert push_provider.sent[0]["token"] == "token-1"
        assert push_provider.sent[0]["title"] == "Booking confirmed"
        assert push_provider.sent[0]["data"] == {
            "notificationId": notification.id,
            "type": "alert",
            "priority": "high",
            "actionUrl": "app://bookings/1",
        }

    @pytest.mark.asyncio
    async def test_no_token_stays_pending(self, handler, notification_store, push_provider):
        """A user without a token should leave the notification Pending."""
        from smsly_messaging.push import NotificationStatus

        notification, event = await create(notification_store, "no-token")

        await handler(event)

        stored = await notification_store.get(notification.id)
        assert stored.status == NotificationStatus.PENDING
        assert push_provider.sent == []

    @pytest.mark.asyncio
    async def test_missing_user_marks_failed(self, handler, notification_store, push_provider):
        """An unknown user should fail the notification."""
        from smsly_messaging.push import NotificationStatus

        notification, event = await create(notification_store, "ghost")

        await handler(event)

        stored = await notification_store.get(notification.id)
        assert stored.status == NotificationStatus.FAILED
        assert push_provider.sent == []

    @pytest.mark.asyncio
    async def test_missing_notification_is_ignored(self, handler, push_provider):
        """An unknown notification should be logged and skipped."""
        from smsly_messaging.push import NotificationCreatedEvent

        await handler(NotificationCreatedEvent(notification_id="missing", user_id="with-token"))

        assert push_provider.sent == []

    @pytest.mark.asyncio
    async def test_arabic_localization(self, handler, notification_store, push_provider):
        """Arabic users should receive the Arabic pair."""
        _, event = await create(notification_store, "arabic", title_ar="تم التأكيد", body_ar="نراك")

        await handler(event)

        assert push_provider.sent[0]["title"] == "تم التأكيد"
        assert push_provider.sent[0]["body"] == "نراك"

    @pytest.mark.asyncio
    async def test_provider_failure_marks_failed(self, handler, notification_store, push_provider):
        """A provider failure should fail the notification."""
        from smsly_messaging.push import NotificationStatus

        push_provider.success = False
        notification, event = await create(notification_store, "with-token")

        await handler(event)

        assert (await notification_store.get(notification.id)).status == NotificationStatus.FAILED

    @pytest.mark.asyncio
    async def test_provider_exception_marks_failed(self, handler, notification_store, push_provider):
        """A provider exception should be caught and fail the notification."""
        from smsly_messaging.push import NotificationStatus

        push_provider.error = ConnectionError("FCM unreachable")
        notification, event = await create(notification_store, "with-token")

        await handler(event)

        assert (await notification_store.get(notification.id)).status == NotificationStatus.FAILED

    @pytest.mark.asyncio
    async def test_replay_is_skipped(self, handler, notification_store, push_provider):
        """A replayed event should not send twice."""
        _, event = await create(notification_store, "with-token")

        await handler(event)
        await handler(event)

        assert len(push_provider.sent) == 1


class TestEventBus:
    """Tests for the asyncio event bus."""

    @pytest.mark.asyncio
    async def test_dispatch_by_type(self):
        """Handlers should receive only their event type."""
        from smsly_messaging.push import DomainEvent, EventBus, NotificationCreatedEvent

        received = []

        async def on_created(event):
            received.append(event)

        bus = EventBus(workers=2)
        bus.subscribe(NotificationCreatedEvent, on_created)
        await bus.start()

        await bus.publish(NotificationCreatedEvent(notification_id="n1", user_id="u1"))
        await bus.publish(DomainEvent())
        await bus.stop()

        assert [e.notification_id for e in received] == ["n1"]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_block_others(self):
        """One failing handler should not stop the next."""
        from smsly_messaging.push import EventBus, NotificationCreatedEvent

        received = []

        async def broken(event):
            raise RuntimeError("boom")

        async def working(event):
            received.append(event.notification_id)

        bus = EventBus(workers=1)
        bus.subscribe(NotificationCreatedEvent, broken)
        bus.subscribe(NotificationCreatedEvent, working)
        await bus.start()

        await bus.publish(NotificationCreatedEvent(notification_id="n1", user_id="u1"))
        await bus.join()
        await bus.stop()

        assert received == ["n1"]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        """An unsubscribed handler should no longer receive events."""
        from smsly_messaging.push import EventBus, NotificationCreatedEvent

        received = []

        async def on_created(event):
            received.append(event.notification_id)

        bus = EventBus(workers=1)
        bus.subscribe(NotificationCreatedEvent, on_created)
        await bus.dispatch(NotificationCreatedEvent(notification_id="n1", user_id="u1"))

        bus.unsubscribe(NotificationCreatedEvent, on_created)
        bus.unsubscribe(NotificationCreatedEvent, on_created)
        await bus.dispatch(NotificationCreatedEvent(notification_id="n2", user_id="u1"))

        assert received == ["n1"]

    def test_event_to_dict(self):
        """Events should serialize their identity and payload."""
        from smsly_messaging.push import NotificationCreatedEvent

        event = NotificationCreatedEvent(notification_id="n1", user_id="u1")
        data = event.to_dict()

        assert data["event_type"] == "NotificationCreatedEvent"
        assert data["event_id"] == event.event_id
        assert data["occurred_at"] == event.occurred_at.isoformat()
        assert data["notification_id"] == "n1"
        assert data["user_id"] == "u1"


class TestNotificationService:
    """Tests for notification creation and read state."""

    @pytest.mark.asyncio
    async def test_create_publishes_and_delivers(self, notification_store, users, handler, push_provider, clock):
        """Creating a notification should end in a push."""
        from smsly_messaging.push import EventBus, NotificationService, NotificationStatus

        bus = EventBus(workers=1)
        handler.register(bus)
        await bus.start()
        service = NotificationService(notification_store, bus, users, clock=clock)

        notification = await service.create("with-token", "Title", "Body")
        await bus.stop()

        assert (await notification_store.get(notification.id)).status == NotificationStatus.SENT
        assert len(push_provider.sent) == 1

    @pytest.mark.asyncio
    async def test_cursor_paging(self, notification_store, clock):
        """Pages should follow the cursor newest first."""
        from smsly_messaging.push import EventBus, NotificationService

        service = NotificationService(notification_store, EventBus(), clock=clock)
        created = []
        for i in range(5):
            created.append(await service.create("u1", f"Title {i}", "Body"))
            clock.advance(seconds=1)

        page, has_more = await service.list("u1", page_size=2)
        assert [n.title for n in page] == ["Title 4", "Title 3"]
        assert has_more is True

        page, has_more = await service.list("u1", last_notification_id=page[-1].id, page_size=2)
        assert [n.title for n in page] == ["Title 2", "Title 1"]

        page, has_more = await service.list("u1", last_notification_id=page[-1].id, page_size=2)
        assert [n.title for n in page] == ["Title 0"]
        assert has_more is False

    @pytest.mark.asyncio
    async def test_time_filter(self, notification_store, clock):
        """Time filters should bucket by creation day."""
        from smsly_messaging.push import EventBus, NotificationService, NotificationTimeFilter

        service = NotificationService(notification_store, EventBus(), clock=clock)
        await service.create("u1", "Old", "Body")
        clock.advance(days=1)
        await service.create("u1", "Yesterday", "Body")
        clock.advance(days=1)
        await service.create("u1", "Today", "Body")

        today, _ = await service.list("u1", time_filter=NotificationTimeFilter.TODAY)
        yesterday, _ = await service.list("u1", time_filter=NotificationTimeFilter.YESTERDAY)
        earlier, _ = await service.list("u1", time_filter=NotificationTimeFilter.EARLIER)

        assert [n.title for n in today] == ["Today"]
        assert [n.title for n in yesterday] == ["Yesterday"]
        assert [n.title for n in earlier] == ["Old"]

    @pytest.mark.asyncio
    async def test_read_and_mark_all(self, notification_store, clock):
        """Read toggles and mark-all should update the store."""
        from smsly_messaging.push import EventBus, NotificationNotFoundError, NotificationService

        service = NotificationService(notification_store, EventBus(), clock=clock)
        first = await service.create("u1", "One", "Body")
        await service.create("u1", "Two", "Body")
        await service.create("u2", "Other", "Body")

        updated = await service.set_read(first.id)
        assert updated.is_read is True
        assert await service.mark_all_read("u1") == 1
        assert await service.mark_all_read("u1") == 0

        await service.set_read(first.id, is_read=False)
        assert (await notification_store.get(first.id)).is_read is False

        with pytest.raises(NotificationNotFoundError):
            await service.set_read("missing")

    @pytest.mark.asyncio
    async def test_register_push_token(self, notification_store, users):
        """Registering a token should enable push for the user."""
        from smsly_messaging.push import EventBus, NotificationService

        service = NotificationService(notification_store, EventBus(), users)

        assert await service.has_push_token("no-token") is False
        await service.register_push_token("no-token", " new-token ", language="ar")
        assert await service.has_push_token("no-token") is True

    @pytest.mark.asyncio
    async def test_page_size_bounds(self, notification_store):
        """Page sizes outside 1..100 should be rejected."""
        from smsly_messaging.errors import MessageValidationError
        from smsly_messaging.push import EventBus, NotificationService

        service = NotificationService(notification_store, EventBus())

        with pytest.raises(MessageValidationError):
            await service.list("u1", page_size=0)
