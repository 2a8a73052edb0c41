"""
Tests for toasts and the inbox.

These tests verify the visible-toast cap, self-expiring timers, dismissal and the
read/unread bookkeeping of the inbox.
"""

import asyncio

import pytest

from client.notifications import (
    Inbox,
    NotificationCenter,
    NotificationType,
    ToastScheduler,
)
from core.config import SyncSettings


class TestToastCap:
    """Tests for the newest-first, capped toast list."""

    @pytest.mark.asyncio
    async def test_sixth_toast_evicts_oldest(self, toasts: ToastScheduler):
        shown = [toasts.show_toast(NotificationType.INFO, f"toast {n}", persistent=True) for n in range(6)]

        visible = toasts.toasts
        assert len(visible) == 5
        assert visible[0].id == shown[5].id
        assert shown[0].id not in {t.id for t in visible}

    @pytest.mark.asyncio
    async def test_custom_cap(self):
        toasts = ToastScheduler(SyncSettings(max_toasts=2))

        for n in range(4):
            toasts.show_info(f"toast {n}")

        assert [t.title for t in toasts.toasts] == ["toast 3", "toast 2"]

    @pytest.mark.asyncio
    async def test_helpers_set_type(self, toasts: ToastScheduler):
        toasts.show_success("ok")
        toasts.show_error("bad")
        toasts.show_warning("careful")

        assert [t.type for t in toasts.toasts] == [
            NotificationType.WARNING,
            NotificationType.ERROR,
            NotificationType.SUCCESS,
        ]


class TestToastExpiry:
    """Tests for toast timers."""

    @pytest.mark.asyncio
    async def test_toast_expires_after_default_duration(self, toasts: ToastScheduler, settings: SyncSettings):
        toasts.show_info("goal!")

        await asyncio.sleep(settings.toast_duration_seconds * 3)

        assert toasts.toasts == []

    @pytest.mark.asyncio
    async def test_explicit_duration_overrides_default(self, toasts: ToastScheduler, settings: SyncSettings):
        toasts.show_toast(NotificationType.INFO, "slow", duration=10.0)

        await asyncio.sleep(settings.toast_duration_seconds * 3)

        assert [t.title for t in toasts.toasts] == ["slow"]
        toasts.dismiss_toast(toasts.toasts[0].id)

    @pytest.mark.asyncio
    async def test_persistent_toast_stays(self, toasts: ToastScheduler, settings: SyncSettings):
        toast = toasts.show_toast(NotificationType.WARNING, "offline", persistent=True)

        await asyncio.sleep(settings.toast_duration_seconds * 3)

        assert [t.id for t in toasts.toasts] == [toast.id]

    @pytest.mark.asyncio
    async def test_dismiss_cancels_timer(self, toasts: ToastScheduler):
        toast = toasts.show_info("bye")
        timer = toast._timer

        assert toasts.dismiss_toast(toast.id) is True
        assert timer.cancelled()
        assert toasts.toasts == []

    @pytest.mark.asyncio
    async def test_hide_leaves_timer_running_harmlessly(self, toasts: ToastScheduler, settings: SyncSettings):
        toast = toasts.show_info("bye")

        assert toasts.hide_toast(toast.id) is True
        assert toasts.hide_toast(toast.id) is False

        await asyncio.sleep(settings.toast_duration_seconds * 3)
        assert toasts.toasts == []

    @pytest.mark.asyncio
    async def test_evicted_toast_timer_does_nothing(self, settings: SyncSettings):
        toasts = ToastScheduler(SyncSettings(max_toasts=1, toast_duration_seconds=0.05))
        toasts.show_info("first")
        second = toasts.show_toast(NotificationType.INFO, "second", persistent=True)

        await asyncio.sleep(0.15)

        assert [t.id for t in toasts.toasts] == [second.id]

    def test_show_toast_requires_running_loop(self, toasts: ToastScheduler):
        with pytest.raises(RuntimeError):
            toasts.show_info("no loop")


class TestInbox:
    """Tests for inbox bookkeeping."""

    def test_newest_first_and_unread(self):
        inbox = Inbox()
        first = inbox.add_notification(NotificationType.INFO, "one", "first")
        second = inbox.add_notification(NotificationType.INFO, "two", "second")

        assert [n.id for n in inbox.notifications] == [second.id, first.id]
        assert inbox.unread_count == 2

    def test_mark_as_read(self):
        inbox = Inbox()
        first = inbox.add_notification(NotificationType.INFO, "one", "first")
        inbox.add_notification(NotificationType.INFO, "two", "second")

        inbox.mark_as_read(first.id)

        assert inbox.unread_count == 1
        assert [n.read for n in inbox.notifications] == [False, True]

    def test_mark_all_and_remove(self):
        inbox = Inbox()
        first = inbox.add_notification(NotificationType.INFO, "one", "first")
        inbox.add_notification(NotificationType.SUCCESS, "two", "second")

        inbox.mark_all_as_read()
        inbox.remove_notification(first.id)

        assert inbox.unread_count == 0
        assert [n.title for n in inbox.notifications] == ["two"]

    def test_clear_all(self):
        inbox = Inbox()
        inbox.add_notification(NotificationType.INFO, "one", "first")

        inbox.clear_all_notifications()

        assert inbox.notifications == []


class TestNotificationCenter:

    @pytest.mark.asyncio
    async def test_reset_clears_both(self, settings: SyncSettings):
        center = NotificationCenter(settings)
        center.toasts.show_toast(NotificationType.INFO, "hi", persistent=True)
        center.inbox.add_notification(NotificationType.INFO, "one", "first")

        center.reset()

        assert center.toasts.toasts == []
        assert center.unread_count == 0
