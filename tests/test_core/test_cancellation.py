"""Tests for cancellation tokens."""

import pytest

from core.cancellation import CancellationToken, OperationCancelled


class TestCancellationToken:

    def test_starts_uncancelled(self):
        token = CancellationToken()
        assert token.cancelled is False
        token.raise_if_cancelled()

    def test_cancel(self):
        token = CancellationToken()
        token.cancel()

        assert token.cancelled is True
        with pytest.raises(OperationCancelled):
            token.raise_if_cancelled()

    def test_child_follows_parent(self):
        parent = CancellationToken()
        child = parent.child()

        parent.cancel()

        assert child.cancelled is True

    def test_child_cancel_does_not_affect_parent(self):
        parent = CancellationToken()
        child = parent.child()

        child.cancel()

        assert parent.cancelled is False

    def test_callbacks_run_once(self):
        token = CancellationToken()
        calls = []
        token.on_cancel(lambda: calls.append("a"))

        token.cancel()
        token.cancel()

        assert calls == ["a"]

    def test_callback_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []

        token.on_cancel(lambda: calls.append("late"))

        assert calls == ["late"]
