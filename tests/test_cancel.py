"""Tests for request cancellation tokens."""

import threading

from fcache.cancel import CancelToken


class TestCancelToken:
    """Test CancelToken state."""

    def test_live_until_cancelled(self):
        token = CancelToken()

        assert not token.cancelled
        assert token.reason is None

        token.cancel("done")

        assert token.cancelled
        assert token.reason == "done"

    def test_first_reason_wins(self):
        token = CancelToken()
        token.cancel("first")
        token.cancel("second")

        assert token.reason == "first"

    def test_deadline(self):
        """Test that a token cancels itself once its timeout passes."""
        assert CancelToken(timeout=0).reason == "deadline exceeded"
        assert not CancelToken(timeout=3600).cancelled

    def test_child_follows_parents(self):
        """Test that a child is cancelled by any of its parents."""
        root = CancelToken()
        request = CancelToken()
        child = root.child(request)

        request.cancel("client went away")

        assert child.reason == "client went away"
        assert not root.cancelled

    def test_child_ignores_missing_parent(self):
        root = CancelToken()
        child = root.child(None)

        root.cancel("closed")

        assert child.reason == "closed"

    def test_cancelling_child_leaves_parent(self):
        root = CancelToken()
        child = root.child()

        child.cancel()

        assert child.cancelled
        assert not root.cancelled

    def test_wait_wakes_on_cancel(self):
        """Test that wait returns as soon as another thread cancels."""
        token = CancelToken()
        timer = threading.Timer(0.01, token.cancel, args=("stop",))
        timer.start()

        assert token.wait(5) is True
        timer.join()

    def test_wait_times_out(self):
        assert CancelToken().wait(0.01) is False
