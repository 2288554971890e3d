"""Cancellation signals for cache requests.

A LoadingCache owns one root CancelToken; closing the cache cancels it.
Every request runs under a child token following the root and, optionally,
a caller-supplied token, so either side can stop the request.
"""

import threading
import time
from typing import Iterable, Optional


class CancelToken:
    """Cancellation signal with an optional deadline.

    A token counts as cancelled once cancel() was called on it, once its
    deadline has passed, or once any of its parents is cancelled.

    Examples:
        >>> token = CancelToken(timeout=5)
        >>> cache.get_file(GetRequest(key='a.txt', loader=load, cancel=token))
        >>> token.cancel('user went away')  # from another thread
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        parents: Iterable[Optional["CancelToken"]] = (),
    ):
        """Initialize the token.

        Args:
            timeout: Seconds from now until the token cancels itself
            parents: Tokens whose cancellation also cancels this one
        """
        self._event = threading.Event()
        self._reason: Optional[str] = None
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._parents = [p for p in parents if p is not None]

    def cancel(self, reason: str = "request cancelled") -> None:
        """Cancel the token; the first reason given wins."""
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self.reason is not None

    @property
    def reason(self) -> Optional[str]:
        """Cancellation cause, or None while the token is live."""
        if self._event.is_set():
            return self._reason
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return "deadline exceeded"
        for parent in self._parents:
            reason = parent.reason
            if reason is not None:
                return reason
        return None

    def child(self, *others: Optional["CancelToken"]) -> "CancelToken":
        """Return a token cancelled together with this one and `others`."""
        return CancelToken(parents=(self,) + others)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancel() is called on this token or timeout elapses.

        Only this token's own cancel() wakes the wait; parents and deadlines
        are checked when it returns.
        """
        self._event.wait(timeout)
        return self.cancelled
