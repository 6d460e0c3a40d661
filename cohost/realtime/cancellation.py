"""
Cooperative Cancellation

A CancellationToken is cancelled at most once. The cause passed with the
first cancel() is kept and later calls are ignored, so whoever notices a
failure first decides why the run ended.

Child tokens observe their parent: cancelling the parent cancels every live
child with the parent's cause, while cancelling a child leaves the parent
untouched.
"""

import asyncio
import weakref
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


class TokenCancelled(Exception):
    """Raised by CancellationToken.guard() when the token fires first."""

    def __init__(self, cause: Optional[BaseException] = None):
        super().__init__(f"Operation cancelled: {cause!r}")
        self.cause = cause


class CancellationToken:
    """
    One-shot cancellation signal carrying an immutable cause.

    Usage:
        token = CancellationToken()
        attempt = token.child()
        token.cancel(RuntimeError("ffmpeg died"))
        assert attempt.cancelled
        assert isinstance(attempt.cause, RuntimeError)
    """

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._event = asyncio.Event()
        self._cause: Optional[BaseException] = None
        self._children: "weakref.WeakSet[CancellationToken]" = weakref.WeakSet()

        if parent is not None:
            parent._adopt(self)

    def _adopt(self, child: "CancellationToken") -> None:
        if self.cancelled:
            child.cancel(self._cause)
        else:
            self._children.add(child)

    def child(self) -> "CancellationToken":
        """Create a token that is cancelled together with this one."""
        return CancellationToken(parent=self)

    def cancel(self, cause: Optional[BaseException] = None) -> bool:
        """
        Cancel the token.

        Args:
            cause: Why the token was cancelled; None means a clean stop

        Returns:
            True if this call cancelled the token, False if it already was
        """
        if self._event.is_set():
            return False

        self._cause = cause
        self._event.set()

        for child in list(self._children):
            child.cancel(cause)
        self._children.clear()
        return True

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def cause(self) -> Optional[BaseException]:
        """The cause given on first cancellation."""
        return self._cause

    async def wait(self) -> None:
        """Wait until the token is cancelled."""
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await an operation unless the token is cancelled first.

        Raises:
            TokenCancelled: If the token fires before the operation
                completes; the operation is cancelled
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise TokenCancelled(self._cause)

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        raise TokenCancelled(self._cause)
