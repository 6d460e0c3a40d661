"""
Tests for cooperative cancellation tokens.
"""

import asyncio

import pytest

from cohost.realtime.cancellation import CancellationToken, TokenCancelled


class TestCancellationToken:
    """Tests for first-cause-wins cancellation."""

    @pytest.mark.asyncio
    async def test_first_cause_is_kept(self):
        token = CancellationToken()
        first = RuntimeError("ffmpeg died")

        assert token.cancel(first) is True
        assert token.cancel(ValueError("later")) is False
        assert token.cancel(None) is False

        assert token.cancelled
        assert token.cause is first

    @pytest.mark.asyncio
    async def test_clean_stop_has_no_cause(self):
        token = CancellationToken()
        token.cancel()
        assert token.cancelled
        assert token.cause is None

    @pytest.mark.asyncio
    async def test_parent_cancels_children(self):
        parent = CancellationToken()
        child = parent.child()
        grandchild = child.child()

        cause = RuntimeError("stop")
        parent.cancel(cause)

        assert child.cancelled and grandchild.cancelled
        assert grandchild.cause is cause

    @pytest.mark.asyncio
    async def test_child_does_not_cancel_parent(self):
        parent = CancellationToken()
        child = parent.child()

        child.cancel(RuntimeError("attempt failed"))

        assert child.cancelled
        assert not parent.cancelled

    @pytest.mark.asyncio
    async def test_child_of_cancelled_parent_starts_cancelled(self):
        parent = CancellationToken()
        cause = RuntimeError("gone")
        parent.cancel(cause)

        child = parent.child()
        assert child.cancelled
        assert child.cause is cause

    @pytest.mark.asyncio
    async def test_wait_returns_after_cancel(self):
        token = CancellationToken()
        waiter = asyncio.create_task(token.wait())
        await asyncio.sleep(0.01)
        assert not waiter.done()

        token.cancel()
        await asyncio.wait_for(waiter, timeout=1.0)


class TestGuard:
    """Tests for racing an operation against the token."""

    @pytest.mark.asyncio
    async def test_guard_returns_result(self):
        token = CancellationToken()

        async def work():
            return 42

        assert await token.guard(work()) == 42

    @pytest.mark.asyncio
    async def test_guard_raises_when_cancelled_first(self):
        token = CancellationToken()
        started = asyncio.Event()
        cancelled = asyncio.Event()

        async def slow():
            started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        guarded = asyncio.create_task(token.guard(slow()))
        await started.wait()

        cause = RuntimeError("stop")
        token.cancel(cause)

        with pytest.raises(TokenCancelled) as exc_info:
            await asyncio.wait_for(guarded, timeout=1.0)
        assert exc_info.value.cause is cause
        assert cancelled.is_set()

    @pytest.mark.asyncio
    async def test_guard_on_cancelled_token(self):
        token = CancellationToken()
        token.cancel()

        async def never_run():
            raise AssertionError("should not run")

        with pytest.raises(TokenCancelled):
            await token.guard(never_run())

    @pytest.mark.asyncio
    async def test_guard_propagates_errors(self):
        token = CancellationToken()

        async def broken():
            raise ValueError("bad")

        with pytest.raises(ValueError, match="bad"):
            await token.guard(broken())
