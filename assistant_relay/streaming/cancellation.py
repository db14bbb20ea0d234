"""Cooperative cancellation shared by the relay, the adapter and the consumer."""

import asyncio


class StreamCancelled(Exception):
    """Raised at a suspension point once the token has been cancelled."""


class CancellationToken:
    """One-shot cancellation flag checked at every suspension point."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise StreamCancelled(self.reason)

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds, waking early if cancelled.

        Raises:
            StreamCancelled: If the token is cancelled before or during the wait.
        """
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except TimeoutError:
            return
        raise StreamCancelled(self.reason)
