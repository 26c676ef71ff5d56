"""Cooperative cancellation for crawl jobs.

A CancellationToken is created by the caller, handed to a job, and checked
at every suspend point: navigation, each dynamic-content wait and every
backoff delay. Awaiting through ``token.race()`` or ``token.sleep()``
returns as soon as the token fires instead of running to completion.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

from .errors import CrawlAborted

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """One-shot, observable cancellation signal for a single job."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "Operation aborted") -> bool:
        """Fire the token.

        Returns:
            False if the token had already fired, True otherwise
        """
        if self._event.is_set():
            return False

        self._reason = reason
        self._event.set()
        logger.info(f"Cancellation requested: {reason}")

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cancellation callback failed: {e}")
        return True

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` when the token fires (immediately if it already has)."""
        if self._event.is_set():
            callback()
        else:
            self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CrawlAborted(self._reason or "Operation aborted")

    async def wait(self) -> None:
        await self._event.wait()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        Raises:
            CrawlAborted: If the token fired before the operation completed.
                The operation is cancelled.
        """
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise CrawlAborted(self._reason or "Operation aborted")

        operation = asyncio.ensure_future(awaitable)
        watcher = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({operation, watcher}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            operation.cancel()
            raise
        finally:
            watcher.cancel()

        if operation.done():
            return operation.result()

        operation.cancel()
        try:
            await operation
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Operation raised while being aborted: {e}")
        raise CrawlAborted(self._reason or "Operation aborted")

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds``; raises CrawlAborted if the token fires first."""
        if seconds <= 0:
            self.raise_if_cancelled()
            return
        await self.race(asyncio.sleep(seconds))
