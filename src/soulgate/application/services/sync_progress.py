"""Observable sync lifecycle state."""

import asyncio
import logging
from types import TracebackType

from soulgate.domain.entities import SyncIdle, SyncState, is_terminal

logger = logging.getLogger(__name__)


class SyncSubscription:
    """Async iterator over sync states for a single observer.

    The first item is the state that was current when subscribing. Iteration
    ends after unsubscribe. Use as ``async with publisher.subscribe() as sub``
    so the subscription is removed even if the consumer goes away mid-stream.
    """

    def __init__(self, publisher: "SyncProgressPublisher", initial: SyncState) -> None:
        self._publisher = publisher
        # None is the end-of-stream marker.
        self._queue: asyncio.Queue[SyncState | None] = asyncio.Queue()
        self._queue.put_nowait(initial)
        self._closed = False

    def _push(self, state: SyncState) -> None:
        if not self._closed:
            self._queue.put_nowait(state)

    def _close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(None)

    @property
    def pending(self) -> int:
        """Number of states delivered but not consumed yet."""
        return self._queue.qsize()

    def __aiter__(self) -> "SyncSubscription":
        return self

    async def __anext__(self) -> SyncState:
        state = await self._queue.get()
        if state is None:
            raise StopAsyncIteration
        return state

    async def __aenter__(self) -> "SyncSubscription":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._publisher.unsubscribe(self)


# Hey future me, publish() is SYNCHRONOUS on purpose! The sync worker calls it between awaits,
# so state changes land in every queue in exactly the order they happened, and a slow SSE
# client can never stall a sync cycle. Queues are unbounded; a subscriber that never reads
# just accumulates a handful of small frozen dataclasses per cycle.
class SyncProgressPublisher:
    """Holds the current SyncState and fans transitions out to subscribers."""

    def __init__(self, initial: SyncState | None = None) -> None:
        self._current: SyncState = initial if initial is not None else SyncIdle()
        self._subscribers: list[SyncSubscription] = []

    @property
    def current(self) -> SyncState:
        """Current state, readable at any time without awaiting."""
        return self._current

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> SyncSubscription:
        """Register an observer; the current state is delivered first."""
        subscription = SyncSubscription(self, self._current)
        self._subscribers.append(subscription)
        logger.debug(
            "sync_progress.subscribed", extra={"subscribers": len(self._subscribers)}
        )
        return subscription

    def unsubscribe(self, subscription: SyncSubscription) -> None:
        """Remove an observer and end its iteration. Safe to call twice."""
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
        subscription._close()

    def publish(self, state: SyncState) -> None:
        """Make ``state`` current and deliver it to every subscriber.

        Only the sync worker calls this.
        """
        self._current = state
        for subscription in self._subscribers:
            subscription._push(state)
        if is_terminal(state):
            logger.debug(
                "sync_progress.settled",
                extra={"status": state.status, "subscribers": len(self._subscribers)},
            )
