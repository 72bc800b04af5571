"""
Local order book kept consistent with the exchange.

The synchronizer subscribes to the book's update stream and fetches one
snapshot concurrently. Updates that arrive before the snapshot are buffered,
then replayed in arrival order once the snapshot has been installed.

Sequence check for deltas that carry markers (``sequence``/``prev_sequence``):

- a delta whose sequence is not newer than the last applied one is stale
  and skipped;
- the first delta applied on top of a snapshot must satisfy
  ``prev_sequence <= snapshot sequence``;
- every later delta must satisfy ``prev_sequence == last applied sequence``.

Anything else is a gap: the book moves to RESYNCING and, with ``auto_resync``
on, a new snapshot is requested in the background. Deltas without markers are
applied as they come.
"""
import asyncio
import logging
import threading
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Tuple

from ..config import OrderBookOptions, SocketClientOptions
from ..exceptions import ExchangeConnectionError, HuobiError, SyncTimeoutError
from ..helpers import validate_symbol
from ..monitoring.metrics import ClientMetrics
from ..results import CallResult
from ..websocket.socket_client import HuobiSocketClient
from .book_side import BookSide
from .decoder import BookUpdate, HuobiBookDecoder
from .models import BookState, OrderBookDelta, OrderBookSnapshot, PriceLevel

logger = logging.getLogger(__name__)

MessageCallback = Callable[[Any], None]
StateCallback = Callable[[BookState, BookState], None]
BookCallback = Callable[['OrderBookSynchronizer'], None]

# States in which stream messages are processed
_LIVE_STATES = (
    BookState.AWAITING_SNAPSHOT,
    BookState.BUFFERING,
    BookState.SYNCED,
    BookState.RESYNCING,
)

# States in which a requested snapshot is still expected
_SNAPSHOT_STATES = (
    BookState.AWAITING_SNAPSHOT,
    BookState.BUFFERING,
    BookState.RESYNCING,
)


class SubscriptionHandle(Protocol):
    """Cancelable stream subscription."""

    async def close(self) -> None:
        ...


class OrderBookSource(Protocol):
    """Delivers book updates for a symbol and serves one-shot snapshots."""

    async def subscribe_order_book(
        self,
        symbol: str,
        merge_step: int,
        callback: MessageCallback
    ) -> SubscriptionHandle:
        ...

    async def request_order_book_snapshot(self, symbol: str, merge_step: int) -> Optional[Any]:
        ...


class BookDecoder(Protocol):
    def decode(self, message: Any) -> Optional[BookUpdate]:
        ...


class OrderBookSynchronizer:
    """
    Owns one symbol's bids and asks.

    Readers on other threads must hold `lock` while they combine several
    reads; each property on its own is already taken under the lock.
    """

    def __init__(
        self,
        symbol: str,
        source: OrderBookSource,
        decoder: Optional[BookDecoder] = None,
        options: Optional[OrderBookOptions] = None,
        metrics: Optional[ClientMetrics] = None,
        on_disposed: Optional[Callable[[], Awaitable[None]]] = None
    ):
        """
        Initialize the synchronizer.

        Args:
            symbol: Symbol of the book, e.g. 'ethbtc'
            source: Update stream and snapshot provider
            decoder: Turns raw messages into snapshots and deltas
            options: Synchronization options
            metrics: Optional metrics collector
            on_disposed: Coroutine function awaited once the book is disposed
        """
        self.symbol = validate_symbol(symbol)
        self.options = options or OrderBookOptions()
        self.on_state_changed: Optional[StateCallback] = None
        self.on_book_updated: Optional[BookCallback] = None

        self._source = source
        self._decoder = decoder or HuobiBookDecoder()
        self._metrics = metrics
        self._on_disposed = on_disposed

        self._lock = threading.RLock()
        self._bids = BookSide(descending=True)
        self._asks = BookSide(descending=False)
        self._buffer: List[OrderBookDelta] = []
        self._state = BookState.DISCONNECTED
        self._last_sequence: Optional[int] = None
        self._last_update: Optional[datetime] = None
        self._first_after_snapshot = False
        self._error: Optional[HuobiError] = None

        self._subscription: Optional[SubscriptionHandle] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._snapshot_installed: Optional[asyncio.Event] = None
        self._syncing = False
        self._resync_requested = False
        self._resync_reason: Optional[str] = None
        self._tasks: set = set()
        self._fetches: set = set()
        self._generation = 0

    # Readers

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def state(self) -> BookState:
        with self._lock:
            return self._state

    @property
    def bids(self) -> List[PriceLevel]:
        """Bids, best (highest) first."""
        with self._lock:
            return self._bids.levels()

    @property
    def asks(self) -> List[PriceLevel]:
        """Asks, best (lowest) first."""
        with self._lock:
            return self._asks.levels()

    @property
    def best_bid(self) -> Optional[PriceLevel]:
        with self._lock:
            return self._bids.best()

    @property
    def best_ask(self) -> Optional[PriceLevel]:
        with self._lock:
            return self._asks.best()

    @property
    def best_offers(self) -> Tuple[Optional[PriceLevel], Optional[PriceLevel]]:
        """Best bid and best ask, read atomically."""
        with self._lock:
            return self._bids.best(), self._asks.best()

    @property
    def bid_count(self) -> int:
        with self._lock:
            return len(self._bids)

    @property
    def ask_count(self) -> int:
        with self._lock:
            return len(self._asks)

    @property
    def last_sequence(self) -> Optional[int]:
        with self._lock:
            return self._last_sequence

    @property
    def last_update(self) -> Optional[datetime]:
        with self._lock:
            return self._last_update

    def snapshot(self, depth: Optional[int] = None) -> OrderBookSnapshot:
        """Consistent copy of the book, optionally limited to `depth` levels per side."""
        with self._lock:
            return OrderBookSnapshot(
                symbol=self.symbol,
                timestamp=self._last_update,
                bids=tuple(self._bids.levels(depth)),
                asks=tuple(self._asks.levels(depth)),
                sequence=self._last_sequence
            )

    # Lifecycle

    async def start(self) -> CallResult[bool]:
        """
        Subscribe, fetch a snapshot and wait until the book is synced.

        Returns:
            CallResult(True) once synced; otherwise the error that left the
            book FAULTED (SyncTimeoutError, ExchangeConnectionError, ServerError)
        """
        with self._lock:
            if self._state == BookState.DISPOSED:
                return CallResult.fail(HuobiError(f"Order book {self.symbol} is disposed"))
            if self._state != BookState.DISCONNECTED:
                return CallResult.fail(HuobiError(f"Order book {self.symbol} is already started"))
            self._loop = asyncio.get_running_loop()
            self._set_state(BookState.AWAITING_SNAPSHOT)

        logger.info("Starting order book for %s", self.symbol)
        return await self._synchronize()

    async def resync(self) -> CallResult[bool]:
        """
        Fetch a new snapshot and replay the updates received meanwhile.

        The update subscription is kept; it is only re-established when a
        previous subscribe attempt failed.
        """
        with self._lock:
            if self._state == BookState.DISPOSED:
                return CallResult.fail(HuobiError(f"Order book {self.symbol} is disposed"))
            if self._state == BookState.DISCONNECTED:
                return CallResult.fail(HuobiError(f"Order book {self.symbol} is not started"))
            if self._syncing:
                return CallResult.fail(HuobiError(f"Order book {self.symbol} is already synchronizing"))
            self._loop = asyncio.get_running_loop()
            self._buffer.clear()
            self._set_state(BookState.RESYNCING)
            reason = self._resync_reason or 'requested'
            self._resync_reason = None

        logger.info("Resynchronizing order book for %s (%s)", self.symbol, reason)
        if self._metrics:
            self._metrics.record_resync(self.symbol, reason)
        return await self._synchronize()

    async def dispose(self) -> None:
        """Release the subscription and clear the book. Safe to call repeatedly."""
        with self._lock:
            if self._state == BookState.DISPOSED:
                return
            handle, self._subscription = self._subscription, None
            self._buffer.clear()
            self._bids.clear()
            self._asks.clear()
            self._last_sequence = None
            self._set_state(BookState.DISPOSED)
            self._wake()

        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

        if handle is not None:
            await self._close_handle(handle)
        if self._on_disposed is not None:
            await self._on_disposed()
        logger.info("Order book for %s disposed", self.symbol)

    async def __aenter__(self) -> 'OrderBookSynchronizer':
        result = await self.start()
        if not result.success:
            await self.dispose()
            raise result.error
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    async def _synchronize(self) -> CallResult[bool]:
        with self._lock:
            self._syncing = True
            self._error = None
            self._generation += 1
            generation = self._generation
            event = self._snapshot_installed = asyncio.Event()

        attempt = self._spawn(asyncio.wait_for(
            self._subscribe_and_wait(generation, event),
            timeout=self.options.sync_timeout
        ))
        try:
            await asyncio.wait({attempt})

            if attempt.cancelled():
                with self._lock:
                    disposed = self._state == BookState.DISPOSED
                if disposed:
                    return CallResult.fail(HuobiError(f"Order book {self.symbol} was disposed"))
                error = HuobiError(f"Synchronization of {self.symbol} was cancelled")
                self._fault(error)
                return CallResult.fail(error)

            if isinstance(attempt.exception(), asyncio.TimeoutError):
                error = SyncTimeoutError(
                    f"No snapshot for {self.symbol} within {self.options.sync_timeout}s"
                )
                self._fault(error)
                return CallResult.fail(error)

            error = attempt.result()
            if error is not None:
                self._fault(error)
                return CallResult.fail(error)

            with self._lock:
                if self._state == BookState.DISPOSED:
                    return CallResult.fail(HuobiError(f"Order book {self.symbol} was disposed"))
                if self._state == BookState.FAULTED:
                    return CallResult.fail(self._error)
            logger.info("Order book for %s synced", self.symbol)
            return CallResult.ok(True)
        finally:
            attempt.cancel()
            for fetch in list(self._fetches):
                fetch.cancel()
            with self._lock:
                self._syncing = False
                if self._resync_requested:
                    self._resync_requested = False
                    if self._state == BookState.RESYNCING:
                        self._schedule_resync()

    async def _subscribe_and_wait(self, generation: int, event: asyncio.Event) -> Optional[HuobiError]:
        """Fetch a snapshot alongside the subscription and wait until one is installed."""
        self._spawn_fetch(generation)
        if self._subscription is None:
            error = await self._subscribe()
            if error is not None:
                return error
        await event.wait()
        return None

    async def _subscribe(self) -> Optional[HuobiError]:
        try:
            handle = await self._source.subscribe_order_book(
                self.symbol,
                self.options.merge_step,
                self._handle_message
            )
        except Exception as e:
            logger.error("Subscription to %s failed: %s", self.symbol, e)
            return e if isinstance(e, HuobiError) else ExchangeConnectionError(f"Subscription failed: {e}")

        with self._lock:
            disposed = self._state == BookState.DISPOSED
            if not disposed:
                self._subscription = handle
        if disposed:
            await self._close_handle(handle)
        return None

    async def _fetch_snapshot(self, generation: int) -> None:
        try:
            message = await self._source.request_order_book_snapshot(self.symbol, self.options.merge_step)
        except Exception as e:
            if not self._wants_snapshot(generation):
                logger.debug("Dropping failed snapshot request for %s: %s", self.symbol, e)
                return
            logger.error("Snapshot request for %s failed: %s", self.symbol, e)
            error = e if isinstance(e, HuobiError) else ExchangeConnectionError(f"Snapshot request failed: {e}")
            self._fault(error)
            return

        if message is None:
            return
        if not self._wants_snapshot(generation):
            logger.debug("Dropping snapshot for %s from an earlier synchronization", self.symbol)
            return
        self._handle_message(message)

    def _wants_snapshot(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation and self._state in _SNAPSHOT_STATES

    def _spawn_fetch(self, generation: int) -> asyncio.Task:
        task = self._spawn(self._fetch_snapshot(generation))
        self._fetches.add(task)
        task.add_done_callback(self._fetches.discard)
        return task

    async def _close_handle(self, handle: SubscriptionHandle) -> None:
        try:
            await handle.close()
        except Exception as e:
            logger.warning("Failed to close subscription for %s: %s", self.symbol, e)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # Message handling

    def _handle_message(self, message: Any) -> None:
        """Entry point for the update stream. May be called from any thread."""
        with self._lock:
            if self._state not in _LIVE_STATES:
                return

        try:
            update = self._decoder.decode(message)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Undecodable order book message for %s: %s", self.symbol, e)
            with self._lock:
                if self._state == BookState.SYNCED:
                    self._on_gap('decode_error')
            return

        if update is None or update.symbol != self.symbol:
            return

        with self._lock:
            if self._state not in _LIVE_STATES:
                return
            if isinstance(update, OrderBookSnapshot):
                self._install_snapshot(update)
            else:
                self._on_delta(update)

    def _install_snapshot(self, snapshot: OrderBookSnapshot) -> None:
        if (self._state == BookState.SYNCED and snapshot.sequence is not None
                and self._last_sequence is not None and snapshot.sequence < self._last_sequence):
            logger.debug("Ignoring stale snapshot %s for %s", snapshot.sequence, self.symbol)
            return

        self._bids.replace(snapshot.bids)
        self._asks.replace(snapshot.asks)
        self._last_sequence = snapshot.sequence
        self._last_update = snapshot.timestamp
        self._first_after_snapshot = True
        self._record_update('snapshot')

        pending, self._buffer = self._buffer, []
        for index, delta in enumerate(pending):
            verdict = self._check_sequence(delta)
            if verdict == 'skip':
                continue
            if verdict == 'gap':
                # Snapshot is older than the buffered stream; wait for a newer one.
                logger.warning(
                    "Snapshot for %s (seq %s) does not connect to buffered updates, refetching",
                    self.symbol,
                    snapshot.sequence
                )
                self._buffer = pending[index:]
                self._bids.clear()
                self._asks.clear()
                self._set_state(BookState.BUFFERING)
                generation = self._generation
                self._call_in_loop(lambda: self._spawn_fetch(generation))
                return
            self._apply_delta(delta)

        self._set_state(BookState.SYNCED)
        self._wake()
        self._notify_updated()

    def _on_delta(self, delta: OrderBookDelta) -> None:
        if self._state in (BookState.AWAITING_SNAPSHOT, BookState.BUFFERING, BookState.RESYNCING):
            self._buffer.append(delta)
            if self._state == BookState.AWAITING_SNAPSHOT:
                self._set_state(BookState.BUFFERING)
            return

        verdict = self._check_sequence(delta)
        if verdict == 'skip':
            logger.debug("Skipping stale update %s for %s", delta.sequence, self.symbol)
        elif verdict == 'gap':
            logger.warning(
                "Sequence gap for %s: expected prev %s, got %s",
                self.symbol,
                self._last_sequence,
                delta.prev_sequence
            )
            self._on_gap('gap')
        else:
            self._apply_delta(delta)
            self._notify_updated()

    def _check_sequence(self, delta: OrderBookDelta) -> str:
        """Classify a delta as 'apply', 'skip' or 'gap' against the last applied sequence."""
        if delta.sequence is None or self._last_sequence is None:
            return 'apply'
        if delta.sequence <= self._last_sequence:
            return 'skip'
        if delta.prev_sequence is None:
            return 'apply'
        if self._first_after_snapshot:
            return 'apply' if delta.prev_sequence <= self._last_sequence else 'gap'
        return 'apply' if delta.prev_sequence == self._last_sequence else 'gap'

    def _apply_delta(self, delta: OrderBookDelta) -> None:
        for level in delta.bids:
            self._bids.apply(level)
        for level in delta.asks:
            self._asks.apply(level)
        if delta.sequence is not None:
            self._last_sequence = delta.sequence
        if delta.timestamp is not None:
            self._last_update = delta.timestamp
        self._first_after_snapshot = False
        self._record_update('delta')

    def _on_gap(self, reason: str) -> None:
        self._buffer.clear()
        self._resync_reason = reason
        self._set_state(BookState.RESYNCING)
        if self.options.auto_resync:
            self._call_in_loop(self._schedule_resync)

    def _schedule_resync(self) -> None:
        with self._lock:
            if self._state != BookState.RESYNCING:
                return
            if self._syncing:
                self._resync_requested = True
                return
        self._spawn(self._background_resync())

    async def _background_resync(self) -> None:
        result = await self.resync()
        if not result.success:
            logger.warning("Automatic resync of %s failed: %s", self.symbol, result.error)

    def _fault(self, error: HuobiError) -> None:
        with self._lock:
            if self._state == BookState.DISPOSED:
                return
            self._error = error
            self._buffer.clear()
            self._bids.clear()
            self._asks.clear()
            self._last_sequence = None
            self._set_state(BookState.FAULTED)
            self._wake()

    # Signalling

    def _call_in_loop(self, callback: Callable[[], Any]) -> None:
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(callback)

    def _wake(self) -> None:
        event = self._snapshot_installed
        if event is not None:
            self._call_in_loop(event.set)

    def _set_state(self, state: BookState) -> None:
        old, self._state = self._state, state
        if old == state:
            return
        logger.debug("Order book %s: %s -> %s", self.symbol, old.value, state.value)
        if self.on_state_changed is not None:
            try:
                self.on_state_changed(old, state)
            except Exception as e:
                logger.error("Error in state callback: %s", e, exc_info=True)

    def _notify_updated(self) -> None:
        if self.on_book_updated is not None:
            try:
                self.on_book_updated(self)
            except Exception as e:
                logger.error("Error in book update callback: %s", e, exc_info=True)

    def _record_update(self, kind: str) -> None:
        if self._metrics:
            self._metrics.record_book_update(self.symbol, kind, len(self._bids), len(self._asks))


def create_order_book(
    symbol: str,
    options: Optional[OrderBookOptions] = None,
    socket_client: Optional[OrderBookSource] = None,
    metrics: Optional[ClientMetrics] = None
) -> OrderBookSynchronizer:
    """
    Create an order book fed by the exchange's push channel.

    When no socket client is given, one is created with default options and
    disconnected when the book is disposed.
    """
    on_disposed = None
    if socket_client is None:
        socket_client = HuobiSocketClient(SocketClientOptions())
        on_disposed = socket_client.disconnect

    return OrderBookSynchronizer(
        symbol,
        socket_client,
        HuobiBookDecoder(),
        options=options,
        metrics=metrics,
        on_disposed=on_disposed
    )
