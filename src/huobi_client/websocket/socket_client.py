"""
Push channel client for the exchange's market data stream.

Frames arrive gzip-compressed. The server sends ``{"ping": n}`` heartbeats
that must be answered with ``{"pong": n}``; pushes carry their channel in
``ch`` and replies to ``sub``/``req`` messages echo the request ``id``.
"""
import asyncio
import gzip
import itertools
import json
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..config import SocketClientOptions
from ..exceptions import ExchangeConnectionError, WebSocketSubscriptionError
from ..helpers import validate_range, validate_symbol
from ..rest.response import is_error_response, parse_error_response

logger = logging.getLogger(__name__)

MessageCallback = Callable[[Dict[str, Any]], None]


class ChannelSubscription:
    """Handle for one callback registered on a channel."""

    def __init__(self, client: 'HuobiSocketClient', channel: str, callback: MessageCallback):
        self.client = client
        self.channel = channel
        self.callback = callback
        self.closed = False

    async def close(self) -> None:
        """Stop delivering messages to the callback. Idempotent."""
        if self.closed:
            return
        self.closed = True
        await self.client._unsubscribe(self)


class HuobiSocketClient:
    """WebSocket client for market data pushes and one-shot requests.

    Reconnection is left to the caller: after the connection drops, pending
    requests fail and existing subscriptions stop receiving messages.
    """

    def __init__(self, options: Optional[SocketClientOptions] = None):
        self.options = options or SocketClientOptions()
        self._ws = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._connect_lock: Optional[asyncio.Lock] = None
        self._ids = itertools.count(1)
        self._subscriptions: Dict[str, List[ChannelSubscription]] = {}
        self._pending: Dict[str, asyncio.Future] = {}

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def connect(self) -> None:
        """Connect to the push endpoint if not connected yet."""
        if self._connect_lock is None:
            self._connect_lock = asyncio.Lock()
        async with self._connect_lock:
            if self._ws is not None:
                return
            logger.info("Connecting to WebSocket at %s", self.options.base_address)
            try:
                self._ws = await websockets.connect(
                    self.options.base_address,
                    ping_interval=None,  # the exchange sends its own heartbeats
                    open_timeout=self.options.request_timeout,
                    close_timeout=1,
                    max_queue=1024,
                )
            except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                raise ExchangeConnectionError(f"Failed to connect: {e}") from e

            self._consumer_task = asyncio.create_task(self._consumer())
            logger.info("WebSocket connected successfully")

    async def disconnect(self) -> None:
        """Close the connection and fail any pending requests."""
        ws, self._ws = self._ws, None

        if self._consumer_task:
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
            self._consumer_task = None

        if ws is not None:
            await ws.close()
            logger.info("WebSocket disconnected")

        self._fail_pending(ExchangeConnectionError("Connection closed"))
        self._subscriptions.clear()

    async def __aenter__(self) -> 'HuobiSocketClient':
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    async def _consumer(self) -> None:
        """Process incoming WebSocket messages."""
        ws = self._ws
        while ws is not None and self._ws is ws:
            try:
                message = await ws.recv()
            except ConnectionClosed as e:
                logger.warning("WebSocket connection closed: %s", e)
                self._ws = None
                self._fail_pending(ExchangeConnectionError(f"Connection closed: {e}"))
                break
            try:
                await self._handle_message(message)
            except ExchangeConnectionError as e:
                logger.warning("Failed to answer message: %s", e)

    async def _handle_message(self, message: Union[str, bytes]) -> None:
        """Handle one raw frame.

        Args:
            message: The raw message from the WebSocket
        """
        try:
            if isinstance(message, bytes):
                message = gzip.decompress(message).decode('utf-8')
            data = json.loads(message, parse_float=Decimal)
        except (OSError, UnicodeDecodeError, ValueError) as e:
            logger.warning("Failed to decode message: %s", e)
            return

        if not isinstance(data, dict):
            logger.warning("Unexpected message: %s", data)
            return

        if 'ping' in data:
            await self._send({'pong': data['ping']})
            return

        request_id = data.get('id')
        if request_id is not None and str(request_id) in self._pending:
            future = self._pending.pop(str(request_id))
            if not future.done():
                future.set_result(data)
            return

        channel = data.get('ch')
        if channel is not None:
            for subscription in list(self._subscriptions.get(channel, ())):
                try:
                    subscription.callback(data)
                except Exception as e:
                    logger.error("Error in callback for %s: %s", channel, e, exc_info=True)
            return

        logger.debug("Unhandled message: %s", data)

    async def _send(self, payload: Dict[str, Any]) -> None:
        if self._ws is None:
            raise ExchangeConnectionError("Not connected")
        try:
            await self._ws.send(json.dumps(payload))
        except ConnectionClosed as e:
            raise ExchangeConnectionError(f"Send failed: {e}") from e

    async def _request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Send a message carrying a fresh id and wait for the reply with that id."""
        request_id = str(next(self._ids))
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._send({**payload, 'id': request_id})
            return await asyncio.wait_for(future, timeout=self.options.request_timeout)
        except asyncio.TimeoutError as e:
            raise ExchangeConnectionError(
                f"No reply to {payload} within {self.options.request_timeout}s"
            ) from e
        finally:
            self._pending.pop(request_id, None)

    def _fail_pending(self, error: Exception) -> None:
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)

    async def subscribe(self, channel: str, callback: MessageCallback) -> ChannelSubscription:
        """
        Deliver every push on a channel to a callback.

        Raises:
            ExchangeConnectionError: If the connection could not be used
            WebSocketSubscriptionError: If the server rejected the subscription
        """
        await self.connect()

        subscription = ChannelSubscription(self, channel, callback)
        subscribers = self._subscriptions.setdefault(channel, [])
        first = not subscribers
        # Registered before the ack so pushes that follow it are not lost
        subscribers.append(subscription)
        if not first:
            return subscription

        try:
            reply = await self._request({'sub': channel})
        except ExchangeConnectionError:
            self._remove(subscription)
            raise

        if is_error_response(reply):
            self._remove(subscription)
            error = parse_error_response(reply)
            raise WebSocketSubscriptionError(error.message, code=error.code, raw=reply)

        logger.info("Subscribed to %s", channel)
        return subscription

    def _remove(self, subscription: ChannelSubscription) -> bool:
        """Drop a subscription; True when it was the channel's last one."""
        subscribers = self._subscriptions.get(subscription.channel, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
        if not subscribers:
            self._subscriptions.pop(subscription.channel, None)
            return True
        return False

    async def _unsubscribe(self, subscription: ChannelSubscription) -> None:
        if not self._remove(subscription) or self._ws is None:
            return
        try:
            await self._send({'unsub': subscription.channel, 'id': str(next(self._ids))})
            logger.info("Unsubscribed from %s", subscription.channel)
        except ExchangeConnectionError as e:
            logger.warning("Failed to unsubscribe from %s: %s", subscription.channel, e)

    def order_book_channel(self, symbol: str, merge_step: int) -> str:
        """Channel name for a symbol's book: incremental when configured, depth-step otherwise."""
        if self.options.incremental_levels is not None:
            return f"market.{symbol}.mbp.{self.options.incremental_levels}"
        return f"market.{symbol}.depth.step{merge_step}"

    async def subscribe_order_book(
        self,
        symbol: str,
        merge_step: int,
        callback: MessageCallback
    ) -> ChannelSubscription:
        """Subscribe to order book pushes for a symbol."""
        validate_range(merge_step, 0, 5, "MergeStep", required=True)
        channel = self.order_book_channel(validate_symbol(symbol), merge_step)
        return await self.subscribe(channel, callback)

    async def request_order_book_snapshot(self, symbol: str, merge_step: int) -> Dict[str, Any]:
        """
        Request the current book once.

        Returns:
            The raw reply, with the book under ``data``

        Raises:
            ExchangeConnectionError: If the connection could not be used
            ServerError: If the server rejected the request
        """
        validate_range(merge_step, 0, 5, "MergeStep", required=True)
        channel = self.order_book_channel(validate_symbol(symbol), merge_step)
        await self.connect()

        reply = await self._request({'req': channel})
        if is_error_response(reply):
            raise parse_error_response(reply)
        return reply
