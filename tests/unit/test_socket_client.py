"""Tests for the push channel client."""
import asyncio
import gzip
import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import websockets

from huobi_client.config import SocketClientOptions
from huobi_client.exceptions import ArgumentError, ExchangeConnectionError, ServerError, WebSocketSubscriptionError
from huobi_client.websocket.socket_client import HuobiSocketClient


def frame(payload) -> bytes:
    return gzip.compress(json.dumps(payload).encode('utf-8'))


@pytest.fixture
def mock_websocket() -> MagicMock:
    """Create a mock WebSocket connection."""
    ws = MagicMock()
    ws.send = AsyncMock()
    ws.recv = AsyncMock()
    ws.close = AsyncMock()
    return ws


@pytest.fixture
def client(mock_websocket):
    client = HuobiSocketClient(SocketClientOptions(request_timeout=0.2))
    client._ws = mock_websocket
    return client


def sent(mock_websocket, index=-1):
    return json.loads(mock_websocket.send.await_args_list[index][0][0])


def reply_to_requests(client, mock_websocket, reply):
    """Answer every request sent on the mock connection with `reply`."""
    async def send(text):
        message = json.loads(text)
        if 'id' in message:
            asyncio.get_running_loop().call_soon(
                asyncio.ensure_future,
                client._handle_message(frame({**reply, 'id': message['id']}))
            )
    mock_websocket.send.side_effect = send


@pytest.mark.asyncio
class TestMessageHandling:

    async def test_ping_is_answered(self, client, mock_websocket):
        await client._handle_message(frame({'ping': 1492420473027}))
        assert sent(mock_websocket) == {'pong': 1492420473027}

    async def test_push_routed_by_channel(self, client, mock_websocket):
        callback = MagicMock()
        reply_to_requests(client, mock_websocket, {'status': 'ok', 'subbed': 'market.ethbtc.depth.step0'})
        await client.subscribe('market.ethbtc.depth.step0', callback)

        await client._handle_message(frame({'ch': 'market.ethbtc.depth.step0', 'tick': {'bids': [[0.1, 1]]}}))
        await client._handle_message(frame({'ch': 'market.btcusdt.depth.step0', 'tick': {}}))

        callback.assert_called_once()
        message = callback.call_args[0][0]
        assert message['tick']['bids'] == [[Decimal('0.1'), 1]]

    async def test_plain_text_frames(self, client):
        callback = MagicMock()
        client._subscriptions['market.ethbtc.depth.step0'] = [MagicMock(callback=callback)]
        await client._handle_message(json.dumps({'ch': 'market.ethbtc.depth.step0', 'tick': {}}))
        callback.assert_called_once()

    async def test_garbage_is_ignored(self, client, mock_websocket):
        await client._handle_message(b'not gzip')
        await client._handle_message('not json')
        mock_websocket.send.assert_not_awaited()

    async def test_callback_errors_are_contained(self, client):
        failing = MagicMock(side_effect=RuntimeError('boom'))
        healthy = MagicMock()
        client._subscriptions['ch'] = [MagicMock(callback=failing), MagicMock(callback=healthy)]

        await client._handle_message(frame({'ch': 'ch', 'tick': {}}))

        healthy.assert_called_once()


@pytest.mark.asyncio
class TestSubscriptions:

    async def test_rejected_subscription(self, client, mock_websocket):
        reply_to_requests(client, mock_websocket, {'status': 'error', 'err-code': 'bad-request', 'err-msg': 'invalid topic'})

        with pytest.raises(WebSocketSubscriptionError, match='invalid topic') as error:
            await client.subscribe('market.nope.depth.step0', MagicMock())

        assert isinstance(error.value, ServerError)
        assert not isinstance(error.value, ExchangeConnectionError)
        assert error.value.code == 'bad-request'

        assert client._subscriptions == {}

    async def test_request_timeout(self, client):
        with pytest.raises(ExchangeConnectionError):
            await client.subscribe('market.ethbtc.depth.step0', MagicMock())
        assert client._pending == {}

    async def test_close_unsubscribes_last_subscriber(self, client, mock_websocket):
        reply_to_requests(client, mock_websocket, {'status': 'ok'})
        first = await client.subscribe('market.ethbtc.depth.step0', MagicMock())
        second = await client.subscribe('market.ethbtc.depth.step0', MagicMock())
        assert mock_websocket.send.await_count == 1

        await first.close()
        assert mock_websocket.send.await_count == 1

        await second.close()
        await second.close()
        assert sent(mock_websocket)['unsub'] == 'market.ethbtc.depth.step0'
        assert mock_websocket.send.await_count == 2

    async def test_order_book_channel(self, client, mock_websocket):
        reply_to_requests(client, mock_websocket, {'status': 'ok'})
        await client.subscribe_order_book('ETHBTC', 3, MagicMock())
        assert sent(mock_websocket)['sub'] == 'market.ethbtc.depth.step3'

    async def test_incremental_channel(self):
        client = HuobiSocketClient(SocketClientOptions(incremental_levels=150))
        assert client.order_book_channel('btcusdt', 0) == 'market.btcusdt.mbp.150'

    async def test_invalid_merge_step(self, client):
        with pytest.raises(ArgumentError):
            await client.subscribe_order_book('ethbtc', 6, MagicMock())


@pytest.mark.asyncio
class TestSnapshotRequests:

    async def test_snapshot_reply(self, client, mock_websocket):
        reply_to_requests(client, mock_websocket, {
            'status': 'ok',
            'rep': 'market.ethbtc.depth.step0',
            'data': {'bids': [], 'asks': []},
        })

        reply = await client.request_order_book_snapshot('ethbtc', 0)

        assert reply['data'] == {'bids': [], 'asks': []}
        assert sent(mock_websocket)['req'] == 'market.ethbtc.depth.step0'

    async def test_rejected_snapshot(self, client, mock_websocket):
        reply_to_requests(client, mock_websocket, {'status': 'error', 'err-code': 'bad-request', 'err-msg': 'nope'})
        with pytest.raises(ServerError) as error:
            await client.request_order_book_snapshot('ethbtc', 0)

        assert not isinstance(error.value, ExchangeConnectionError)
        assert error.value.code == 'bad-request'
        assert error.value.message == 'nope'

    async def test_disconnect_fails_pending_requests(self, client, mock_websocket):
        request = asyncio.ensure_future(client.request_order_book_snapshot('ethbtc', 0))
        await asyncio.sleep(0.01)

        await client.disconnect()

        with pytest.raises(ExchangeConnectionError):
            await request
        mock_websocket.close.assert_awaited_once()
        assert not client.connected


@pytest.fixture
def idle_client() -> HuobiSocketClient:
    """Client built before any event loop runs."""
    return HuobiSocketClient(SocketClientOptions(request_timeout=0.2))


def test_lock_is_created_on_connect(idle_client):
    assert idle_client._connect_lock is None


@pytest.mark.asyncio
class TestConnect:

    async def test_concurrent_connects_open_one_connection(self, idle_client, mock_websocket, monkeypatch):
        idle = asyncio.Event()
        mock_websocket.recv.side_effect = idle.wait
        connect = AsyncMock(return_value=mock_websocket)
        monkeypatch.setattr(websockets, 'connect', connect)

        await asyncio.gather(idle_client.connect(), idle_client.connect())

        connect.assert_awaited_once()
        assert idle_client.connected

        await idle_client.disconnect()
        mock_websocket.close.assert_awaited_once()

    async def test_connect_failure(self, idle_client, monkeypatch):
        monkeypatch.setattr(websockets, 'connect', AsyncMock(side_effect=OSError('refused')))

        with pytest.raises(ExchangeConnectionError, match='refused'):
            await idle_client.connect()

        assert not idle_client.connected
