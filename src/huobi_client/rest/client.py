"""
Huobi REST API client.

Every public coroutine returns a CallResult: argument problems, exchange
errors and transport failures are reported as the result's error instead of
being raised.
"""
import functools
import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence

from ..auth.signer import ApiCredentials, HuobiAuthenticationProvider
from ..config import ClientOptions
from ..enums import OrderSide, OrderState, OrderType, Period
from ..exceptions import ArgumentError, ExchangeConnectionError, ServerError
from ..helpers import add_optional_parameter, fill_path_parameter, validate_range, validate_symbol
from ..monitoring.metrics import ClientMetrics
from ..results import CallResult
from .http_client import AiohttpTransport, HttpTransport
from .request_builder import RequestAssembler
from .response import classify

logger = logging.getLogger(__name__)

MAX_HISTORY_SIZE = 2000
MAX_BATCH_CANCEL = 50


def _argument_errors_as_result(func):
    """Turn ArgumentError raised by validation into a failed CallResult."""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except ArgumentError as e:
            logger.debug("Rejected %s: %s", func.__name__, e)
            return CallResult.fail(e)
    return wrapper


def _format_date(value: Optional[date]) -> Optional[str]:
    return value.strftime('%Y-%m-%d') if value is not None else None


class HuobiClient:
    """Client for the Huobi REST API."""

    # Market endpoints (unversioned)
    MARKET_TICKER_ENDPOINT = "market/tickers"
    MARKET_TICKER_MERGED_ENDPOINT = "market/detail/merged"
    MARKET_KLINE_ENDPOINT = "market/history/kline"
    MARKET_DEPTH_ENDPOINT = "market/depth"
    MARKET_LAST_TRADE_ENDPOINT = "market/trade"
    MARKET_TRADE_HISTORY_ENDPOINT = "market/history/trade"
    MARKET_DETAILS_ENDPOINT = "market/detail"

    # Versioned endpoints
    COMMON_SYMBOLS_ENDPOINT = "common/symbols"
    COMMON_CURRENCIES_ENDPOINT = "common/currencys"
    SERVER_TIME_ENDPOINT = "common/timestamp"

    GET_ACCOUNTS_ENDPOINT = "account/accounts"
    GET_BALANCES_ENDPOINT = "account/accounts/{}/balance"

    PLACE_ORDER_ENDPOINT = "order/orders/place"
    OPEN_ORDERS_ENDPOINT = "order/openOrders"
    ORDERS_ENDPOINT = "order/orders"
    CANCEL_ORDER_ENDPOINT = "order/orders/{}/submitcancel"
    CANCEL_ORDERS_ENDPOINT = "order/orders/batchcancel"
    ORDER_INFO_ENDPOINT = "order/orders/{}"
    ORDER_TRADES_ENDPOINT = "order/orders/{}/matchresults"
    SYMBOL_TRADES_ENDPOINT = "order/matchresults"

    def __init__(
        self,
        options: Optional[ClientOptions] = None,
        transport: Optional[HttpTransport] = None,
        metrics: Optional[ClientMetrics] = None
    ):
        """
        Initialize the client.

        Args:
            options: Client options; defaults are used when omitted
            transport: HTTP transport; an aiohttp transport is created when omitted
            metrics: Optional metrics collector
        """
        self.options = options or ClientOptions()
        self._transport = transport or AiohttpTransport(
            rate_limit=self.options.rate_limit,
            timeout=self.options.request_timeout,
            retries=self.options.max_retries
        )
        self._metrics = metrics
        self._assembler = self._create_assembler(self.options.api_credentials)

    def _create_assembler(self, credentials: Optional[ApiCredentials]) -> RequestAssembler:
        provider = HuobiAuthenticationProvider(credentials) if credentials is not None else None
        return RequestAssembler(self.options, provider)

    def set_api_credentials(self, api_key: str, api_secret: str) -> None:
        """Use a new key pair for subsequent signed requests."""
        credentials = ApiCredentials(key=api_key, secret=api_secret)
        self.options = self.options.model_copy(update={'api_credentials': credentials})
        self._assembler = self._create_assembler(credentials)

    async def close(self) -> None:
        """Release the transport."""
        await self._transport.close()

    async def __aenter__(self) -> 'HuobiClient':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @staticmethod
    def _get_path(endpoint: str, version: Optional[str]) -> str:
        return endpoint if version is None else f"v{version}/{endpoint}"

    async def _execute(
        self,
        method: str,
        endpoint: str,
        parameters: Optional[Dict[str, Any]] = None,
        signed: bool = False,
        version: Optional[str] = None,
        path_values: Sequence[Any] = (),
        payload_field: Optional[str] = 'data'
    ) -> CallResult:
        """
        Build, send and classify a request.

        Args:
            method: HTTP method
            endpoint: Endpoint path template
            parameters: Business parameters
            signed: Whether the request is authenticated
            version: API version prefix, None for market endpoints
            path_values: Values for the '{}' placeholders in the endpoint
            payload_field: Envelope field carrying the payload

        Returns:
            CallResult with the payload or the error
        """
        try:
            path = self._get_path(fill_path_parameter(endpoint, *path_values), version)
            request = self._assembler.build(method, self.options.base_address, path, parameters, signed)
        except ArgumentError as e:
            return CallResult.fail(e)

        if self._metrics:
            self._metrics.record_request(endpoint, method)

        try:
            response = await self._transport.send(request)
        except ExchangeConnectionError as e:
            return self._failed(endpoint, e)

        try:
            data = json.loads(response.text)
        except ValueError:
            return self._failed(endpoint, ServerError(response.text, code=str(response.status), raw=response.text))

        result = classify(data, payload_field)
        if result.success and response.status >= 400:
            return self._failed(endpoint, ServerError(response.text, code=str(response.status), raw=data))
        if not result.success and self._metrics:
            self._metrics.record_request_error(endpoint, result.error)
        return result

    def _failed(self, endpoint: str, error: Exception) -> CallResult:
        logger.error("Request to %s failed: %s", endpoint, error)
        if self._metrics:
            self._metrics.record_request_error(endpoint, error)
        return CallResult.fail(error)

    # Market data

    async def get_market_tickers(self) -> CallResult:
        """Get the latest ticker of every symbol."""
        return await self._execute('GET', self.MARKET_TICKER_ENDPOINT)

    @_argument_errors_as_result
    async def get_market_ticker_merged(self, symbol: str) -> CallResult:
        """Get the merged ticker (best bid/ask, last trade, 24h stats) of a symbol."""
        parameters = {'symbol': validate_symbol(symbol)}
        return await self._execute('GET', self.MARKET_TICKER_MERGED_ENDPOINT, parameters, payload_field='tick')

    @_argument_errors_as_result
    async def get_market_klines(self, symbol: str, period: Period, size: int) -> CallResult:
        """
        Get candlestick data.

        Args:
            symbol: Symbol, e.g. 'ethbtc'
            period: Candle width
            size: Number of candles, 1 to 2000
        """
        validate_range(size, 1, MAX_HISTORY_SIZE, "Size", required=True)
        parameters = {
            'symbol': validate_symbol(symbol),
            'period': Period(period),
            'size': size,
        }
        return await self._execute('GET', self.MARKET_KLINE_ENDPOINT, parameters)

    @_argument_errors_as_result
    async def get_market_depth(self, symbol: str, merge_step: int) -> CallResult:
        """
        Get the order book of a symbol.

        Args:
            symbol: Symbol, e.g. 'ethbtc'
            merge_step: Price aggregation level, 0 (none) to 5
        """
        validate_range(merge_step, 0, 5, "MergeStep", required=True)
        parameters = {
            'symbol': validate_symbol(symbol),
            'type': f"step{merge_step}",
        }
        return await self._execute('GET', self.MARKET_DEPTH_ENDPOINT, parameters, payload_field='tick')

    @_argument_errors_as_result
    async def get_market_last_trade(self, symbol: str) -> CallResult:
        parameters = {'symbol': validate_symbol(symbol)}
        return await self._execute('GET', self.MARKET_LAST_TRADE_ENDPOINT, parameters, payload_field='tick')

    @_argument_errors_as_result
    async def get_market_trade_history(self, symbol: str, limit: int) -> CallResult:
        """Get up to `limit` (1 to 2000) recent trade batches of a symbol."""
        validate_range(limit, 1, MAX_HISTORY_SIZE, "Size", required=True)
        parameters = {
            'symbol': validate_symbol(symbol),
            'size': limit,
        }
        return await self._execute('GET', self.MARKET_TRADE_HISTORY_ENDPOINT, parameters)

    @_argument_errors_as_result
    async def get_market_details_24h(self, symbol: str) -> CallResult:
        parameters = {'symbol': validate_symbol(symbol)}
        return await self._execute('GET', self.MARKET_DETAILS_ENDPOINT, parameters, payload_field='tick')

    # Reference data

    async def get_symbols(self) -> CallResult:
        return await self._execute('GET', self.COMMON_SYMBOLS_ENDPOINT, version='1')

    async def get_currencies(self) -> CallResult:
        return await self._execute('GET', self.COMMON_CURRENCIES_ENDPOINT, version='1')

    async def get_server_time(self) -> CallResult:
        """Get the exchange time as an aware UTC datetime."""
        result = await self._execute('GET', self.SERVER_TIME_ENDPOINT, version='1')
        if not result.success:
            return result
        try:
            timestamp = datetime.fromtimestamp(int(result.data) / 1000, tz=timezone.utc)
        except (TypeError, ValueError):
            return CallResult.fail(ServerError(f"Unexpected server time: {result.data!r}", raw=result.data))
        return CallResult.ok(timestamp)

    # Account

    async def get_accounts(self) -> CallResult:
        return await self._execute('GET', self.GET_ACCOUNTS_ENDPOINT, signed=True, version='1')

    async def get_balances(self, account_id: int) -> CallResult:
        return await self._execute(
            'GET',
            self.GET_BALANCES_ENDPOINT,
            signed=True,
            version='1',
            path_values=(account_id,)
        )

    # Trading

    @_argument_errors_as_result
    async def place_order(
        self,
        account_id: int,
        symbol: str,
        order_type: OrderType,
        amount: Decimal,
        price: Optional[Decimal] = None
    ) -> CallResult:
        """
        Place a new order.

        Args:
            account_id: Account to place the order for
            symbol: Symbol, e.g. 'ethbtc'
            order_type: Order type
            amount: Quantity (quote amount for market buys)
            price: Limit price, required for non-market orders

        Returns:
            CallResult with the new order id
        """
        order_type = OrderType(order_type)
        if amount is None or Decimal(str(amount)) <= 0:
            raise ArgumentError("Amount should be greater than 0")
        if price is None and not order_type.is_market:
            raise ArgumentError(f"Price is required for {order_type.value} orders")

        parameters = {
            'account-id': account_id,
            'amount': amount,
            'symbol': validate_symbol(symbol),
            'type': order_type,
        }
        add_optional_parameter(parameters, 'price', price)

        return await self._execute('POST', self.PLACE_ORDER_ENDPOINT, parameters, signed=True, version='1')

    @_argument_errors_as_result
    async def get_open_orders(
        self,
        account_id: Optional[int] = None,
        symbol: Optional[str] = None,
        side: Optional[OrderSide] = None,
        limit: Optional[int] = None
    ) -> CallResult:
        if account_id is not None and symbol is None:
            raise ArgumentError("Can't request open orders based on only the account id")
        validate_range(limit, 1, MAX_HISTORY_SIZE, "Size")

        parameters: Dict[str, Any] = {}
        add_optional_parameter(parameters, 'account-id', account_id)
        add_optional_parameter(parameters, 'symbol', validate_symbol(symbol) if symbol is not None else None)
        add_optional_parameter(parameters, 'side', OrderSide(side) if side is not None else None)
        add_optional_parameter(parameters, 'size', limit)

        return await self._execute('GET', self.OPEN_ORDERS_ENDPOINT, parameters, signed=True, version='1')

    async def cancel_order(self, order_id: int) -> CallResult:
        return await self._execute(
            'POST',
            self.CANCEL_ORDER_ENDPOINT,
            signed=True,
            version='1',
            path_values=(order_id,)
        )

    @_argument_errors_as_result
    async def cancel_orders(self, order_ids: Sequence[int]) -> CallResult:
        """Cancel up to 50 orders in one request."""
        if not order_ids:
            raise ArgumentError("No order ids provided")
        if len(order_ids) > MAX_BATCH_CANCEL:
            raise ArgumentError(f"At most {MAX_BATCH_CANCEL} orders can be canceled at once")

        parameters = {'order-ids': [str(order_id) for order_id in order_ids]}
        return await self._execute('POST', self.CANCEL_ORDERS_ENDPOINT, parameters, signed=True, version='1')

    async def get_order_info(self, order_id: int) -> CallResult:
        return await self._execute(
            'GET',
            self.ORDER_INFO_ENDPOINT,
            signed=True,
            version='1',
            path_values=(order_id,)
        )

    async def get_order_trades(self, order_id: int) -> CallResult:
        return await self._execute(
            'GET',
            self.ORDER_TRADES_ENDPOINT,
            signed=True,
            version='1',
            path_values=(order_id,)
        )

    @_argument_errors_as_result
    async def get_orders(
        self,
        symbol: str,
        states: Sequence[OrderState],
        types: Optional[Sequence[OrderType]] = None,
        start_time: Optional[date] = None,
        end_time: Optional[date] = None,
        from_id: Optional[int] = None,
        limit: Optional[int] = None
    ) -> CallResult:
        """Get historical orders of a symbol in the given states."""
        if not states:
            raise ArgumentError("At least one order state is required")
        validate_range(limit, 1, MAX_HISTORY_SIZE, "Size")

        parameters: Dict[str, Any] = {
            'symbol': validate_symbol(symbol),
            'states': [OrderState(s) for s in states],
        }
        add_optional_parameter(parameters, 'start-date', _format_date(start_time))
        add_optional_parameter(parameters, 'end-date', _format_date(end_time))
        add_optional_parameter(parameters, 'types', [OrderType(t) for t in types] if types else None)
        add_optional_parameter(parameters, 'from', from_id)
        add_optional_parameter(parameters, 'size', limit)

        return await self._execute('GET', self.ORDERS_ENDPOINT, parameters, signed=True, version='1')

    @_argument_errors_as_result
    async def get_symbol_trades(
        self,
        symbol: str,
        types: Optional[Sequence[OrderType]] = None,
        start_time: Optional[date] = None,
        end_time: Optional[date] = None,
        from_id: Optional[int] = None,
        limit: Optional[int] = None
    ) -> CallResult:
        """Get the account's fills for a symbol."""
        validate_range(limit, 1, MAX_HISTORY_SIZE, "Size")

        parameters: Dict[str, Any] = {'symbol': validate_symbol(symbol)}
        add_optional_parameter(parameters, 'start-date', _format_date(start_time))
        add_optional_parameter(parameters, 'end-date', _format_date(end_time))
        add_optional_parameter(parameters, 'types', [OrderType(t) for t in types] if types else None)
        add_optional_parameter(parameters, 'from', from_id)
        add_optional_parameter(parameters, 'size', limit)

        return await self._execute('GET', self.SYMBOL_TRADES_ENDPOINT, parameters, signed=True, version='1')
