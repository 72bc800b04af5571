"""
Parameter helpers shared by the REST client and the order book.
"""
import re
from typing import Any, Dict, Optional

from .exceptions import ArgumentError

SYMBOL_PATTERN = re.compile(r'^[a-z]{6,8}$')


def validate_symbol(symbol: Optional[str]) -> str:
    """
    Validate that a string is a valid Huobi symbol.

    Args:
        symbol: Symbol to validate, e.g. 'ETHBTC' or 'ethbtc'

    Returns:
        The symbol in lower case, as the exchange expects it

    Raises:
        ArgumentError: If the symbol is empty or malformed
    """
    if not symbol:
        raise ArgumentError("Symbol is not provided")

    symbol = symbol.lower()
    if not SYMBOL_PATTERN.match(symbol):
        raise ArgumentError(
            f"{symbol} is not a valid Huobi symbol. "
            "Should be [QuoteCurrency][BaseCurrency], e.g. ETHBTC"
        )
    return symbol


def validate_range(
    value: Optional[int],
    minimum: int,
    maximum: int,
    name: str,
    required: bool = False
) -> None:
    """Raise ArgumentError unless minimum <= value <= maximum.

    None is accepted for optional parameters only.
    """
    if value is None:
        if required:
            raise ArgumentError(f"{name} is required")
        return
    if value < minimum or value > maximum:
        raise ArgumentError(f"{name} should be between {minimum} and {maximum}")


def fill_path_parameter(endpoint: str, *values: str) -> str:
    """Substitute each '{}' placeholder in an endpoint path, left to right."""
    for value in values:
        if '{}' not in endpoint:
            raise ArgumentError(f"No placeholder left in endpoint {endpoint}")
        endpoint = endpoint.replace('{}', str(value), 1)
    return endpoint


def add_optional_parameter(parameters: Dict[str, Any], key: str, value: Any) -> None:
    """Add a parameter only when it has a value."""
    if value is not None:
        parameters[key] = value
