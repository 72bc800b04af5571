"""
Request signing for authenticated REST calls.

The exchange authenticates a request by an HMAC-SHA256 over a canonical
text made of the verb, host, path and the sorted, percent-escaped query
string. Everything here is a pure function of its inputs: the timestamp is
passed in, never sampled.
"""
import base64
import hashlib
import hmac
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from ..exceptions import ArgumentError

SIGNATURE_METHOD = 'HmacSHA256'
SIGNATURE_VERSION = '2'
TIMESTAMP_FORMAT = '%Y-%m-%dT%H:%M:%S'

AUTH_PARAMETERS = ('AccessKeyId', 'SignatureMethod', 'SignatureVersion', 'Timestamp', 'Signature')


class ApiCredentials(BaseModel):
    """API key pair. The secret is never rendered in repr or logs."""
    model_config = ConfigDict(frozen=True)

    key: str = Field(repr=False)
    secret: SecretStr

    def __repr__(self) -> str:
        return f"ApiCredentials(key='{self.key[:4]}***')"

    __str__ = __repr__


def format_timestamp(timestamp: datetime) -> str:
    """Format a timestamp the way the exchange expects (UTC, second precision)."""
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)
    return timestamp.strftime(TIMESTAMP_FORMAT)


def coerce_value(value: Any) -> str:
    """Coerce a parameter value to the string that is signed and sent."""
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, Decimal):
        return format(value, 'f')
    if isinstance(value, (list, tuple, set)):
        return ','.join(coerce_value(v) for v in value)
    if isinstance(value, Enum):
        return coerce_value(value.value)
    return str(value)


def escape(text: str) -> str:
    """Percent-escape everything outside the RFC 3986 unreserved set."""
    return quote(text, safe='')


def encode_parameters(parameters: Mapping[str, Any]) -> str:
    """
    Build the canonical query string.

    Keys are sorted by their raw (unescaped) value using ordinal comparison,
    then keys and values are escaped and joined with '&'.
    """
    return '&'.join(
        f"{escape(key)}={escape(coerce_value(parameters[key]))}"
        for key in sorted(parameters)
    )


def sign(
    credentials: Optional[ApiCredentials],
    method: str,
    host: str,
    path: str,
    parameters: Mapping[str, Any],
    timestamp: Optional[datetime] = None
) -> str:
    """
    Compute the request signature.

    Args:
        credentials: API key pair
        method: HTTP method
        host: Request host, e.g. 'api.huobi.pro'
        path: Absolute request path, e.g. '/v1/order/orders'
        parameters: Parameters covered by the signature (auth parameters included)
        timestamp: Request time, added as the 'Timestamp' parameter unless
            parameters already carry one

    Returns:
        Base64-encoded HMAC-SHA256 signature

    Raises:
        ArgumentError: If no credentials were given
    """
    if credentials is None:
        raise ArgumentError("No credentials provided for a signed request")

    params = dict(parameters)
    if timestamp is not None and 'Timestamp' not in params:
        params['Timestamp'] = format_timestamp(timestamp)

    payload = '\n'.join([method.upper(), host.lower(), path, encode_parameters(params)])
    digest = hmac.new(
        credentials.secret.get_secret_value().encode('utf-8'),
        payload.encode('utf-8'),
        hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode('ascii')


class HuobiAuthenticationProvider:
    """Adds the exchange's query-string authentication to outgoing requests."""

    def __init__(self, credentials: ApiCredentials):
        self.credentials = credentials

    def add_authentication_to_parameters(
        self,
        method: str,
        host: str,
        path: str,
        parameters: Mapping[str, Any],
        timestamp: datetime
    ) -> Dict[str, Any]:
        """
        Return the five authentication parameters for a request.

        The signature covers the auth parameters plus the given business
        parameters (callers pass only what will travel in the query string).
        """
        auth = {
            'AccessKeyId': self.credentials.key,
            'SignatureMethod': SIGNATURE_METHOD,
            'SignatureVersion': SIGNATURE_VERSION,
            'Timestamp': format_timestamp(timestamp),
        }
        signed = {**parameters, **auth}
        auth['Signature'] = sign(self.credentials, method, host, path, signed)
        return auth

    def add_authentication_to_headers(
        self,
        method: str,
        host: str,
        path: str,
        parameters: Mapping[str, Any]
    ) -> Dict[str, str]:
        # Authentication travels in the query string only.
        return {}
