"""
Outbound request construction.

Decides which parameters travel in the query string and which in the body,
adds authentication, and produces an immutable descriptor for the transport.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple
from urllib.parse import urlencode, urlsplit

from ..auth.signer import coerce_value, escape
from ..config import ClientOptions
from ..exceptions import ArgumentError

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = ('GET', 'POST', 'PUT', 'DELETE')
JSON_CONTENT_TYPE = 'application/json'
FORM_CONTENT_TYPE = 'application/x-www-form-urlencoded'


class AuthenticationProvider(Protocol):
    """Adds exchange-specific authentication to a request."""

    def add_authentication_to_parameters(
        self,
        method: str,
        host: str,
        path: str,
        parameters: Mapping[str, Any],
        timestamp: datetime
    ) -> Dict[str, Any]:
        ...

    def add_authentication_to_headers(
        self,
        method: str,
        host: str,
        path: str,
        parameters: Mapping[str, Any]
    ) -> Dict[str, str]:
        ...


@dataclass(frozen=True)
class RequestDescriptor:
    """A fully formed request, ready to be handed to a transport.

    Attributes:
        method: HTTP method
        url: Absolute URL including the query string
        headers: HTTP headers
        body: Encoded body, or None when the request has no body
        query_params: Query parameters in the order they appear in the URL
        body_params: Parameters encoded into the body
    """
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    query_params: Tuple[Tuple[str, str], ...] = ()
    body_params: Dict[str, Any] = field(default_factory=dict)


def _query_string(pairs: Tuple[Tuple[str, str], ...]) -> str:
    return '&'.join(f"{escape(key)}={escape(value)}" for key, value in pairs)


def _ordered_query(parameters: Mapping[str, Any]) -> Tuple[Tuple[str, str], ...]:
    """Sorted parameters with the signature, if any, last."""
    pairs = [(key, coerce_value(parameters[key])) for key in sorted(parameters) if key != 'Signature']
    if 'Signature' in parameters:
        pairs.append(('Signature', parameters['Signature']))
    return tuple(pairs)


def _body_value(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [coerce_value(v) for v in value]
    if isinstance(value, dict):
        return value
    return coerce_value(value)


class RequestAssembler:
    """Builds request descriptors. Holds no per-request state."""

    def __init__(
        self,
        options: Optional[ClientOptions] = None,
        auth_provider: Optional[AuthenticationProvider] = None
    ):
        """
        Initialize the assembler.

        Args:
            options: Client options (body format and parameter placement)
            auth_provider: Authentication provider; required for signed requests
        """
        self.options = options or ClientOptions()
        self.auth_provider = auth_provider

    def build(
        self,
        method: str,
        base_url: str,
        endpoint_path: str,
        parameters: Optional[Mapping[str, Any]] = None,
        signed: bool = False,
        timestamp: Optional[datetime] = None
    ) -> RequestDescriptor:
        """
        Build a request descriptor.

        Args:
            method: HTTP method
            base_url: Base address, e.g. 'https://api.huobi.pro'
            endpoint_path: Path relative to the base address, e.g. 'v1/order/orders'
            parameters: Business parameters
            signed: Whether to authenticate the request
            timestamp: Signing time; the current UTC time when omitted

        Returns:
            RequestDescriptor for the transport

        Raises:
            ArgumentError: On an unsupported method, or a signed request without credentials
        """
        method = method.upper()
        if method not in SUPPORTED_METHODS:
            raise ArgumentError(f"Unsupported HTTP method: {method}")

        parameters = dict(parameters or {})
        url = f"{base_url.rstrip('/')}/{endpoint_path.lstrip('/')}"
        parts = urlsplit(url)
        host = parts.hostname or ''
        path = parts.path

        in_uri = method in ('GET', 'DELETE') or self.options.parameter_position == 'uri'

        headers = {
            'Content-Type': FORM_CONTENT_TYPE if self.options.request_body_format == 'form' else JSON_CONTENT_TYPE,
            'Accept': JSON_CONTENT_TYPE,
        }
        if self.auth_provider is not None:
            headers.update(self.auth_provider.add_authentication_to_headers(method, host, path, parameters))

        auth_params: Dict[str, Any] = {}
        if signed:
            if self.auth_provider is None:
                raise ArgumentError("No credentials provided for a signed request")
            auth_params = self.auth_provider.add_authentication_to_parameters(
                method,
                host,
                path,
                parameters if in_uri else {},
                timestamp or datetime.now(timezone.utc)
            )

        if in_uri:
            query = _ordered_query({**parameters, **auth_params})
            body_params: Dict[str, Any] = {}
        else:
            query = _ordered_query(auth_params)
            body_params = {key: _body_value(value) for key, value in parameters.items()}

        if query:
            url = f"{url}?{_query_string(query)}"

        body = None
        if method in ('POST', 'PUT') and not in_uri:
            if self.options.request_body_format == 'form':
                body = urlencode(body_params, doseq=True)
            else:
                body = json.dumps(body_params, separators=(',', ':')) if body_params else '{}'

        logger.debug("Built %s %s%s", method, parts.path, " (signed)" if signed else "")

        return RequestDescriptor(
            method=method,
            url=url,
            headers=headers,
            body=body,
            query_params=query,
            body_params=body_params
        )
