"""REST API client."""

from .client import HuobiClient
from .http_client import AiohttpTransport, HttpResponse, HttpTransport
from .request_builder import RequestAssembler, RequestDescriptor

__all__ = [
    'HuobiClient',
    'AiohttpTransport',
    'HttpResponse',
    'HttpTransport',
    'RequestAssembler',
    'RequestDescriptor',
]
