"""Pytest configuration and fixtures."""
import json
from unittest.mock import AsyncMock

import pytest
from prometheus_client import CollectorRegistry

from huobi_client.auth.signer import ApiCredentials
from huobi_client.config import ClientOptions
from huobi_client.monitoring.metrics import ClientMetrics
from huobi_client.rest.http_client import HttpResponse


def _ok_response(data, status=200, field='data') -> HttpResponse:
    return HttpResponse(status=status, text=json.dumps({'status': 'ok', field: data}))


@pytest.fixture
def ok_response():
    """Factory for success envelopes as the exchange would send them."""
    return _ok_response


@pytest.fixture
def credentials() -> ApiCredentials:
    return ApiCredentials(key='test-key', secret='test-secret')


@pytest.fixture
def signed_options(credentials) -> ClientOptions:
    return ClientOptions(api_credentials=credentials)


@pytest.fixture
def transport() -> AsyncMock:
    """Create a mock HTTP transport answering with an empty success envelope."""
    mock = AsyncMock()
    mock.send.return_value = _ok_response(None)
    return mock


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def metrics(registry) -> ClientMetrics:
    return ClientMetrics(registry)
