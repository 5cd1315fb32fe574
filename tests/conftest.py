"""
Pytest configuration and shared fixtures for the relay gateway tests.

This module provides gateway configurations for both runtime modes, an
in-memory Auth Provider that records every sign-in call, and TestClient
factories wired to httpx mock transports.
"""

import logging
from typing import Callable, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient
from pydantic import SecretStr

from auth_relay.gateway.main import create_app
from auth_relay.provider.proxy import AuthProviderProxy
from auth_relay.shared.config import GatewayConfig, ProviderCredentials
from auth_relay.shared.relay_models import ProviderId, RuntimeMode, SignInResult


TEST_SECRET = "test-secret-value-that-is-at-least-32-chars"
ALLOWED_ORIGIN = "http://localhost:8887"
OTHER_ALLOWED_ORIGIN = "https://app.example.com"
AUTH_PROVIDER_URL = "http://auth-provider.internal:3000"
CONSENT_URL = "https://provider.example/consent"
UPSTREAM_COOKIES = ["a=1; Path=/", "b=2; Path=/"]


class FakeAuthProvider:
    """Auth Provider double recording every sign-in call."""

    def __init__(self, result: Optional[SignInResult] = None, error: Optional[Exception] = None):
        self.result = result or SignInResult.from_upstream(CONSENT_URL, UPSTREAM_COOKIES)
        self.error = error
        self.calls: List[Dict] = []

    async def sign_in(self, provider, callback_url, cookie_header=None):
        self.calls.append({
            "provider": provider,
            "callback_url": callback_url,
            "cookie_header": cookie_header,
        })
        if self.error is not None:
            raise self.error
        return self.result


def make_config(**overrides) -> GatewayConfig:
    """Build a GatewayConfig with google and github enabled."""
    settings = {
        "mode": RuntimeMode.DEVELOPMENT,
        "allowed_origins": (ALLOWED_ORIGIN, OTHER_ALLOWED_ORIGIN),
        "base_url": "http://localhost:3002",
        "auth_provider_url": AUTH_PROVIDER_URL,
        "auth_secret": SecretStr(TEST_SECRET),
        "providers": {
            ProviderId.GOOGLE: ProviderCredentials(client_id="google-id", client_secret=SecretStr("google-secret")),
            ProviderId.GITHUB: ProviderCredentials(client_id="github-id", client_secret=SecretStr("github-secret")),
        },
        "service_name": "auth-relay-test",
    }
    settings.update(overrides)
    return GatewayConfig(**settings)


@pytest.fixture
def dev_config() -> GatewayConfig:
    """Development-mode configuration."""
    return make_config()


@pytest.fixture
def prod_config() -> GatewayConfig:
    """Production-mode configuration."""
    return make_config(mode=RuntimeMode.PRODUCTION, base_url="https://auth.example.com")


@pytest.fixture
def fake_provider() -> FakeAuthProvider:
    """Auth Provider returning a consent URL and two cookies."""
    return FakeAuthProvider()


@pytest.fixture
def upstream_requests() -> List[httpx.Request]:
    """Requests seen by the mocked Auth Provider API."""
    return []


@pytest.fixture
def api_handler(upstream_requests) -> Callable[[httpx.Request], httpx.Response]:
    """Default mocked Auth Provider API: echoes a session with two cookies."""
    def handler(request: httpx.Request) -> httpx.Response:
        upstream_requests.append(request)
        return httpx.Response(
            200,
            headers=[
                ("set-cookie", "better-auth.session_token=abc; Path=/; HttpOnly"),
                ("set-cookie", "better-auth.session_data=xyz; Path=/; HttpOnly"),
            ],
            json={"session": {"id": "s1"}, "user": {"id": "u1"}},
        )
    return handler


def make_proxy(handler) -> AuthProviderProxy:
    """Proxy whose upstream is an httpx MockTransport."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AuthProviderProxy(AUTH_PROVIDER_URL, client=client)


@pytest.fixture
def make_client(fake_provider, api_handler):
    """Factory for TestClients over a configured gateway app."""
    def factory(config: GatewayConfig, provider=None, handler=None, **client_kwargs) -> TestClient:
        app = create_app(
            config,
            auth_provider=provider or fake_provider,
            proxy=make_proxy(handler or api_handler),
        )
        client_kwargs.setdefault("follow_redirects", False)
        return TestClient(app, **client_kwargs)
    return factory


@pytest.fixture
def client(make_client, dev_config) -> TestClient:
    """Development gateway client."""
    return make_client(dev_config)


@pytest.fixture
def prod_client(make_client, prod_config) -> TestClient:
    """Production gateway client reached over https."""
    return make_client(prod_config, base_url="https://testserver")


@pytest.fixture(autouse=True)
def disable_logging():
    """Disable library logging (httpx, uvicorn) during tests to reduce noise."""
    logging.disable(logging.CRITICAL)
    yield
    logging.disable(logging.NOTSET)


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "security: marks tests as security-focused tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers automatically based on test file names."""
    for item in items:
        if "endpoints" in item.nodeid:
            item.add_marker(pytest.mark.integration)
        elif "security" in item.nodeid or "error_handling" in item.nodeid:
            item.add_marker(pytest.mark.security)
        else:
            item.add_marker(pytest.mark.unit)
