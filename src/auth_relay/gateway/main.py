"""
First-Party OAuth Relay Gateway

This FastAPI application sits in front of an Auth Provider (OAuth handshake,
token exchange, cookie-encoded sessions) and keeps every cookie-setting step
in a first-party context for browsers that block third-party cookies.

Key Endpoints:
- GET /oauth/{provider_id}?redirect=<url> - first-party OAuth relay
- ANY /api/* - delegated to the Auth Provider
- GET /health - liveness probe, no CORS or HTTPS enforcement

Request pipeline (outermost first):
- Security headers on every response
- Centralized error handler
- Health probe
- HTTPS enforcement (production)
- CORS against the origin allowlist
- Routes
"""

import argparse
import sys
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware import Middleware

from ..provider.client import AuthProvider, HttpAuthProvider
from ..provider.proxy import AuthProviderProxy
from ..shared.config import ConfigurationError, GatewayConfig, load_config
from ..shared.logging_utils import ComponentType, GatewayLogger
from .errors import ErrorHandler
from .middleware import (
    AllowlistCORSMiddleware,
    ErrorHandlerMiddleware,
    HealthProbeMiddleware,
    HTTPSEnforcementMiddleware,
    SecurityHeadersMiddleware,
)
from .relay import OAuthRelay
from .routes import router


def build_pipeline(config: GatewayConfig, allowlist, logger: GatewayLogger) -> list:
    """Middleware stages, outermost first."""
    return [
        Middleware(SecurityHeadersMiddleware, mode=config.mode),
        Middleware(ErrorHandlerMiddleware, handler=ErrorHandler(config.mode, logger), allowlist=allowlist),
        Middleware(HealthProbeMiddleware, service_name=config.service_name, mode=config.mode),
        Middleware(HTTPSEnforcementMiddleware, mode=config.mode),
        Middleware(AllowlistCORSMiddleware, allowlist=allowlist, logger=logger),
    ]


def create_app(
    config: GatewayConfig,
    auth_provider: Optional[AuthProvider] = None,
    proxy: Optional[AuthProviderProxy] = None
) -> FastAPI:
    """
    Build the gateway application.

    Args:
        config: Immutable gateway configuration
        auth_provider: Sign-in capability (defaults to HttpAuthProvider)
        proxy: ``/api/*`` delegate (defaults to AuthProviderProxy)

    Returns:
        FastAPI: The configured application
    """
    logger = GatewayLogger(ComponentType.GATEWAY.value)
    allowlist = config.build_allowlist()

    # Components built here share one connection pool for the app lifetime
    pooled = []
    if auth_provider is None:
        auth_provider = HttpAuthProvider(
            config.auth_provider_url,
            sign_in_path=config.sign_in_path,
            timeout=config.upstream_timeout,
        )
        pooled.append(auth_provider)
    if proxy is None:
        proxy = AuthProviderProxy(config.auth_provider_url, timeout=config.upstream_timeout)
        pooled.append(proxy)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not pooled:
            yield
            return

        async with httpx.AsyncClient(timeout=config.upstream_timeout) as client:
            for component in pooled:
                component.client = client
            try:
                yield
            finally:
                for component in pooled:
                    component.client = None

    app = FastAPI(
        title="First-Party OAuth Relay Gateway",
        description="Relays browser navigations to OAuth consent pages while keeping cookies first-party.",
        version="1.0.0",
        middleware=build_pipeline(config, allowlist, logger),
        lifespan=lifespan,
        docs_url=None if config.mode.is_production else "/docs",
        redoc_url=None,
        openapi_url=None if config.mode.is_production else "/openapi.json",
    )

    app.state.config = config
    app.state.allowlist = allowlist
    app.state.relay = OAuthRelay(config, allowlist, auth_provider)
    app.state.proxy = proxy

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Render routing errors (404, 405) in the gateway's {error} shape."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers
        )

    app.include_router(router)
    return app


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="auth-relay",
        description="Run the first-party OAuth relay gateway."
    )
    parser.add_argument("--host", help="Interface to bind (overrides HOST)")
    parser.add_argument("--port", type=int, help="Port to listen on (overrides PORT)")
    parser.add_argument("--log-level", default="info",
                        choices=["critical", "error", "warning", "info", "debug"],
                        help="uvicorn log level")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Console entry point: load configuration and serve with uvicorn."""
    args = parse_args(argv)
    logger = GatewayLogger(ComponentType.SYSTEM.value)

    try:
        config = load_config()
    except ConfigurationError as e:
        logger.log_error("ConfigurationError", str(e))
        return 1

    host = args.host or config.host
    port = args.port or config.port

    logger.log_startup(host, port, list(config.build_allowlist()), {
        "environment": config.mode.value,
        "auth_provider": config.auth_provider_url,
        "enabled_providers": ", ".join(p.value for p in config.enabled_providers) or "none",
    })

    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        log_level=args.log_level,
        # Deployed behind a TLS-terminating proxy (Cloud Run, load balancer)
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
