"""
Request pipeline stages for the gateway.

Each stage is a plain ASGI middleware that either passes the request on or
answers it itself. create_app() lists them outermost first:

    SecurityHeadersMiddleware   headers on every response
    ErrorHandlerMiddleware      single centralized error sink
    HealthProbeMiddleware       /health and /favicon.ico, no CORS/TLS checks
    HTTPSEnforcementMiddleware  production: redirect plain http to https
    AllowlistCORSMiddleware     CORS against the shared origin allowlist
"""

from datetime import datetime, timezone

from starlette.datastructures import Headers, MutableHeaders
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..shared.logging_utils import ComponentType, GatewayLogger
from ..shared.relay_models import RuntimeMode
from ..shared.security import OriginAllowlist, SecurityHeaders
from .errors import ErrorHandler, ForbiddenError


PROBE_PATHS = frozenset(["/health", "/favicon.ico"])

CORS_ALLOW_METHODS = ["GET", "POST", "PUT", "DELETE"]
CORS_ALLOW_HEADERS = ["Content-Type", "Authorization"]
CORS_MAX_AGE = 86400


class SecurityHeadersMiddleware:
    """
    Add the fixed security header set to every HTTP response.

    Headers are written into ``http.response.start``, so they are present
    before any body byte is sent, error responses included.
    """

    def __init__(self, app: ASGIApp, mode: RuntimeMode):
        self.app = app
        self.headers = SecurityHeaders.for_mode(mode)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in self.headers.items():
                    headers[name] = value
            await send(message)

        await self.app(scope, receive, send_with_headers)


class ErrorHandlerMiddleware:
    """
    Terminate the pipeline with the centralized error handler.

    Any exception raised further in is logged and turned into a sanitized
    JSON response. If the response has already started there is nothing
    left to replace, so the exception propagates to the server.

    The CORS stage sits further in and never sees these responses, so an
    allowlisted Origin gets the simple-response CORS headers here.
    """

    def __init__(self, app: ASGIApp, handler: ErrorHandler, allowlist: OriginAllowlist = None):
        self.app = app
        self.handler = handler
        self.allowlist = allowlist

    def add_cors_headers(self, scope: Scope, response: Response) -> None:
        origin = Headers(scope=scope).get("origin")
        if self.allowlist is None or not origin or not self.allowlist.is_allowed(origin):
            return
        response.headers["access-control-allow-origin"] = origin
        response.headers["access-control-allow-credentials"] = "true"
        response.headers.add_vary_header("Origin")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_tracking(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_tracking)
        except Exception as exc:
            if response_started:
                raise
            response = self.handler.handle(Request(scope), exc)
            if response is not None:
                self.add_cors_headers(scope, response)
                await response(scope, receive, send)


class HealthProbeMiddleware:
    """
    Answer liveness probes before HTTPS enforcement and CORS.

    Infrastructure health checks arrive over plain http and without an
    Origin header; they must succeed regardless of the allowlist.
    """

    def __init__(self, app: ASGIApp, service_name: str, mode: RuntimeMode):
        self.app = app
        self.service_name = service_name
        self.mode = mode

    def health_response(self) -> Response:
        return JSONResponse({
            "status": "ok",
            "service": self.service_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": self.mode.value,
        })

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] not in PROBE_PATHS or scope["method"] not in ("GET", "HEAD"):
            await self.app(scope, receive, send)
            return

        if scope["path"] == "/health":
            response = self.health_response()
        else:
            response = Response(status_code=204)
        await response(scope, receive, send)


class HTTPSEnforcementMiddleware:
    """Redirect plain-http requests to https in production."""

    def __init__(self, app: ASGIApp, mode: RuntimeMode):
        self.app = app
        self.enabled = mode.is_production

    @staticmethod
    def is_secure(scope: Scope) -> bool:
        if scope.get("scheme") in ("https", "wss"):
            return True
        forwarded_proto = Headers(scope=scope).get("x-forwarded-proto", "")
        # Behind chained proxies the left-most value is the client-facing scheme
        return forwarded_proto.split(",")[0].strip().lower() == "https"

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if not self.enabled or scope["type"] != "http" or self.is_secure(scope):
            await self.app(scope, receive, send)
            return

        request = Request(scope)
        host = request.headers.get("host", request.url.netloc)
        target = f"https://{host}{request.url.path}"
        if request.url.query:
            target = f"{target}?{request.url.query}"

        response = RedirectResponse(target, status_code=302)
        await response(scope, receive, send)


class AllowlistCORSMiddleware(CORSMiddleware):
    """
    CORS negotiation backed by the shared origin allowlist.

    Requests without an Origin header (OAuth callbacks, top-level
    navigations) pass through. A disallowed origin on a preflight gets
    Starlette's 400; on any other request it is rejected with 403.
    """

    def __init__(self, app: ASGIApp, allowlist: OriginAllowlist, logger: GatewayLogger = None):
        super().__init__(
            app,
            allow_origins=sorted(allowlist.origins),
            allow_methods=CORS_ALLOW_METHODS,
            allow_headers=CORS_ALLOW_HEADERS,
            allow_credentials=True,
            max_age=CORS_MAX_AGE,
        )
        self.allowlist = allowlist
        self.logger = logger or GatewayLogger(ComponentType.GATEWAY.value)

    def is_allowed_origin(self, origin: str) -> bool:
        return self.allowlist.is_allowed(origin)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            headers = Headers(scope=scope)
            origin = headers.get("origin")
            is_preflight = scope["method"] == "OPTIONS" and "access-control-request-method" in headers

            if origin and not is_preflight and not self.is_allowed_origin(origin):
                self.logger.log_warning(f"Blocked CORS request from: {origin}", {
                    "method": scope["method"],
                    "path": scope["path"],
                })
                raise ForbiddenError(f"Not allowed by CORS: {origin}", "Origin not allowed")

        await super().__call__(scope, receive, send)
