"""
Reverse proxy for the Auth Provider's ``/api/*`` surface.

Session, callback and sign-out endpoints all live on the Auth Provider; the
gateway forwards them unchanged so that their cookies are set on the
gateway's own (first-party) host.
"""

from typing import List, Optional, Tuple

import httpx
from starlette.requests import Request
from starlette.responses import Response

from ..gateway.errors import UpstreamError
from ..shared.logging_utils import ComponentType, GatewayLogger, MessageType


# RFC 7230 hop-by-hop headers plus those httpx/starlette recompute
HOP_BY_HOP_HEADERS = frozenset([
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
])
REQUEST_STRIP_HEADERS = HOP_BY_HOP_HEADERS | {"host", "content-length"}
RESPONSE_STRIP_HEADERS = HOP_BY_HOP_HEADERS | {"content-length", "content-encoding"}


def forwardable_request_headers(request: Request) -> List[Tuple[str, str]]:
    """Copy request headers minus hop-by-hop ones, adding X-Forwarded-*."""
    headers = [
        (key, value)
        for key, value in request.headers.items()
        if key.lower() not in REQUEST_STRIP_HEADERS and not key.lower().startswith("x-forwarded-")
    ]

    client_host = request.client.host if request.client else None
    if client_host:
        prior = request.headers.get("x-forwarded-for")
        headers.append(("x-forwarded-for", f"{prior}, {client_host}" if prior else client_host))
    headers.append(("x-forwarded-host", request.headers.get("host", request.url.netloc)))
    headers.append(("x-forwarded-proto", request.url.scheme))
    return headers


def build_proxied_response(upstream: httpx.Response) -> Response:
    """
    Turn an upstream response into a Starlette response.

    Multi-valued headers (Set-Cookie above all) are appended one by one so
    each keeps its own header line.
    """
    response = Response(content=upstream.content, status_code=upstream.status_code)
    for key, value in upstream.headers.multi_items():
        if key.lower() in RESPONSE_STRIP_HEADERS:
            continue
        response.headers.append(key, value)
    return response


class AuthProviderProxy:
    """Forwards ``/api/*`` requests to the Auth Provider."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[GatewayLogger] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(timeout)
        self.client = client
        self.logger = logger or GatewayLogger(ComponentType.GATEWAY.value)

    def target_url(self, request: Request) -> str:
        url = f"{self.base_url}{request.url.path}"
        if request.url.query:
            url = f"{url}?{request.url.query}"
        return url

    async def _send(self, upstream_request: httpx.Request) -> httpx.Response:
        if self.client is not None:
            return await self.client.send(upstream_request, follow_redirects=False)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.send(upstream_request, follow_redirects=False)

    async def forward(self, request: Request) -> Response:
        """
        Forward one request to the Auth Provider and relay its response.

        Args:
            request: Incoming ``/api/*`` request

        Returns:
            Response: Upstream status, headers and body

        Raises:
            UpstreamError: If the Auth Provider cannot be reached
        """
        target = self.target_url(request)
        body = await request.body()

        self.logger.log_message(
            ComponentType.GATEWAY.value, ComponentType.AUTH_PROVIDER.value,
            MessageType.PROXY.value,
            {
                "method": request.method,
                "path": request.url.path,
                "target": target,
                "body_bytes": len(body),
            }
        )

        upstream_request = httpx.Request(
            request.method,
            target,
            headers=forwardable_request_headers(request),
            content=body,
            extensions={"timeout": self.timeout.as_dict()},
        )

        try:
            upstream = await self._send(upstream_request)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Auth Provider proxy request to {target} failed: {e!r}") from e

        self.logger.log_message(
            ComponentType.AUTH_PROVIDER.value, ComponentType.GATEWAY.value,
            MessageType.RESPONSE.value,
            {
                "status_code": upstream.status_code,
                "path": request.url.path,
                "set_cookies": upstream.headers.get_list("set-cookie"),
            },
            success=upstream.status_code < 500
        )
        return build_proxied_response(upstream)
