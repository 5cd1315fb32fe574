"""
OAuth Redirect Relay.

Browsers that block third-party cookies cannot complete an OAuth flow that
sets cookies on the Auth Provider's own host. The relay is a first-party
navigation endpoint: the browser navigates to the gateway, the gateway asks
the Auth Provider to start the sign-in, copies every Set-Cookie it returns
onto its own response and redirects the browser to the provider's consent
page.

Relay states:
    received -> forwarding -> cookie-capture -> redirecting

Each failure is terminal: ValidationError (400), ForbiddenError (403) or
UpstreamError (500). No outbound call is made until the request has passed
validation.
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

from starlette.requests import Request

from ..provider.client import AuthProvider
from ..shared.config import GatewayConfig
from ..shared.logging_utils import ComponentType, GatewayLogger
from ..shared.relay_models import ProviderId, RelayOutcome, RelayRequest, SignInResult
from ..shared.security import OriginAllowlist, origin_of
from .errors import ClientDisconnectedError, ForbiddenError, UpstreamError, ValidationError


T = TypeVar("T")

DISCONNECT_POLL_INTERVAL = 0.5


class OAuthRelay:
    """
    First-party relay from a browser navigation to an OAuth consent page.

    The allowlist is fixed at construction; the origin check and the
    redirect it authorizes therefore always see the same snapshot.
    """

    def __init__(
        self,
        config: GatewayConfig,
        allowlist: OriginAllowlist,
        auth_provider: AuthProvider,
        logger: Optional[GatewayLogger] = None
    ):
        self.config = config
        self.allowlist = allowlist
        self.auth_provider = auth_provider
        self.logger = logger or GatewayLogger(ComponentType.RELAY.value)

    def validate(self, request: RelayRequest) -> ProviderId:
        """
        Run the received-state checks.

        Args:
            request: Inbound relay request

        Returns:
            ProviderId: The validated provider

        Raises:
            ValidationError: Unknown or disabled provider, missing or malformed redirect
            ForbiddenError: Redirect origin outside the allowlist
        """
        provider = ProviderId.parse(request.provider_id)
        if provider is None:
            raise ValidationError(f"Invalid provider: {request.provider_id!r}", "Invalid provider")

        if not self.config.provider_enabled(provider):
            raise ValidationError(f"Provider {provider.value!r} is not configured", "Provider not enabled")

        redirect_url = request.redirect_url
        if redirect_url is None or not redirect_url.strip():
            raise ValidationError("Missing redirect URL")

        # Checked and forwarded byte-for-byte, so surrounding whitespace is invalid
        redirect_origin = origin_of(redirect_url) if redirect_url == redirect_url.strip() else None
        if redirect_origin is None:
            raise ValidationError(f"Invalid redirect URL: {redirect_url!r}", "Invalid redirect URL")

        if not self.allowlist.is_allowed(redirect_origin):
            raise ForbiddenError(
                f"Redirect origin {redirect_origin!r} is not in the allowlist",
                "Redirect origin not allowed"
            )

        return provider

    async def relay(self, request: RelayRequest) -> RelayOutcome:
        """
        Relay one browser navigation to the provider's consent page.

        Args:
            request: Inbound relay request

        Returns:
            RelayOutcome: 302 to the consent URL with every captured cookie

        Raises:
            ValidationError: Invalid input (400)
            ForbiddenError: Redirect origin not allowlisted (403)
            UpstreamError: Auth Provider failure or missing consent URL (500)
        """
        self.logger.log_relay_step("received", {
            "provider": request.provider_id,
            "redirect_url": request.redirect_url,
            "cookie": request.cookie_header,
        })

        try:
            provider = self.validate(request)
        except (ValidationError, ForbiddenError) as e:
            self.logger.log_relay_step("rejected", {
                "status_code": e.status_code,
                "reason": e.message,
            }, success=False)
            raise

        self.logger.log_relay_step("forwarding", {
            "provider": provider.value,
            "callback_url": request.redirect_url,
        })
        result: SignInResult = await self.auth_provider.sign_in(
            provider, request.redirect_url, request.cookie_header
        )

        # result.set_cookies is already an ordered tuple of independent values
        self.logger.log_relay_step("cookie-capture", {
            "set_cookies": result.set_cookies,
        })

        if not result.consent_url:
            raise UpstreamError("Auth Provider response did not include a consent URL")

        self.logger.log_relay_step("redirecting", {
            "provider": provider.value,
            "location": result.consent_url,
            "set_cookies": result.set_cookies,
        })
        return RelayOutcome.redirect(result.consent_url, result.set_cookies)


async def cancel_on_disconnect(request: Request, awaitable: Awaitable[T]) -> T:
    """
    Await ``awaitable`` unless the client disconnects first.

    Args:
        request: Incoming request whose connection is watched
        awaitable: The pending upstream work

    Returns:
        The awaitable's result

    Raises:
        ClientDisconnectedError: If the client went away; the upstream work
            is cancelled
    """
    work = asyncio.ensure_future(awaitable)

    async def watch() -> None:
        while not await request.is_disconnected():
            await asyncio.sleep(DISCONNECT_POLL_INTERVAL)

    watcher = asyncio.ensure_future(watch())
    try:
        done, _ = await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        watcher.cancel()
        raise

    if work in done:
        watcher.cancel()
        return work.result()

    if watcher.exception() is not None:
        # Connection state unknown; keep waiting on the bounded upstream call
        return await work

    work.cancel()
    raise ClientDisconnectedError(f"Client disconnected during {request.method} {request.url.path}")
