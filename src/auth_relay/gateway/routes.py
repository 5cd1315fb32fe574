"""
Gateway routes.

``GET /oauth/{provider_id}`` is the relay entry point. It is meant for
top-level browser navigation, not fetch/XHR: the whole point is that the
browser stores the returned cookies in a first-party context.

``/api/{path}`` is delegated in full to the Auth Provider.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from ..provider.proxy import AuthProviderProxy
from ..shared.relay_models import RelayOutcome, RelayRequest
from .errors import ForbiddenError, ValidationError
from .relay import OAuthRelay, cancel_on_disconnect


router = APIRouter()

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


def get_relay(request: Request) -> OAuthRelay:
    """Dependency returning the relay built by create_app()."""
    return request.app.state.relay


def get_proxy(request: Request) -> AuthProviderProxy:
    """Dependency returning the Auth Provider proxy built by create_app()."""
    return request.app.state.proxy


@router.get("/oauth/{provider_id}",
            summary="First-party OAuth relay",
            description="""
            Start a social sign-in on the Auth Provider and redirect the
            browser to the OAuth consent page, forwarding every cookie the
            Auth Provider sets.

            **Parameters:**
            - provider_id: google, github, linkedin, microsoft, discord or facebook
            - redirect: absolute URL on an allowlisted origin to return to
            """,
            response_class=Response,
            responses={
                302: {"description": "Redirect to the provider consent page"},
                400: {"description": "Invalid provider or redirect URL"},
                403: {"description": "Redirect origin not allowed"},
                500: {"description": "Auth Provider failure"},
            })
async def oauth_relay(
    request: Request,
    provider_id: str,
    redirect: Optional[str] = Query(default=None, description="URL to return to after sign-in"),
    relay: OAuthRelay = Depends(get_relay)
):
    """Relay a browser navigation to the provider consent page."""
    relay_request = RelayRequest(
        provider_id=provider_id,
        redirect_url=redirect,
        cookie_header=request.headers.get("cookie"),
    )

    try:
        outcome = await cancel_on_disconnect(request, relay.relay(relay_request))
    except (ValidationError, ForbiddenError) as e:
        return RelayOutcome.failure(e.status_code, e.public_message).to_response()

    return outcome.to_response()


@router.api_route("/api/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def auth_provider_api(
    request: Request,
    path: str,
    proxy: AuthProviderProxy = Depends(get_proxy)
):
    """Delegate the Auth Provider's API surface."""
    return await proxy.forward(request)
