"""
Auth Provider sign-in client.

The Auth Provider owns the OAuth handshake and session cookies. The relay
only needs one capability from it: start a social sign-in for a provider and
hand back the consent URL together with the cookies the provider wants set
(OAuth state, PKCE verifier, existing session refresh...).
"""

from typing import Optional, Protocol
from urllib.parse import urlsplit

import httpx

from ..gateway.errors import UpstreamError
from ..shared.logging_utils import ComponentType, GatewayLogger, MessageType
from ..shared.relay_models import ProviderId, SignInResult


class AuthProvider(Protocol):
    """Capability the relay depends on."""

    async def sign_in(
        self,
        provider: ProviderId,
        callback_url: str,
        cookie_header: Optional[str] = None
    ) -> SignInResult:
        ...


class HttpAuthProvider:
    """
    Auth Provider reached over HTTP.

    Calls ``POST {base_url}{sign_in_path}`` with ``{"provider", "callbackURL"}``
    and reads the consent URL from the JSON ``url`` field. Every Set-Cookie
    header of the response is kept as its own value.
    """

    def __init__(
        self,
        base_url: str,
        sign_in_path: str = "/api/auth/sign-in/social",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[GatewayLogger] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.sign_in_url = f"{self.base_url}{sign_in_path}"
        self.timeout = httpx.Timeout(timeout)
        self.client = client
        self.logger = logger or GatewayLogger(ComponentType.AUTH_PROVIDER.value)

        parts = urlsplit(self.base_url)
        self.origin = f"{parts.scheme}://{parts.netloc}"

    def _build_headers(self, cookie_header: Optional[str]) -> dict:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            # The Auth Provider rejects state-changing calls without a trusted Origin
            "Origin": self.origin,
        }
        if cookie_header:
            headers["Cookie"] = cookie_header
        return headers

    async def _post(self, payload: dict, headers: dict) -> httpx.Response:
        if self.client is not None:
            return await self.client.post(
                self.sign_in_url, json=payload, headers=headers, timeout=self.timeout
            )
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=False) as client:
            return await client.post(self.sign_in_url, json=payload, headers=headers)

    async def sign_in(
        self,
        provider: ProviderId,
        callback_url: str,
        cookie_header: Optional[str] = None
    ) -> SignInResult:
        """
        Start a social sign-in on the Auth Provider.

        Args:
            provider: OAuth provider to sign in with
            callback_url: Where the Auth Provider sends the browser afterwards
            cookie_header: Raw incoming Cookie header, forwarded verbatim

        Returns:
            SignInResult: Consent URL (may be None) and Set-Cookie values

        Raises:
            UpstreamError: On transport failure, timeout, error status or a
                body that is not a JSON object
        """
        payload = {"provider": provider.value, "callbackURL": callback_url}

        self.logger.log_message(
            ComponentType.RELAY.value, ComponentType.AUTH_PROVIDER.value,
            MessageType.SIGN_IN.value,
            {
                "endpoint": self.sign_in_url,
                "provider": provider.value,
                "callback_url": callback_url,
                "cookie": cookie_header,
            }
        )

        try:
            response = await self._post(payload, self._build_headers(cookie_header))
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Auth Provider timed out after {self.timeout.read}s: {e!r}") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Auth Provider request failed: {e!r}") from e

        if response.status_code >= 400:
            raise UpstreamError(
                f"Auth Provider sign-in returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError("Auth Provider returned a non-JSON sign-in response") from e

        if not isinstance(body, dict):
            raise UpstreamError("Auth Provider returned an unexpected sign-in payload")

        consent_url = body.get("url")
        result = SignInResult.from_upstream(
            consent_url if isinstance(consent_url, str) else None,
            response.headers.get_list("set-cookie")
        )

        self.logger.log_message(
            ComponentType.AUTH_PROVIDER.value, ComponentType.RELAY.value,
            MessageType.RESPONSE.value,
            {
                "status_code": response.status_code,
                "consent_url_present": result.consent_url is not None,
                "set_cookies": result.set_cookies,
            }
        )
        return result
