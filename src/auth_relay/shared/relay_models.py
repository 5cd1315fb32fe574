"""
Relay data models for the first-party OAuth gateway.

This module defines the closed set of OAuth providers, the runtime mode
threaded through every component, the tagged Set-Cookie representation and
the per-request relay request/outcome values.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from starlette.responses import JSONResponse, RedirectResponse, Response


class ProviderId(str, Enum):
    """OAuth providers the relay can start a sign-in for."""
    GOOGLE = "google"
    GITHUB = "github"
    LINKEDIN = "linkedin"
    MICROSOFT = "microsoft"
    DISCORD = "discord"
    FACEBOOK = "facebook"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ProviderId"]:
        """Return the matching provider, or None for unknown identifiers."""
        try:
            return cls(value)
        except ValueError:
            return None


class RuntimeMode(str, Enum):
    """Deployment mode controlling HSTS, HTTPS enforcement and error detail."""
    PRODUCTION = "production"
    DEVELOPMENT = "development"

    @property
    def is_production(self) -> bool:
        return self is RuntimeMode.PRODUCTION


@dataclass(frozen=True)
class SingleCookie:
    """One Set-Cookie value as returned by a single-header upstream."""
    value: str


@dataclass(frozen=True)
class MultipleCookies:
    """Several independent Set-Cookie values, in upstream order."""
    values: Tuple[str, ...]


SetCookieHeaders = Union[SingleCookie, MultipleCookies]


def normalize_set_cookies(
    raw: Union[SetCookieHeaders, str, Sequence[str], None]
) -> Tuple[str, ...]:
    """
    Normalize any Set-Cookie shape into an ordered tuple of header values.

    Each value stays a separate header; values are never joined, since a
    comma-joined Set-Cookie line cannot be split back reliably (Expires
    attributes contain commas).

    Args:
        raw: A tagged cookie value, a bare string, a sequence of strings or None

    Returns:
        Tuple[str, ...]: The non-empty cookie values in their original order
    """
    if raw is None:
        return ()
    if isinstance(raw, SingleCookie):
        values: Sequence[str] = (raw.value,)
    elif isinstance(raw, MultipleCookies):
        values = raw.values
    elif isinstance(raw, str):
        values = (raw,)
    else:
        values = tuple(raw)

    for value in values:
        if not isinstance(value, str):
            raise TypeError(f"Set-Cookie values must be strings, got {type(value).__name__}")
    return tuple(value for value in values if value)


class RelayRequest(BaseModel):
    """
    Inbound relay navigation, one per HTTP request.

    Values are kept raw; validation is the relay's job so that each failure
    maps to its own status code.
    """
    provider_id: str = Field(..., description="Provider path segment as received")
    redirect_url: Optional[str] = Field(default=None, description="Raw 'redirect' query parameter")
    cookie_header: Optional[str] = Field(default=None, description="Raw incoming Cookie header")

    model_config = ConfigDict(frozen=True)


class SignInResult(BaseModel):
    """Result of the Auth Provider's social sign-in capability."""
    consent_url: Optional[str] = Field(default=None, description="OAuth provider consent page")
    set_cookies: Tuple[str, ...] = Field(default=(), description="Set-Cookie values in order")

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_upstream(
        cls,
        consent_url: Optional[str],
        set_cookies: Union[SetCookieHeaders, str, Sequence[str], None]
    ) -> "SignInResult":
        """Build a result, normalizing the Set-Cookie shape at the boundary."""
        return cls(consent_url=consent_url or None, set_cookies=normalize_set_cookies(set_cookies))


@dataclass(frozen=True)
class RelayOutcome:
    """
    Final result of a relay attempt, written to the browser by the router.

    Either a redirect carrying every captured cookie, or an error body with
    a specific status code.
    """
    status_code: int
    location: Optional[str] = None
    set_cookie_headers: Tuple[str, ...] = field(default_factory=tuple)
    body_error: Optional[str] = None

    @classmethod
    def redirect(cls, location: str, set_cookie_headers: Sequence[str] = ()) -> "RelayOutcome":
        return cls(status_code=302, location=location, set_cookie_headers=tuple(set_cookie_headers))

    @classmethod
    def failure(cls, status_code: int, message: str) -> "RelayOutcome":
        return cls(status_code=status_code, body_error=message)

    @property
    def is_redirect(self) -> bool:
        return self.location is not None

    def to_response(self) -> Response:
        """Render the outcome as a Starlette response."""
        if self.location is None:
            return JSONResponse(
                status_code=self.status_code,
                content={"error": self.body_error or "Request failed"}
            )

        response = RedirectResponse(url=self.location, status_code=self.status_code)
        for cookie in self.set_cookie_headers:
            # append, not assignment: one header line per cookie
            response.headers.append("set-cookie", cookie)
        return response
