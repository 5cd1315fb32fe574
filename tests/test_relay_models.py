"""
Unit tests for relay data models.

Tests provider parsing, Set-Cookie normalization, and how relay outcomes
are rendered into responses.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from auth_relay.shared.relay_models import (
    MultipleCookies,
    ProviderId,
    RelayOutcome,
    RelayRequest,
    RuntimeMode,
    SignInResult,
    SingleCookie,
    normalize_set_cookies,
)


class TestProviderId:
    """Test cases for ProviderId enum."""

    def test_provider_values(self):
        """Test the closed provider set."""
        assert {p.value for p in ProviderId} == {
            "google", "github", "linkedin", "microsoft", "discord", "facebook"
        }

    def test_parse_known_provider(self):
        """Test parsing a known identifier."""
        assert ProviderId.parse("github") is ProviderId.GITHUB

    @pytest.mark.parametrize("value", ["twitter", "Google", "", None, "google "])
    def test_parse_unknown_provider(self, value):
        """Test that unknown identifiers are not matched loosely."""
        assert ProviderId.parse(value) is None


class TestRuntimeMode:
    """Test cases for RuntimeMode enum."""

    def test_is_production(self):
        assert RuntimeMode.PRODUCTION.is_production is True
        assert RuntimeMode.DEVELOPMENT.is_production is False


class TestNormalizeSetCookies:
    """Test cases for normalize_set_cookies()."""

    def test_single_cookie(self):
        """Test a tagged single value."""
        assert normalize_set_cookies(SingleCookie("a=1; Path=/")) == ("a=1; Path=/",)

    def test_multiple_cookies_keep_order(self):
        """Test that several values stay separate and ordered."""
        cookies = MultipleCookies(("a=1", "b=2", "c=3"))

        assert normalize_set_cookies(cookies) == ("a=1", "b=2", "c=3")

    def test_bare_string_and_list(self):
        """Test untagged shapes."""
        assert normalize_set_cookies("a=1") == ("a=1",)
        assert normalize_set_cookies(["a=1", "b=2"]) == ("a=1", "b=2")

    def test_none_and_empty(self):
        """Test absent cookies."""
        assert normalize_set_cookies(None) == ()
        assert normalize_set_cookies([]) == ()
        assert normalize_set_cookies(["", "a=1", ""]) == ("a=1",)

    def test_values_with_commas_are_not_split(self):
        """Test that Expires dates containing commas survive intact."""
        cookie = "a=1; Expires=Wed, 21 Oct 2026 07:28:00 GMT; Path=/"

        assert normalize_set_cookies(SingleCookie(cookie)) == (cookie,)

    def test_non_string_values_rejected(self):
        """Test that non-string values are a type error."""
        with pytest.raises(TypeError):
            normalize_set_cookies(["a=1", 2])


class TestRelayRequest:
    """Test cases for RelayRequest model."""

    def test_relay_request_keeps_raw_values(self):
        """Test that values are stored as received."""
        request = RelayRequest(provider_id="unknown", redirect_url="not a url", cookie_header="a=1")

        assert request.provider_id == "unknown"
        assert request.redirect_url == "not a url"
        assert request.cookie_header == "a=1"

    def test_relay_request_is_frozen(self):
        """Test immutability."""
        request = RelayRequest(provider_id="google")

        with pytest.raises(PydanticValidationError):
            request.provider_id = "github"


class TestSignInResult:
    """Test cases for SignInResult model."""

    def test_from_upstream_normalizes_cookies(self):
        result = SignInResult.from_upstream("https://consent", MultipleCookies(("a=1", "b=2")))

        assert result.consent_url == "https://consent"
        assert result.set_cookies == ("a=1", "b=2")

    def test_from_upstream_empty_url_is_none(self):
        result = SignInResult.from_upstream("", None)

        assert result.consent_url is None
        assert result.set_cookies == ()


class TestRelayOutcome:
    """Test cases for RelayOutcome rendering."""

    def test_redirect_outcome_has_one_header_per_cookie(self):
        """Test that each cookie becomes its own Set-Cookie header."""
        outcome = RelayOutcome.redirect("https://consent.example/auth", ["a=1; Path=/", "b=2; Path=/"])
        response = outcome.to_response()

        assert outcome.is_redirect
        assert response.status_code == 302
        assert response.headers["location"] == "https://consent.example/auth"
        assert response.headers.getlist("set-cookie") == ["a=1; Path=/", "b=2; Path=/"]

    def test_redirect_outcome_without_cookies(self):
        response = RelayOutcome.redirect("https://consent.example/auth").to_response()

        assert response.status_code == 302
        assert "set-cookie" not in response.headers

    def test_failure_outcome_renders_error_body(self):
        """Test error outcomes render {"error": message}."""
        outcome = RelayOutcome.failure(403, "Redirect origin not allowed")
        response = outcome.to_response()

        assert not outcome.is_redirect
        assert response.status_code == 403
        assert response.body == b'{"error":"Redirect origin not allowed"}'
        assert "set-cookie" not in response.headers
