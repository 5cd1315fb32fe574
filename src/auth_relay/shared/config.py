"""
Gateway configuration loaded once from the environment.

The resulting GatewayConfig is frozen and passed explicitly to the router,
relay and proxy; component code never reads os.environ itself.
"""

import os
from typing import Dict, Mapping, Optional, Tuple
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

from .relay_models import ProviderId, RuntimeMode
from .security import OriginAllowlist, origin_of


MIN_SECRET_LENGTH = 32
DEFAULT_DEV_ORIGINS = ("http://localhost:8887", "http://localhost:8888")
DEFAULT_DEV_BASE_URL = "http://localhost:3002"

MODE_ALIASES = {
    "production": RuntimeMode.PRODUCTION,
    "prod": RuntimeMode.PRODUCTION,
    "development": RuntimeMode.DEVELOPMENT,
    "dev": RuntimeMode.DEVELOPMENT,
    "": RuntimeMode.DEVELOPMENT,
}

# Microsoft sign-in runs against the multi-tenant endpoint
PROVIDER_TENANTS = {ProviderId.MICROSOFT: "common"}


class ConfigurationError(Exception):
    """Raised at startup when the environment does not describe a valid gateway."""


class ProviderCredentials(BaseModel):
    """OAuth client credentials for one provider."""
    client_id: str = ""
    client_secret: SecretStr = SecretStr("")
    tenant_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret.get_secret_value())


class GatewayConfig(BaseModel):
    """
    Immutable gateway configuration.

    Built once at process start by load_config() (or directly in tests) and
    shared read-only by every request.
    """
    mode: RuntimeMode = RuntimeMode.DEVELOPMENT
    allowed_origins: Tuple[str, ...] = Field(default=DEFAULT_DEV_ORIGINS)
    base_url: str = DEFAULT_DEV_BASE_URL
    host: str = "0.0.0.0"
    port: int = Field(default=3002, ge=1, le=65535)
    auth_provider_url: str = "http://localhost:3000"
    sign_in_path: str = "/api/auth/sign-in/social"
    upstream_timeout: float = Field(default=10.0, gt=0)
    auth_secret: SecretStr
    providers: Dict[ProviderId, ProviderCredentials] = Field(default_factory=dict)
    service_name: str = "auth-relay-gateway"

    model_config = ConfigDict(frozen=True)

    @field_validator("allowed_origins")
    @classmethod
    def validate_allowed_origins(cls, value):
        """Normalize origins and reject anything that is not a bare origin."""
        normalized = []
        for entry in value:
            origin = origin_of(entry)
            if origin is None:
                raise ValueError(f"Invalid allowed origin: {entry!r}")
            parts = urlsplit(entry.strip())
            if parts.path.strip("/") or parts.query or parts.fragment:
                raise ValueError(f"Allowed origin must not contain a path or query: {entry!r}")
            normalized.append(origin)
        return tuple(dict.fromkeys(normalized))

    @field_validator("auth_secret")
    @classmethod
    def validate_auth_secret(cls, value: SecretStr):
        if len(value.get_secret_value()) < MIN_SECRET_LENGTH:
            raise ValueError(f"auth secret must be at least {MIN_SECRET_LENGTH} characters long")
        return value

    @field_validator("base_url", "auth_provider_url")
    @classmethod
    def validate_absolute_url(cls, value: str):
        if origin_of(value) is None:
            raise ValueError(f"Expected an absolute http(s) URL, got {value!r}")
        return value.rstrip("/")

    @field_validator("sign_in_path")
    @classmethod
    def validate_sign_in_path(cls, value: str):
        if not value.startswith("/"):
            raise ValueError("sign-in path must start with '/'")
        return value

    def build_allowlist(self) -> OriginAllowlist:
        return OriginAllowlist(self.allowed_origins)

    def provider_enabled(self, provider: ProviderId) -> bool:
        credentials = self.providers.get(provider)
        return credentials is not None and credentials.enabled

    @property
    def enabled_providers(self) -> Tuple[ProviderId, ...]:
        return tuple(provider for provider in ProviderId if self.provider_enabled(provider))


def parse_mode(raw: Optional[str]) -> RuntimeMode:
    """
    Parse the runtime mode from an environment value.

    Args:
        raw: Value of ENVIRONMENT (or NODE_ENV)

    Returns:
        RuntimeMode: Production or development

    Raises:
        ConfigurationError: For values outside the known aliases
    """
    key = (raw or "").strip().lower()
    if key not in MODE_ALIASES:
        raise ConfigurationError(
            f"Unknown environment {raw!r}; expected 'production' or 'development'"
        )
    return MODE_ALIASES[key]


def parse_origins(raw: str) -> Tuple[str, ...]:
    """Split a comma-separated origin list, dropping blanks."""
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def load_providers(env: Mapping[str, str]) -> Dict[ProviderId, ProviderCredentials]:
    """Read <PROVIDER>_CLIENT_ID / <PROVIDER>_CLIENT_SECRET pairs."""
    providers = {}
    for provider in ProviderId:
        prefix = provider.value.upper()
        providers[provider] = ProviderCredentials(
            client_id=env.get(f"{prefix}_CLIENT_ID", "").strip(),
            client_secret=SecretStr(env.get(f"{prefix}_CLIENT_SECRET", "").strip()),
            tenant_id=PROVIDER_TENANTS.get(provider),
        )
    return providers


def load_config(env: Optional[Mapping[str, str]] = None) -> GatewayConfig:
    """
    Build the gateway configuration from environment variables.

    Args:
        env: Mapping to read from (defaults to os.environ)

    Returns:
        GatewayConfig: Validated, immutable configuration

    Raises:
        ConfigurationError: If a required variable is missing or invalid
    """
    if env is None:
        env = os.environ

    mode = parse_mode(env.get("ENVIRONMENT", env.get("NODE_ENV")))

    secret = env.get("BETTER_AUTH_SECRET")
    if not secret:
        raise ConfigurationError(
            f"BETTER_AUTH_SECRET environment variable is required and must be at least {MIN_SECRET_LENGTH} characters"
        )

    raw_origins = env.get("ALLOWED_ORIGINS", "").strip()
    if raw_origins:
        allowed_origins = parse_origins(raw_origins)
    elif mode.is_production:
        raise ConfigurationError("ALLOWED_ORIGINS environment variable is required in production")
    else:
        allowed_origins = DEFAULT_DEV_ORIGINS

    base_url = env.get("BASE_URL", "").strip()
    if not base_url:
        if mode.is_production:
            raise ConfigurationError("BASE_URL environment variable is required in production")
        base_url = DEFAULT_DEV_BASE_URL

    settings = {
        "mode": mode,
        "allowed_origins": allowed_origins,
        "base_url": base_url,
        "host": env.get("HOST", "0.0.0.0"),
        "port": env.get("PORT", "3002"),
        "auth_provider_url": env.get("AUTH_PROVIDER_URL", "http://localhost:3000"),
        "sign_in_path": env.get("AUTH_PROVIDER_SIGN_IN_PATH", "/api/auth/sign-in/social"),
        "upstream_timeout": env.get("UPSTREAM_TIMEOUT_SECONDS", "10"),
        "auth_secret": secret,
        "providers": load_providers(env),
        "service_name": env.get("SERVICE_NAME", "auth-relay-gateway"),
    }

    try:
        return GatewayConfig(**settings)
    except ValueError as e:
        # pydantic.ValidationError subclasses ValueError
        raise ConfigurationError(f"Invalid gateway configuration: {e}") from e
