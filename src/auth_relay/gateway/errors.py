"""
Gateway error taxonomy and the centralized error handler.

Validation and authorization failures carry their own status code and a
message that is safe to show to the browser. Everything else ends up in
ErrorHandler, which logs full detail server-side and returns a sanitized
JSON body.
"""

import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from starlette.requests import Request
from starlette.responses import JSONResponse

from ..shared.logging_utils import ComponentType, GatewayLogger
from ..shared.relay_models import RuntimeMode


GENERIC_ERROR_MESSAGE = "Internal server error"


def format_stack(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


class GatewayError(Exception):
    """Base class for errors that map to an HTTP status."""

    status_code = 500
    default_message = GENERIC_ERROR_MESSAGE

    def __init__(self, message: str = None, public_message: str = None):
        self.message = message or self.default_message
        self.public_message = public_message or self.message
        super().__init__(self.message)


class ValidationError(GatewayError):
    """Malformed or unsupported client input (unknown provider, bad redirect)."""
    status_code = 400
    default_message = "Invalid request"


class ForbiddenError(GatewayError):
    """Well-formed input pointing outside the trusted origins."""
    status_code = 403
    default_message = "Forbidden"


class UpstreamError(GatewayError):
    """The Auth Provider was unreachable, failed, or returned unusable data."""
    status_code = 500
    default_message = "Failed to reach authentication provider"


class ClientDisconnectedError(GatewayError):
    """The browser closed the connection while the relay was waiting upstream."""
    status_code = 499
    default_message = "Client closed request"


class ErrorHandler:
    """
    Single error sink for the request pipeline.

    Every error is logged in full (message, stack, timestamp, path) whatever
    the runtime mode. The client sees the stack only in development; in
    production 5xx messages are replaced by a generic one.
    """

    def __init__(self, mode: RuntimeMode, logger: GatewayLogger = None):
        self.mode = mode
        self.logger = logger or GatewayLogger(ComponentType.GATEWAY.value)

    def status_for(self, exc: Exception) -> int:
        if isinstance(exc, GatewayError):
            return exc.status_code
        return 500

    def log(self, request: Request, exc: Exception) -> None:
        """Log the error with full detail, regardless of mode."""
        if isinstance(exc, ClientDisconnectedError):
            self.logger.log_info("Client disconnected before relay completed", {
                "method": request.method,
                "path": request.url.path,
            })
            return

        self.logger.log_error(type(exc).__name__, str(exc) or repr(exc), {
            "status_code": self.status_for(exc),
            "method": request.method,
            "path": request.url.path,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "stack": format_stack(exc),
        })

    def client_payload(self, exc: Exception) -> Dict[str, Any]:
        """Build the JSON body shown to the browser."""
        status_code = self.status_for(exc)

        if self.mode.is_production:
            if isinstance(exc, GatewayError) and status_code < 500:
                return {"error": exc.public_message}
            return {"error": GENERIC_ERROR_MESSAGE}

        return {
            "error": str(exc) or GENERIC_ERROR_MESSAGE,
            "stack": format_stack(exc),
        }

    def handle(self, request: Request, exc: Exception) -> Optional[JSONResponse]:
        """
        Log an error and render its sanitized response.

        Returns None when the client is gone and there is nobody to answer.
        """
        self.log(request, exc)
        if isinstance(exc, ClientDisconnectedError):
            return None
        return JSONResponse(
            status_code=self.status_for(exc),
            content=self.client_payload(exc)
        )
