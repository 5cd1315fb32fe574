"""
Colored logging utilities for the first-party OAuth relay gateway.

This module provides colored console logging with component identification,
timestamps, and message formatting so that the path of a browser navigation
through the gateway (relay, Auth Provider, redirect) can be followed at a
glance in the server output.
"""

from datetime import datetime
from typing import Dict, Any, Optional, Sequence
from enum import Enum

from colorama import Fore, Style, init

init(autoreset=True)  # Initialize colorama for Windows compatibility


class ComponentType(str, Enum):
    """Gateway component types."""
    GATEWAY = "GATEWAY"
    RELAY = "RELAY"
    AUTH_PROVIDER = "AUTH-PROVIDER"
    SYSTEM = "SYSTEM"


class MessageType(str, Enum):
    """Message types for logging."""
    RESPONSE = "RESPONSE"
    ERROR = "ERROR"
    RELAY_STEP = "RELAY-STEP"
    SIGN_IN = "SIGN-IN"
    PROXY = "PROXY"


class GatewayLogger:
    """
    Colored logger for relay and proxy message flows.

    Color codes each component, timestamps every message, and sanitizes
    payloads so that session cookies and secrets never reach the console.
    """

    def __init__(self, component_name: str):
        """
        Initialize gateway logger for a specific component.

        Args:
            component_name: Name of the component (GATEWAY, RELAY, etc.)
        """
        self.component_name = component_name.upper()
        self.colors = self._get_component_colors()

    def _get_component_colors(self) -> Dict[str, str]:
        """Get color scheme for different components and message types."""
        return {
            'GATEWAY': Fore.BLUE + Style.BRIGHT,
            'RELAY': Fore.GREEN + Style.BRIGHT,
            'AUTH-PROVIDER': Fore.YELLOW + Style.BRIGHT,
            'SYSTEM': Fore.MAGENTA + Style.BRIGHT,
            'ERROR': Fore.RED + Style.BRIGHT,
            'WARNING': Fore.YELLOW,
            'SUCCESS': Fore.GREEN + Style.BRIGHT,
            'INFO': Fore.CYAN,
            'DEBUG': Fore.WHITE + Style.DIM,
            'HEADER': Fore.WHITE + Style.BRIGHT,
            'SEPARATOR': Fore.WHITE + Style.DIM,
            'RESET': Style.RESET_ALL
        }

    def _format_timestamp(self) -> str:
        """Format current timestamp for log messages."""
        return datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

    def _sanitize_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Sanitize sensitive data for logging.

        Redacts secrets, replaces cookie values with a count and truncates
        long tokens and codes.
        """
        sanitized = {}
        for key, value in data.items():
            key_lower = key.lower()

            if any(sensitive in key_lower for sensitive in ['password', 'secret', 'key']):
                sanitized[key] = '[REDACTED]'
            elif 'cookie' in key_lower:
                if isinstance(value, (list, tuple)):
                    sanitized[key] = f"[{len(value)} cookie(s)]"
                elif value:
                    sanitized[key] = '[REDACTED]'
                else:
                    sanitized[key] = value
            elif any(token in key_lower for token in ['token', 'code']):
                # Show first 10 characters of tokens/codes for debugging
                if isinstance(value, str) and len(value) > 10:
                    sanitized[key] = f"{value[:10]}..."
                else:
                    sanitized[key] = value
            else:
                sanitized[key] = value

        return sanitized

    def log_message(self,
                    source: str,
                    destination: str,
                    message_type: str,
                    data: Dict[str, Any],
                    success: bool = True):
        """
        Log a gateway message with color coding and formatting.

        Args:
            source: Source component name
            destination: Destination component name
            message_type: Type of message (SIGN-IN, RESPONSE, etc.)
            data: Message data dictionary
            success: Whether the operation was successful
        """
        timestamp = self._format_timestamp()
        source_color = self.colors.get(source.upper(), self.colors['INFO'])
        dest_color = self.colors.get(destination.upper(), self.colors['INFO'])

        if not success:
            msg_color = self.colors['ERROR']
        elif message_type == MessageType.RESPONSE.value:
            msg_color = self.colors['SUCCESS']
        else:
            msg_color = self.colors['INFO']

        header = f"{self.colors['HEADER']}[{timestamp}] {source_color}{source}{self.colors['RESET']} → {dest_color}{destination}{self.colors['RESET']}"
        print(header)

        print(f"{msg_color}{message_type}:{self.colors['RESET']}")

        sanitized_data = self._sanitize_data(data)
        for key, value in sanitized_data.items():
            print(f"  {self.colors['INFO']}{key}:{self.colors['RESET']} {value}")

        print(f"{self.colors['SEPARATOR']}{'-' * 60}{self.colors['RESET']}")
        print()

    def log_relay_step(self,
                       step: str,
                       details: Dict[str, Any],
                       success: bool = True):
        """
        Log a single relay state transition.

        Args:
            step: Relay state (received, forwarding, cookie-capture, redirecting)
            details: Step details
            success: Whether the step succeeded
        """
        self.log_message(
            source=self.component_name,
            destination=self.component_name,
            message_type=f"{MessageType.RELAY_STEP.value}: {step.upper()}",
            data=details,
            success=success
        )

    def log_error(self,
                  error_type: str,
                  message: str,
                  details: Optional[Dict[str, Any]] = None):
        """
        Log error messages with context.

        Args:
            error_type: Type of error
            message: Error message
            details: Additional error context (stack, path, timestamp...)
        """
        error_data = {
            "error_type": error_type,
            "message": message
        }

        if details:
            error_data.update(details)

        self.log_message(
            source=self.component_name,
            destination="ERROR-HANDLER",
            message_type=MessageType.ERROR.value,
            data=error_data,
            success=False
        )

    def log_warning(self, message: str, details: Optional[Dict[str, Any]] = None):
        """Log a warning line, e.g. a blocked CORS origin."""
        print(f"{self.colors['WARNING']}[{self._format_timestamp()}] {self.component_name} WARNING: {message}{self.colors['RESET']}")
        if details:
            for key, value in self._sanitize_data(details).items():
                print(f"  {key}: {value}")
        print()

    def log_info(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Log informational messages.

        Args:
            message: Info message
            details: Additional context
        """
        print(f"{self.colors['INFO']}[{self._format_timestamp()}] {self.component_name}: {message}{self.colors['RESET']}")
        if details:
            for key, value in self._sanitize_data(details).items():
                print(f"  {key}: {value}")
        print()

    def log_startup(self,
                    host: str,
                    port: int,
                    allowed_origins: Sequence[str] = (),
                    additional_info: Optional[Dict[str, Any]] = None):
        """
        Log gateway startup information.

        Args:
            host: Interface the gateway binds to
            port: Port number the gateway is running on
            allowed_origins: Origins accepted for CORS and relay redirects
            additional_info: Additional startup information
        """
        print(f"{self.colors['SUCCESS']}🚀 {self.component_name} running on http://{host}:{port}{self.colors['RESET']}")
        if additional_info:
            for key, value in additional_info.items():
                print(f"   {key}: {value}")
        if allowed_origins:
            print("   Allowed origins:")
            for origin in allowed_origins:
                print(f"     ✓ {origin}")
        print(f"{self.colors['SEPARATOR']}{'-' * 60}{self.colors['RESET']}")
        print()
