"""
Exception types for the relay.

RelayError subclasses are terminal and rendered to the caller as plain-text
responses by the handler registered in notify_relay.main. UpstreamStatusError
is internal: it marks a non-2xx upstream answer as retryable inside
retry_with_backoff and never reaches the caller on its own.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for failures that map directly to an HTTP response."""

    status_code = 500

    def __init__(self, message: str, headers: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.headers = headers


class InputError(RelayError):
    status_code = 400


class MethodNotAllowedError(RelayError):
    """Anything but POST. The relay serves a single method on every path."""

    status_code = 405

    def __init__(self, message: str = "Only POST"):
        super().__init__(message, headers={"Allow": "POST"})


class UnauthorizedError(RelayError):
    status_code = 401


class ConfigurationError(RelayError):
    status_code = 500


class DeliveryError(RelayError):
    """The sink still failed after the retry budget was spent."""

    status_code = 500

    def __init__(self, sink_label: str, sink_status: Optional[int], sink_body: str):
        status_part = f"{sink_status} - " if sink_status is not None else ""
        super().__init__(f"{sink_label} error: {status_part}{sink_body}")
        self.sink_status = sink_status
        self.sink_body = sink_body


class UpstreamStatusError(Exception):
    """An upstream API answered with a non-2xx status."""

    def __init__(self, service: str, status_code: int, body: str = ""):
        super().__init__(f"{service} returned {status_code}: {body}" if body else f"{service} returned {status_code}")
        self.service = service
        self.status_code = status_code
        self.body = body
