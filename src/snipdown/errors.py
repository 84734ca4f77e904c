"""Exception hierarchy for snipdown."""

from __future__ import annotations


class SnipdownError(Exception):
    """Base class for all snipdown errors."""


class InputError(SnipdownError, ValueError):
    """Missing or unusable input (no DOM, unknown tab, empty capture)."""


class ConversionError(SnipdownError):
    """A whole document could not be converted."""


class CrossContextError(SnipdownError):
    """A request to another execution context did not succeed."""


class RequestTimeoutError(CrossContextError, TimeoutError):
    """No correlated reply arrived before the request timed out."""

    def __init__(self, message_type: str, request_id: str, timeout: float) -> None:
        super().__init__(f"No reply to '{message_type}' (request {request_id}) within {timeout:g}s")
        self.message_type = message_type
        self.request_id = request_id
        self.timeout = timeout


class ContextUnavailableError(CrossContextError):
    """The target context is closed or has no receiving end."""


class RemoteError(CrossContextError):
    """The peer context replied with an error instead of a result."""


class DeliveryError(SnipdownError):
    """Every strategy in the delivery fallback chain failed."""

    def __init__(self, filename: str, failures: list[tuple[str, str]]) -> None:
        details = "; ".join(f"{name}: {reason}" for name, reason in failures) or "no strategy available"
        super().__init__(f"Could not deliver {filename} ({details})")
        self.filename = filename
        self.failures = failures


class ClipboardError(SnipdownError):
    """A clipboard backend refused the write."""


class StateTransitionError(SnipdownError):
    """A clip request was moved along a transition its lifecycle forbids."""
