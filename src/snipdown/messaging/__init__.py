"""Cross-context messaging for snipdown."""

from .bus import ExecutionContext, Message, MessageBus
from .capabilities import Capabilities
from .correlation import REQUEST_TIMEOUT, correlated_request, generate_request_id

__all__ = [
    "Capabilities",
    "ExecutionContext",
    "Message",
    "MessageBus",
    "REQUEST_TIMEOUT",
    "correlated_request",
    "generate_request_id",
]
