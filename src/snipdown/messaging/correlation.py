"""Request/reply over the message bus, paired by correlation identifier."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from typing import Optional

from ..errors import RemoteError, RequestTimeoutError
from .bus import ExecutionContext, Message

logger = logging.getLogger(__name__)

# Fixed per-request timeout, in seconds
REQUEST_TIMEOUT = 30.0


def generate_request_id() -> str:
    return uuid.uuid4().hex


async def correlated_request(
    context: ExecutionContext,
    message: Message,
    reply_type: str,
    *,
    error_type: Optional[str] = None,
    timeout: float = REQUEST_TIMEOUT,
) -> Message:
    """
    Send ``message`` from ``context`` and wait for its correlated reply.

    A one-shot listener matching the request id and the reply type (or
    ``error_type``) is registered before sending and removed on the first
    match or on timeout, whichever comes first. A reply arriving after the
    timeout finds no listener and is dropped by the context.

    Args:
        context: Context sending the request and receiving the reply
        message: Request; a request id is generated when missing
        reply_type: Message type of a successful reply
        error_type: Message type of a failure reply
        timeout: Seconds to wait

    Returns:
        The reply message

    Raises:
        RequestTimeoutError: No reply in time
        RemoteError: The peer answered with ``error_type``
        ContextUnavailableError: The target context does not exist
    """
    loop = asyncio.get_running_loop()
    request = replace(message, request_id=message.request_id or generate_request_id())
    accepted = {reply_type} if error_type is None else {reply_type, error_type}
    future: asyncio.Future[Message] = loop.create_future()

    def listener(reply: Message) -> bool:
        if reply.request_id != request.request_id or reply.type not in accepted:
            return False
        context.remove_listener(listener)
        if not future.done():
            future.set_result(reply)
        return True

    context.add_listener(listener)
    try:
        context.send(request)
        reply = await asyncio.wait_for(future, timeout)
    except asyncio.TimeoutError:
        logger.warning(f"[{context.name}] '{request.type}' to {request.target} timed out after {timeout:g}s")
        raise RequestTimeoutError(request.type, request.request_id, timeout) from None
    finally:
        context.remove_listener(listener)

    if error_type is not None and reply.type == error_type:
        raise RemoteError(reply.payload.get("error") or f"'{request.type}' failed in {request.target}")
    return reply
