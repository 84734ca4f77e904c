"""
Asynchronous message passing between isolated execution contexts.

Each ``ExecutionContext`` has its own handlers and receives messages in
arrival order on the event loop. Payloads are deep-copied in transit, so
contexts never share mutable state.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from ..errors import ContextUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class Message:
    """
    A message between contexts.

    Attributes:
        type: Message type tag (e.g. ``process-content``)
        payload: JSON-like body
        request_id: Correlation identifier, for requests and their replies
        sender: Name of the sending context
        target: Name of the receiving context
    """

    type: str
    payload: dict[str, Any] = field(default_factory=dict)
    request_id: Optional[str] = None
    sender: Optional[str] = None
    target: Optional[str] = None

    def reply(self, message_type: str, payload: Optional[dict[str, Any]] = None) -> Message:
        """Reply addressed back to the sender, carrying the same request_id."""
        return Message(
            type=message_type,
            payload=payload or {},
            request_id=self.request_id,
            target=self.sender,
        )


Handler = Callable[[Message], Union[Awaitable[None], None]]

# Returns True when it consumed the message
Listener = Callable[[Message], bool]


class ExecutionContext:
    """
    One isolated context (coordinator, worker, popup...).

    Handlers are keyed by message type. One-shot listeners see every message
    before handlers do; they are used by correlated requests to pick up
    replies.
    """

    def __init__(self, name: str, bus: MessageBus) -> None:
        self.name = name
        self.bus = bus
        self._handlers: dict[str, Handler] = {}
        self._listeners: list[Listener] = []
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def on(self, message_type: str, handler: Handler) -> None:
        self._handlers[message_type] = handler

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def post(self, message_type: str, payload: Optional[dict[str, Any]] = None, *, target: str) -> None:
        """Fire-and-forget message to ``target``."""
        self.send(Message(type=message_type, payload=payload or {}, target=target))

    def send(self, message: Message) -> None:
        message.sender = self.name
        self.bus.send(message)

    def deliver(self, message: Message) -> None:
        """Queue ``message`` for dispatch on the running loop."""
        if self._closed:
            raise ContextUnavailableError(f"Context '{self.name}' is closed")
        asyncio.get_running_loop().call_soon(self._dispatch, message)

    def _dispatch(self, message: Message) -> None:
        if self._closed:
            return

        for listener in list(self._listeners):
            if listener(message):
                return

        handler = self._handlers.get(message.type)
        if handler is None:
            logger.debug(
                f"[{self.name}] dropping '{message.type}' from {message.sender} "
                f"(request {message.request_id}): no receiver"
            )
            return

        try:
            result = handler(message)
        except Exception as e:
            logger.error(f"[{self.name}] handler for '{message.type}' failed: {e}")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"[{self.name}] handler failed: {task.exception()}")

    async def drain(self) -> None:
        """Wait for running handlers to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        self._closed = True
        self._listeners.clear()
        for task in list(self._tasks):
            task.cancel()
        self.bus.unregister(self.name)


class MessageBus:
    """
    Routes messages between registered contexts.

    Example:
        bus = MessageBus()
        worker = bus.create_context("worker")
        worker.on("ping", lambda m: worker.send(m.reply("pong")))
        coordinator = bus.create_context("coordinator")
        coordinator.post("ping", target="worker")
    """

    def __init__(self) -> None:
        self._contexts: dict[str, ExecutionContext] = {}

    def create_context(self, name: str) -> ExecutionContext:
        if name in self._contexts:
            raise ValueError(f"Context '{name}' already exists")
        context = ExecutionContext(name, self)
        self._contexts[name] = context
        return context

    def unregister(self, name: str) -> None:
        self._contexts.pop(name, None)

    def get(self, name: str) -> Optional[ExecutionContext]:
        return self._contexts.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._contexts

    def send(self, message: Message) -> None:
        """
        Deliver ``message`` to its target.

        Raises:
            ContextUnavailableError: If no open context has that name
        """
        receiver = self._contexts.get(message.target or "")
        if receiver is None or receiver.closed:
            raise ContextUnavailableError(
                f"Could not establish connection. Receiving end '{message.target}' does not exist."
            )
        receiver.deliver(copy.deepcopy(message))
