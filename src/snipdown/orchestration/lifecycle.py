"""State machine of a single clip request."""

from __future__ import annotations

import logging
from typing import Optional

from ..errors import StateTransitionError
from ..messaging.correlation import generate_request_id
from ..models.events import ALLOWED_TRANSITIONS, TERMINAL_STATES, ClipEvent, ClipState, EventCallback, EventType

logger = logging.getLogger(__name__)


class ClipRequest:
    """
    Tracks one conversion/download request through its states.

    ``INITIATED -> AWAITING_DOM -> DOM_CAPTURED -> CONVERTING -> RESULT_READY``,
    with ``FAILED`` reachable from any non-terminal state. Once terminal,
    the request never moves again.

    Example:
        request = ClipRequest(tab_id=3, emit=print)
        request.advance(ClipState.AWAITING_DOM)
        ...
        request.fail(error)
    """

    def __init__(
        self,
        tab_id: Optional[int] = None,
        url: Optional[str] = None,
        request_id: Optional[str] = None,
        emit: Optional[EventCallback] = None,
    ) -> None:
        self.request_id = request_id or generate_request_id()
        self.tab_id = tab_id
        self.url = url
        self.state = ClipState.INITIATED
        self.error: Optional[str] = None
        self._emit = emit
        self._notify(ClipState.INITIATED)

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    def _notify(self, state: ClipState, error: Optional[str] = None) -> None:
        if self._emit:
            self._emit(
                ClipEvent(
                    type=EventType.STATE_CHANGED,
                    request_id=self.request_id,
                    tab_id=self.tab_id,
                    state=state,
                    url=self.url,
                    error=error,
                )
            )

    def advance(self, state: ClipState) -> None:
        """
        Raises:
            StateTransitionError: If ``state`` is not reachable from the current state
        """
        if state not in ALLOWED_TRANSITIONS[self.state]:
            raise StateTransitionError(f"Request {self.request_id}: {self.state.value} -> {state.value} not allowed")
        logger.debug(f"Request {self.request_id}: {self.state.value} -> {state.value}")
        self.state = state
        self._notify(state)

    def fail(self, error: BaseException | str) -> None:
        """Move to FAILED; a request that already finished is left as is."""
        if self.done:
            logger.debug(f"Request {self.request_id} already {self.state.value}, ignoring failure: {error}")
            return
        self.error = str(error)
        self.state = ClipState.FAILED
        self._notify(ClipState.FAILED, self.error)
