"""
Domain layer: connection state machine.
"""

from __future__ import annotations

import logging
from typing import Callable

from wacore.client.domain.entities import ConnectionState
from wacore.common.exceptions import StateError

logger = logging.getLogger(__name__)

S = ConnectionState

TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    S.DISCONNECTED: frozenset({S.CONNECTING, S.TIMEOUT}),
    S.CONNECTING: frozenset({S.CONNECTED, S.DISCONNECTED, S.TIMEOUT}),
    # CONNECTED -> AUTHENTICATED is the session resume path
    S.CONNECTED: frozenset(
        {S.AUTHENTICATING, S.AUTHENTICATED, S.DISCONNECTED, S.TIMEOUT}
    ),
    S.AUTHENTICATING: frozenset({S.AUTHENTICATED, S.DISCONNECTED, S.TIMEOUT}),
    S.AUTHENTICATED: frozenset({S.READY, S.DISCONNECTED, S.TIMEOUT}),
    S.READY: frozenset({S.DISCONNECTED, S.TIMEOUT}),
    S.TIMEOUT: frozenset({S.DISCONNECTED}),
}

SESSION_STATES = (S.AUTHENTICATED, S.READY)


class ConnectionStateMachine:
    """Owns the canonical connection state and validates every transition."""

    def __init__(
        self,
        on_transition: Callable[[ConnectionState, ConnectionState], None] | None = None,
    ):
        self._state = S.DISCONNECTED
        self._on_transition = on_transition

    @property
    def state(self) -> ConnectionState:
        return self._state

    def can_transition(self, target: ConnectionState) -> bool:
        return target in TRANSITIONS[self._state]

    def transition(self, target: ConnectionState) -> ConnectionState:
        """
        Move to ``target`` and notify the listener.

        Returns the previous state.

        Raises:
            StateError: if the table does not allow the transition
        """
        previous = self._state
        if not self.can_transition(target):
            msg = f"illegal transition {previous.value} -> {target.value}"
            raise StateError(msg)
        self._state = target
        logger.info("State %s -> %s", previous.value, target.value)
        if self._on_transition is not None:
            self._on_transition(previous, target)
        return previous

    def require(self, *states: ConnectionState) -> None:
        if self._state not in states:
            allowed = ", ".join(s.value for s in states)
            msg = f"operation requires one of [{allowed}], state is {self._state.value}"
            raise StateError(msg)

    @property
    def has_session(self) -> bool:
        return self._state in SESSION_STATES
