"""Connection-state guards for client operations.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

from wacore.common.exceptions import StateError

logger = logging.getLogger(__name__)


def requires_state(
    *states: Any,
    error_message: str = "Not connected or authenticated",
) -> Callable:
    """Decorator that only lets an async client method run in ``states``.

    The decorated method's owner must expose a ``state`` attribute.

    Args:
        states: Connection states in which the call is allowed
        error_message: Message carried by the raised StateError

    Returns:
        Decorated coroutine function raising StateError outside ``states``
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            if self.state not in states:
                logger.debug(
                    "Refusing %s in state %s", func.__name__, self.state.value
                )
                msg = f"{error_message} (state: {self.state.value})"
                raise StateError(msg)
            return await func(self, *args, **kwargs)

        return wrapper

    return decorator
