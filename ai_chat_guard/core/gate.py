"""
Single-flight admission control.

At most one request is processed at a time. A request arriving while another
is in flight is rejected immediately, never queued.
"""

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Awaitable, Callable, Iterator, TypeVar

from .errors import ConcurrencyError
from .responses import error_response_from
from .types import ChatResponse

LOGGER = logging.getLogger(__name__)

R = TypeVar("R")


class GateState(Enum):
    IDLE = "idle"
    PROCESSING = "processing"


class RequestGate:
    """Two-state gate guarding the message pipeline.

    The admission check and the state change happen without a suspension
    point between them, so on a single event loop no two requests can both
    be admitted.
    """

    def __init__(self):
        self.state = GateState.IDLE

    @property
    def is_processing(self) -> bool:
        return self.state is GateState.PROCESSING

    @contextmanager
    def admit(self) -> Iterator[None]:
        """Hold the gate for the duration of the block.

        Raises:
            ConcurrencyError: If a request is already in flight
        """
        if self.state is GateState.PROCESSING:
            raise ConcurrencyError()
        self.state = GateState.PROCESSING
        try:
            yield
        finally:
            self.state = GateState.IDLE

    async def submit(
        self,
        handler: Callable[[R], Awaitable[ChatResponse]],
        request: R
    ) -> ChatResponse:
        """Run ``handler(request)`` if the gate is idle.

        Returns:
            The handler's response, or a "busy" error response when rejected
        """
        try:
            with self.admit():
                return await handler(request)
        except ConcurrencyError as e:
            LOGGER.warning("Rejected overlapping request: %s", e.message)
            return error_response_from(e)
