# src/imgtrans/transport.py
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict

from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from .exceptions import DeliveryError, TransportError

logger = logging.getLogger("imgtrans")

Message = Dict[str, Any]
Endpoint = Callable[[Message], Message]

# Message types
PROCESS_IMAGE = "PROCESS_IMAGE"
FETCH_IMAGE = "FETCH_IMAGE"


class Transport:
    """
    Delivers messages between execution contexts with a bounded retry:
    ``retries`` attempts, ``delay`` seconds apart. Only ``DeliveryError``
    is retried; the endpoint's own answer, even an error answer, is final.
    """

    def __init__(self, retries: int = 5, delay: float = 1.0, sleep: Callable[[float], None] = time.sleep):
        self.retries = max(1, int(retries))
        self.delay = float(delay)
        self._sleep = sleep

    def send(self, endpoint: Endpoint, message: Message) -> Message:
        kind = message.get("type", "message")

        def _before_sleep(state):
            logger.debug(
                "Delivery of %s failed on attempt %d, %s. Retrying in %.1fs",
                kind, state.attempt_number, state.outcome.exception(), self.delay,
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.retries),
            wait=wait_fixed(self.delay),
            retry=retry_if_exception_type(DeliveryError),
            sleep=self._sleep,
            before_sleep=_before_sleep,
        )
        try:
            return retrying(endpoint, message)
        except RetryError as e:
            last = e.last_attempt.exception()
            raise TransportError(
                f"{kind} not delivered after {self.retries} attempts, {last}"
            ) from last
