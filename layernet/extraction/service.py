"""Contract of subnetwork extraction services and the submit/poll handshake."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from ..core.errors import AppCallError
from .config import PollingConfig
from .result import ExtractedNetwork

logger = logging.getLogger(__name__)


class SubnetworkExtractionService(ABC):
    """Something that extracts a subnetwork linking query sources to query targets.

    Query maps go from flattened node name to an optional target hint (the
    string value of a string query column, ``None`` for boolean columns).
    """

    name = "extraction service"

    def __str__(self) -> str:
        return self.name

    def check_preconditions(self, graph) -> Optional[str]:
        """Return a description of what ``graph`` lacks, ``None`` when it is fine."""
        return None

    def normalize(self, graph, token=None) -> None:
        """Rewrite ``graph`` in place so :meth:`check_preconditions` passes."""

    @abstractmethod
    def extract(
        self,
        graph,
        query_sources: dict[str, Optional[str]],
        query_targets: dict[str, Optional[str]],
        token=None,
    ) -> ExtractedNetwork:
        """Extract a subnetwork of ``graph``.

        Raises
        --
        AppCallError
            The service cannot be reached, fails, times out or returns nothing usable.
        ExtractionCancelled
            ``token`` was cancelled while waiting.

        """


def poll_interval(waited: float, config: PollingConfig) -> float:
    """Delay before the next poll after ``waited`` seconds of cumulated sleep."""
    return config.initial_interval if waited < config.fast_phase else config.slow_interval


def poll_until(
    fetch: Callable[[], Any],
    token=None,
    config: Optional[PollingConfig] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
):
    """Call ``fetch`` until it returns something other than ``None``.

    Cancellation is checked before every call.

    Raises
    --
    AppCallError
        Titled "Timeout" once ``config.timeout`` seconds have elapsed.

    """
    config = config or PollingConfig()
    start = clock()
    waited = 0.0
    attempt = 0
    while True:
        if token is not None:
            token.raise_if_cancelled()
        attempt += 1
        result = fetch()
        if result is not None:
            logger.debug("result received after %d polls (%.1fs)", attempt, waited)
            return result
        if max(clock() - start, waited) >= config.timeout:
            raise AppCallError(
                f"No result after {config.timeout:g} seconds; the extraction was aborted.",
                "Timeout",
            ).add_context(attempts=attempt)
        interval = poll_interval(waited, config)
        logger.debug("waiting for the service (%.0fs)...", waited)
        sleep(interval)
        waited += interval


class SubmitPollService(SubnetworkExtractionService):
    """Service answering asynchronously: a job is submitted, then polled.

    Subclasses implement :meth:`submit` and :meth:`fetch`; ``sleep`` and
    ``clock`` are injectable for tests.
    """

    def __init__(
        self,
        polling: Optional[PollingConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.polling = polling or PollingConfig()
        self._sleep = sleep
        self._clock = clock

    @abstractmethod
    def submit(self, graph, query_sources, query_targets) -> Any:
        """Send the job and return its handle."""

    @abstractmethod
    def fetch(self, job) -> Optional[ExtractedNetwork]:
        """Result of ``job`` or ``None`` while it is still running."""

    def extract(self, graph, query_sources, query_targets, token=None) -> ExtractedNetwork:
        job = self.submit(graph, query_sources, query_targets)
        logger.info("submitted job %r to %s", job, self)
        return poll_until(
            lambda: self.fetch(job),
            token=token,
            config=self.polling,
            sleep=self._sleep,
            clock=self._clock,
        )
