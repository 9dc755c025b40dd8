"""
Result aggregation for the outbound port tester.

Probe outcomes arrive in completion order from many concurrent probes.
``RunState`` accumulates them under a single lock so that the completed
counter and the list of open ports always move together, and
``ResultAggregator`` drives it from the dispatcher's outcome stream.
"""

import logging
import threading
from dataclasses import dataclass
from typing import AsyncIterator, Callable, List, Optional, Tuple

from colorama import Fore, Style

from porttester.common.logger import setup_logger
from porttester.core.errors import AggregationError


setup_logger()
logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
SnapshotCallback = Callable[[List[int]], None]

# Seconds to wait for the state lock before giving up on the run
LOCK_TIMEOUT = 10


@dataclass(frozen=True)
class ProbeOutcome:
    """
    Result of one probe.

    Attributes:
        port (int): Probed port
        succeeded (bool): True if the request completed without error
    """

    port: int
    succeeded: bool


class RunState:
    """
    Shared accumulator for a single run.

    Attributes:
        total (int): Number of probes the run dispatches
        completed_count (int): Outcomes recorded so far
        open_ports (List[int]): Ports whose probe succeeded, in arrival order
    """

    def __init__(self, total: int, lock_timeout: float = LOCK_TIMEOUT):
        self.total = total
        self.completed_count = 0
        self.open_ports: List[int] = []
        self.lock_timeout = lock_timeout
        self._lock = threading.Lock()

    def _acquire(self):
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise AggregationError(
                f"Could not acquire the result lock within {self.lock_timeout}s"
            )

    def record(self, outcome: ProbeOutcome) -> int:
        """
        Record one outcome.

        Args:
            outcome: The probe outcome to account for

        Returns:
            int: The completed count as it stood right after this outcome

        Raises:
            AggregationError: If the lock cannot be acquired or more outcomes
                arrive than probes were dispatched
        """
        self._acquire()
        try:
            if self.completed_count >= self.total:
                raise AggregationError(
                    f"Received outcome for port {outcome.port} after all "
                    f"{self.total} probes were accounted for"
                )
            self.completed_count += 1
            if outcome.succeeded:
                self.open_ports.append(outcome.port)
            return self.completed_count
        finally:
            self._lock.release()

    def snapshot(self) -> Tuple[int, List[int]]:
        """Return a consistent copy of ``(completed_count, open_ports)``."""
        self._acquire()
        try:
            return self.completed_count, list(self.open_ports)
        finally:
            self._lock.release()

    @property
    def is_complete(self) -> bool:
        return self.snapshot()[0] == self.total


class ResultAggregator:
    """
    Feeds dispatcher outcomes into a ``RunState`` and reports progress.

    Attributes:
        state (RunState): The accumulator being filled
        progress (ProgressCallback): Called with ``(done, total)`` after
            every recorded outcome
        debug (bool): Emit a snapshot of the open ports after every outcome
    """

    def __init__(
        self,
        state: RunState,
        progress: Optional[ProgressCallback] = None,
        debug: bool = False,
        on_snapshot: Optional[SnapshotCallback] = None,
    ):
        self.state = state
        self.progress = progress
        self.debug = debug
        self.on_snapshot = on_snapshot or self._log_snapshot

    @staticmethod
    def _log_snapshot(open_ports: List[int]) -> None:
        logger.debug(f"{Fore.YELLOW}[DEBUG] {open_ports}{Style.RESET_ALL}")

    def add(self, outcome: ProbeOutcome) -> int:
        done = self.state.record(outcome)
        if self.progress is not None:
            self.progress(done, self.state.total)
        if self.debug:
            _, open_ports = self.state.snapshot()
            self.on_snapshot(open_ports)
        return done

    async def consume(self, outcomes: AsyncIterator[ProbeOutcome]) -> RunState:
        """
        Record every outcome of ``outcomes`` until the stream is exhausted.

        Returns:
            RunState: The filled accumulator
        """
        async for outcome in outcomes:
            self.add(outcome)
        return self.state
