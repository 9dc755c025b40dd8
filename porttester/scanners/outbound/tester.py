"""
Outbound port tester.

This module probes a range of ports on a cooperative echo server (such as
portquiz.net) with one HTTP request per port and reports which ports could
be reached from inside the local network. Probes run on a single asyncio
event loop with a fixed ceiling on how many are in flight at once.
"""

import asyncio
import logging
import time
from typing import AsyncIterator, Iterable, Optional

import aiohttp

from porttester.common.logger import setup_logger
from porttester.scanners.outbound.aggregator import (
    ProbeOutcome,
    ProgressCallback,
    ResultAggregator,
    RunState,
)
from porttester.scanners.outbound.finalizer import FinalResult, finalize
from porttester.scanners.outbound.probes import PortRange, ProbeTarget, build_probe_set


setup_logger()
logger = logging.getLogger(__name__)


class OutboundPortTester:
    """
    Runs port probes with bounded concurrency.

    A probe that fails for any reason, including running past the timeout,
    is reported as closed. Probes are never retried.

    Attributes:
        concurrent_limit (int): Maximum number of probes in flight
        timeout (float): Per-probe deadline in seconds, counted from the
            moment a worker starts the probe
        follow_redirects (bool): Whether a redirect response is followed
        in_flight (int): Probes currently running
        peak_in_flight (int): Highest value ``in_flight`` reached during the
            latest dispatch
    """

    def __init__(
        self,
        concurrent_limit: int,
        timeout: float = 120,
        follow_redirects: bool = False,
    ):
        if concurrent_limit < 1:
            raise ValueError("concurrent_limit must be at least 1")
        self.concurrent_limit = concurrent_limit
        self.timeout = timeout
        self.follow_redirects = follow_redirects
        self.in_flight = 0
        self.peak_in_flight = 0

    def build_client(self) -> aiohttp.ClientSession:
        """
        Create the HTTP session shared by every probe of a run.

        The session carries no total timeout of its own; the per-probe
        deadline in ``_probe`` governs.
        """
        connector = aiohttp.TCPConnector(limit=self.concurrent_limit, force_close=True)
        return aiohttp.ClientSession(
            connector=connector, timeout=aiohttp.ClientTimeout(total=None)
        )

    async def _request(self, session: aiohttp.ClientSession, target: ProbeTarget):
        """
        Send the GET request for ``target``.

        Redirects are not followed unless ``follow_redirects`` is set: a 3xx
        answer already proves the port was reached, while the redirect target
        may live on another port or host. A port whose redirect target is
        unreachable therefore still counts as open.
        """
        async with session.get(
            target.endpoint, allow_redirects=self.follow_redirects
        ) as response:
            logger.debug(f"Port {target.port}: HTTP {response.status}")

    async def _probe(
        self, session: aiohttp.ClientSession, target: ProbeTarget
    ) -> ProbeOutcome:
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.wait_for(self._request(session, target), timeout=self.timeout)
            return ProbeOutcome(port=target.port, succeeded=True)
        except asyncio.TimeoutError:
            logger.debug(f"Port {target.port}: timed out after {self.timeout}s")
            return ProbeOutcome(port=target.port, succeeded=False)
        except Exception as e:
            logger.debug(f"Port {target.port}: {e.__class__.__name__}: {e}")
            return ProbeOutcome(port=target.port, succeeded=False)
        finally:
            self.in_flight -= 1

    async def _worker(
        self,
        session: aiohttp.ClientSession,
        pending: asyncio.Queue,
        outcomes: asyncio.Queue,
    ):
        while True:
            try:
                target = pending.get_nowait()
            except asyncio.QueueEmpty:
                return
            outcome = await self._probe(session, target)
            await outcomes.put(outcome)

    async def dispatch(
        self, targets: Iterable[ProbeTarget], session: aiohttp.ClientSession
    ) -> AsyncIterator[ProbeOutcome]:
        """
        Probe every target and yield outcomes as probes finish.

        A pool of ``concurrent_limit`` workers pulls targets from a queue, so
        a worker takes the next waiting target as soon as its probe is done
        and a slow port only ever holds up its own worker.

        Args:
            targets: Probe targets, dispatched in the given order
            session: Shared HTTP session

        Yields:
            ProbeOutcome: One per target, in completion order
        """
        self.in_flight = 0
        self.peak_in_flight = 0

        pending = asyncio.Queue()
        for target in targets:
            pending.put_nowait(target)
        total = pending.qsize()

        outcomes = asyncio.Queue()
        workers = [
            asyncio.create_task(self._worker(session, pending, outcomes))
            for _ in range(min(self.concurrent_limit, total))
        ]
        try:
            for _ in range(total):
                yield await outcomes.get()
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)


async def run(
    tester: OutboundPortTester,
    port_range: PortRange,
    protocol: str = "http",
    host: str = "portquiz.net",
    path: str = "",
    list_blocked: bool = False,
    debug: bool = False,
    progress: Optional[ProgressCallback] = None,
) -> FinalResult:
    """
    Probe every port of ``port_range`` and return the final port list.

    Args:
        tester: Configured OutboundPortTester
        port_range: Ports to probe
        protocol: URL scheme used for every probe
        host: Test server
        path: Page path requested on every port
        list_blocked: Return the ports that could not be reached instead
        debug: Log the open ports collected so far after every probe; also
            lowers the log level to DEBUG so the snapshots are shown
        progress: Called with ``(done, total)`` after every probe

    Returns:
        FinalResult: Final ports and elapsed wall-clock time

    Raises:
        AggregationError: If results could not be recorded safely
    """
    if debug:
        setup_logger(debug=True)

    targets = build_probe_set(port_range, protocol, host, path)
    state = RunState(total=len(targets))
    aggregator = ResultAggregator(state, progress=progress, debug=debug)

    logger.debug(
        f"Dispatching {len(targets)} probes to {host} "
        f"({tester.concurrent_limit} concurrent, {tester.timeout}s timeout)"
    )

    t0 = time.monotonic()
    if progress is not None:
        progress(0, state.total)

    async with tester.build_client() as session:
        outcomes = tester.dispatch(targets, session)
        try:
            await aggregator.consume(outcomes)
        finally:
            await outcomes.aclose()

    elapsed = time.monotonic() - t0
    completed, open_ports = state.snapshot()
    logger.debug(
        f"{completed}/{state.total} probes completed, "
        f"peak concurrency {tester.peak_in_flight}"
    )
    return finalize(open_ports, port_range, list_blocked=list_blocked, elapsed=elapsed)
