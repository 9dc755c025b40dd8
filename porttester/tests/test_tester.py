import asyncio
import unittest
from unittest.mock import MagicMock, patch

import aiohttp

from porttester.core.errors import AggregationError
from porttester.scanners.outbound.aggregator import ProbeOutcome
from porttester.scanners.outbound.probes import PortRange, ProbeTarget, build_probe_set
from porttester.scanners.outbound.tester import OutboundPortTester, run


def fake_request(open_ports, delay=0.0):
    """Return a stand-in for OutboundPortTester._request."""

    async def _request(session, target):
        await asyncio.sleep(delay)
        if target.port not in open_ports:
            raise aiohttp.ClientConnectionError(f"refused on {target.port}")

    return _request


class TestOutboundPortTester(unittest.TestCase):
    """Test the tester configuration."""

    def test_initialization(self):
        tester = OutboundPortTester(concurrent_limit=50, timeout=5)
        self.assertEqual(tester.concurrent_limit, 50)
        self.assertEqual(tester.timeout, 5)
        self.assertFalse(tester.follow_redirects)
        self.assertEqual(tester.in_flight, 0)

        tester = OutboundPortTester(concurrent_limit=1)
        self.assertEqual(tester.timeout, 120)

    def test_rejects_zero_concurrency(self):
        with self.assertRaises(ValueError):
            OutboundPortTester(concurrent_limit=0)


class TestDispatch(unittest.IsolatedAsyncioTestCase):
    """Test bounded concurrent dispatch."""

    async def _collect(self, tester, targets):
        return [outcome async for outcome in tester.dispatch(targets, MagicMock())]

    async def test_one_outcome_per_target(self):
        tester = OutboundPortTester(concurrent_limit=3, timeout=1)
        targets = build_probe_set(PortRange(1, 5), "http", "example.com")

        with patch.object(tester, "_request", fake_request({2, 4})):
            outcomes = await self._collect(tester, targets)

        self.assertEqual(len(outcomes), 5)
        self.assertEqual(
            sorted(outcomes, key=lambda o: o.port),
            [
                ProbeOutcome(1, False),
                ProbeOutcome(2, True),
                ProbeOutcome(3, False),
                ProbeOutcome(4, True),
                ProbeOutcome(5, False),
            ],
        )

    async def test_concurrency_ceiling(self):
        """No more than concurrent_limit probes are ever in flight."""
        for limit in (1, 3, 8):
            tester = OutboundPortTester(concurrent_limit=limit, timeout=1)
            targets = build_probe_set(PortRange(1, 30), "http", "example.com")
            observed = []

            async def _request(session, target):
                observed.append(tester.in_flight)
                await asyncio.sleep(0.001 * (target.port % 4))

            with patch.object(tester, "_request", _request):
                outcomes = await self._collect(tester, targets)

            self.assertEqual(len(outcomes), 30)
            self.assertLessEqual(max(observed), limit)
            self.assertEqual(tester.peak_in_flight, limit)
            self.assertEqual(tester.in_flight, 0)

    async def test_completion_order(self):
        """A slow probe does not hold back the others."""
        tester = OutboundPortTester(concurrent_limit=2, timeout=5)
        targets = [ProbeTarget(port, f"http://h:{port}/") for port in (1, 2, 3, 4)]

        async def _request(session, target):
            await asyncio.sleep(0.2 if target.port == 1 else 0.01)

        with patch.object(tester, "_request", _request):
            outcomes = await self._collect(tester, targets)

        self.assertEqual([o.port for o in outcomes], [2, 3, 4, 1])
        self.assertTrue(all(o.succeeded for o in outcomes))

    async def test_timeout_fails_only_that_probe(self):
        tester = OutboundPortTester(concurrent_limit=4, timeout=0.05)
        targets = build_probe_set(PortRange(1, 4), "http", "example.com")

        async def _request(session, target):
            await asyncio.sleep(1 if target.port == 3 else 0)

        with patch.object(tester, "_request", _request):
            outcomes = await self._collect(tester, targets)

        results = {o.port: o.succeeded for o in outcomes}
        self.assertEqual(results, {1: True, 2: True, 3: False, 4: True})

    async def test_any_error_is_a_failed_probe(self):
        tester = OutboundPortTester(concurrent_limit=2, timeout=1)
        targets = build_probe_set(PortRange(1, 3), "http", "example.com")
        errors = {
            1: OSError("Too many open files"),
            2: aiohttp.InvalidURL("http://bad"),
            3: aiohttp.ServerDisconnectedError(),
        }

        async def _request(session, target):
            raise errors[target.port]

        with patch.object(tester, "_request", _request):
            outcomes = await self._collect(tester, targets)

        self.assertEqual(len(outcomes), 3)
        self.assertFalse(any(o.succeeded for o in outcomes))

    async def test_request_uses_shared_session(self):
        tester = OutboundPortTester(concurrent_limit=1, timeout=1)
        session = MagicMock()
        response = MagicMock()
        response.status = 200
        session.get.return_value.__aenter__.return_value = response

        await tester._request(session, ProbeTarget(80, "http://example.com:80/"))

        session.get.assert_called_once_with(
            "http://example.com:80/", allow_redirects=False
        )

    async def test_follow_redirects_is_passed_through(self):
        tester = OutboundPortTester(concurrent_limit=1, timeout=1, follow_redirects=True)
        session = MagicMock()
        session.get.return_value.__aenter__.return_value = MagicMock(status=302)

        await tester._request(session, ProbeTarget(80, "http://example.com:80/"))

        session.get.assert_called_once_with(
            "http://example.com:80/", allow_redirects=True
        )

    async def test_build_client(self):
        tester = OutboundPortTester(concurrent_limit=7, timeout=3)
        session = tester.build_client()
        try:
            self.assertIsInstance(session, aiohttp.ClientSession)
            self.assertEqual(session.connector.limit, 7)
        finally:
            await session.close()

    async def test_peak_is_reset_between_dispatches(self):
        tester = OutboundPortTester(concurrent_limit=4, timeout=1)

        with patch.object(tester, "_request", fake_request(set(), delay=0.001)):
            await self._collect(tester, build_probe_set(PortRange(1, 30), "http", "h"))
            self.assertEqual(tester.peak_in_flight, 4)

            await self._collect(tester, build_probe_set(PortRange(1, 1), "http", "h"))
            self.assertEqual(tester.peak_in_flight, 1)

    async def test_task_count_bounded_by_worker_pool(self):
        """Only concurrent_limit tasks exist while a large range is dispatched."""
        tester = OutboundPortTester(concurrent_limit=3, timeout=1)
        targets = build_probe_set(PortRange(1, 200), "http", "example.com")
        baseline = len(asyncio.all_tasks())
        task_counts = []

        async def _request(session, target):
            task_counts.append(len(asyncio.all_tasks()))
            await asyncio.sleep(0)

        with patch.object(tester, "_request", _request):
            outcomes = await self._collect(tester, targets)

        self.assertEqual(len(outcomes), 200)
        self.assertLessEqual(max(task_counts), baseline + 3)

    async def test_fewer_targets_than_workers(self):
        tester = OutboundPortTester(concurrent_limit=50, timeout=1)
        targets = build_probe_set(PortRange(7, 8), "http", "example.com")

        with patch.object(tester, "_request", fake_request({8})):
            outcomes = await self._collect(tester, targets)

        self.assertEqual(
            sorted(outcomes, key=lambda o: o.port),
            [ProbeOutcome(7, False), ProbeOutcome(8, True)],
        )


class TestRun(unittest.IsolatedAsyncioTestCase):
    """Test a full run with the network stubbed out."""

    def _tester(self, open_ports, limit=3):
        tester = OutboundPortTester(concurrent_limit=limit, timeout=1)
        tester.build_client = MagicMock(return_value=MagicMock())
        tester._request = fake_request(open_ports)
        return tester

    async def test_all_ports_blocked(self):
        result = await run(self._tester(set()), PortRange(1, 10))
        self.assertEqual(result.ports, [])

        result = await run(self._tester(set()), PortRange(1, 10), list_blocked=True)
        self.assertEqual(result.ports, list(range(1, 11)))

    async def test_some_ports_open(self):
        result = await run(self._tester({2, 4}), PortRange(1, 5), host="example.com")
        self.assertEqual(result.ports, [2, 4])
        self.assertGreaterEqual(result.elapsed, 0)

        result = await run(self._tester({2, 4}), PortRange(1, 5), list_blocked=True)
        self.assertEqual(result.ports, [1, 3, 5])

    async def test_progress_reaches_total_once(self):
        calls = []
        await run(
            self._tester({5}),
            PortRange(1, 20),
            progress=lambda done, total: calls.append((done, total)),
        )

        self.assertEqual(calls[0], (0, 20))
        self.assertEqual([done for done, _ in calls], list(range(0, 21)))
        self.assertTrue(all(total == 20 for _, total in calls))

    @patch("porttester.scanners.outbound.tester.setup_logger")
    async def test_debug_enables_debug_logging(self, mock_setup_logger):
        await run(self._tester({1}), PortRange(1, 2), debug=True)
        mock_setup_logger.assert_called_once_with(debug=True)

    @patch("porttester.scanners.outbound.tester.setup_logger")
    async def test_no_logging_change_without_debug(self, mock_setup_logger):
        await run(self._tester({1}), PortRange(1, 2))
        mock_setup_logger.assert_not_called()

    async def test_aggregation_failure_aborts_run(self):
        tester = self._tester({1})

        def progress(done, total):
            if done == 2:
                raise AggregationError("lock unavailable")

        with self.assertRaises(AggregationError):
            await run(tester, PortRange(1, 10), progress=progress)

        self.assertEqual(tester.in_flight, 0)


async def _answer_http(reader, writer):
    await reader.readuntil(b"\r\n\r\n")
    writer.write(
        b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\nConnection: close\r\n\r\nok"
    )
    await writer.drain()
    writer.close()


class TestRunAgainstLocalServer(unittest.IsolatedAsyncioTestCase):
    """Run the real HTTP client against a server on the loopback interface."""

    async def _serve(self, host):
        try:
            server = await asyncio.start_server(_answer_http, host, 0)
        except OSError as e:
            self.skipTest(f"cannot listen on {host}: {e}")
        self.addAsyncCleanup(server.wait_closed)
        self.addCleanup(server.close)
        return server.sockets[0].getsockname()[1]

    async def test_ipv4_host(self):
        port = await self._serve("127.0.0.1")
        result = await run(
            OutboundPortTester(2, timeout=2), PortRange(port, port), host="127.0.0.1"
        )
        self.assertEqual(result.ports, [port])

    async def test_ipv6_host(self):
        """An IPv6 literal host reaches the server instead of failing every URL."""
        port = await self._serve("::1")
        result = await run(
            OutboundPortTester(2, timeout=2), PortRange(port, port), host="::1"
        )
        self.assertEqual(result.ports, [port])

        blocked = await run(
            OutboundPortTester(2, timeout=2),
            PortRange(port, port),
            host="::1",
            list_blocked=True,
        )
        self.assertEqual(blocked.ports, [])


if __name__ == "__main__":
    unittest.main()
