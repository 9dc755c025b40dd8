"""
Probe set construction for the outbound port tester.

A run probes every port of a contiguous range with one request each. This
module defines the range and target types and turns a range plus an
endpoint template into the ordered list of targets to dispatch.
"""

import ipaddress
from dataclasses import dataclass
from typing import Iterator, List


@dataclass(frozen=True)
class PortRange:
    """
    Inclusive range of ports to probe.

    Attributes:
        start (int): First port of the range
        end (int): Last port of the range, never lower than ``start``
    """

    start: int
    end: int

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(
                f"Port range start {self.start} is greater than end {self.end}"
            )

    def __len__(self) -> int:
        return self.end - self.start + 1

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.start, self.end + 1))

    def __contains__(self, port) -> bool:
        return self.start <= port <= self.end


@dataclass(frozen=True)
class ProbeTarget:
    """
    A single port to probe together with the URL requested for it.

    Attributes:
        port (int): Port on the test server
        endpoint (str): Fully formed URL, e.g. ``http://portquiz.net:8080/``
    """

    port: int
    endpoint: str


def format_host(host: str) -> str:
    """Wrap IPv6 literals in brackets so they can carry a port in a URL."""
    try:
        if ipaddress.ip_address(host).version == 6:
            return f"[{host}]"
    except ValueError:
        pass
    return host


def build_endpoint(protocol: str, host: str, port: int, path: str = "") -> str:
    """Format the URL requested when probing ``port``."""
    return f"{protocol}://{format_host(host)}:{port}/{path.lstrip('/')}"


def build_probe_set(
    port_range: PortRange, protocol: str, host: str, path: str = ""
) -> List[ProbeTarget]:
    """
    Build one probe target per port of ``port_range``, in ascending order.

    Args:
        port_range: Ports to probe
        protocol: URL scheme, ``http`` or ``https``
        host: Test server hostname or IP address
        path: Page path requested on every port, may be empty

    Returns:
        List[ProbeTarget]: ``len(port_range)`` targets
    """
    return [
        ProbeTarget(port=port, endpoint=build_endpoint(protocol, host, port, path))
        for port in port_range
    ]
