"""Turn the accumulated open ports of a run into its final port list."""

from dataclasses import dataclass, field
from typing import Iterable, List

from porttester.scanners.outbound.probes import PortRange


@dataclass(frozen=True)
class FinalResult:
    """
    Terminal result of a run.

    Attributes:
        ports (List[int]): Open ports, or blocked ports when ``list_blocked``
        elapsed (float): Wall-clock duration of the run in seconds
        port_range (PortRange): The range that was probed
        list_blocked (bool): Whether ``ports`` holds the blocked ports
    """

    ports: List[int]
    elapsed: float
    port_range: PortRange
    list_blocked: bool = False
    open_ports: List[int] = field(default_factory=list, repr=False)

    @property
    def state_label(self) -> str:
        return "closed" if self.list_blocked else "opened"


def clean_ports(ports: Iterable[int]) -> List[int]:
    """Sort, remove duplicates and drop the invalid port 0."""
    return [port for port in sorted(set(ports)) if port != 0]


def invert_ports(open_ports: Iterable[int], port_range: PortRange) -> List[int]:
    """Return every port of ``port_range`` that is not in ``open_ports``."""
    opened = set(open_ports)
    return [port for port in port_range if port not in opened]


def finalize(
    open_ports: Iterable[int],
    port_range: PortRange,
    list_blocked: bool = False,
    elapsed: float = 0.0,
) -> FinalResult:
    """
    Derive the final port list from the raw open ports of a run.

    Args:
        open_ports: Ports recorded as open, in any order, duplicates allowed
        port_range: The range that was probed
        list_blocked: Report the complement of the open ports instead
        elapsed: Wall-clock duration of the run in seconds

    Returns:
        FinalResult: Ports in ascending order; an empty list is a valid result
    """
    opened = clean_ports(open_ports)
    ports = invert_ports(opened, port_range) if list_blocked else opened
    return FinalResult(
        ports=ports,
        elapsed=elapsed,
        port_range=port_range,
        list_blocked=list_blocked,
        open_ports=opened,
    )
