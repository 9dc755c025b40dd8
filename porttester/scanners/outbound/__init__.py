"""
Outbound port testing for the port tester.

Probes a range of ports on a cooperative echo server to find out which
outbound ports the local NAT/firewall lets through.
"""

# Re-export all the necessary components
from porttester.scanners.outbound.aggregator import (
    ProbeOutcome,
    ResultAggregator,
    RunState,
)
from porttester.scanners.outbound.finalizer import FinalResult, finalize
from porttester.scanners.outbound.outbound_utils import (
    ProgressBar,
    process_final_result,
)
from porttester.scanners.outbound.probes import PortRange, ProbeTarget, build_probe_set
from porttester.scanners.outbound.tester import OutboundPortTester, run as run_outbound

__all__ = [
    "FinalResult",
    "OutboundPortTester",
    "PortRange",
    "ProbeOutcome",
    "ProbeTarget",
    "ProgressBar",
    "ResultAggregator",
    "RunState",
    "build_probe_set",
    "finalize",
    "process_final_result",
    "run_outbound",
]
