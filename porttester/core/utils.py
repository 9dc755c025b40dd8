"""
General utility functions for the outbound port tester.

This module holds the checks applied at the command line boundary before
any probe is dispatched, plus small helpers shared by the CLI and the
presentation code.
"""

import ipaddress
import logging
from typing import List

import dns.asyncresolver
from colorama import Fore, Style

from porttester.common.config import SUPPORTED_PROTOCOLS
from porttester.common.logger import setup_logger
from porttester.core.errors import ConfigurationError


setup_logger()
logger = logging.getLogger(__name__)

MIN_PORT = 1
MAX_PORT = 65535


def validate_arguments(
    protocol: str,
    host: str,
    concurrent: int,
    timeout: int,
    fromport: int,
    toport: int,
) -> None:
    """
    Reject run parameters the probe engine cannot work with.

    Raises:
        ConfigurationError: With a message suitable for the user
    """
    if protocol not in SUPPORTED_PROTOCOLS:
        raise ConfigurationError(
            f"Unsupported protocol {protocol!r}, expected one of {', '.join(SUPPORTED_PROTOCOLS)}"
        )
    if not host:
        raise ConfigurationError("A test server host is required")
    if concurrent is None or concurrent < 1:
        raise ConfigurationError("--concurrent must be at least 1")
    if timeout < 0:
        raise ConfigurationError("--timeout must not be negative")
    for name, port in (("--fromport", fromport), ("--toport", toport)):
        if not MIN_PORT <= port <= MAX_PORT:
            raise ConfigurationError(
                f"{name} must be between {MIN_PORT} and {MAX_PORT}, got {port}"
            )
    if fromport > toport:
        raise ConfigurationError(
            f"--fromport ({fromport}) must not be greater than --toport ({toport})"
        )


def is_valid_ip(ip: str) -> bool:
    """Check if string is a valid IPv4 or IPv6 address."""
    try:
        ipaddress.ip_address(ip)
        return True
    except ValueError:
        return False


async def resolve_host(host: str) -> List[str]:
    """
    Resolve the test server to its IP addresses.

    IP literals are returned unchanged. Resolution failures are logged and
    yield an empty list; the run itself decides what to do about it.

    Args:
        host: Hostname or IP address of the test server

    Returns:
        List[str]: Resolved IPv4 and IPv6 addresses
    """
    if is_valid_ip(host):
        return [host]

    resolver = dns.asyncresolver.Resolver()
    resolver.timeout = 5
    resolver.lifetime = 5

    ips = []
    for record_type in ("A", "AAAA"):
        try:
            answers = await resolver.resolve(host, record_type)
            ips.extend(str(rdata) for rdata in answers)
        except Exception as e:
            logger.debug(f"No {record_type} records found for {host}: {str(e)}")

    if ips:
        logger.info(
            f"Resolved {Fore.YELLOW}{host}{Style.RESET_ALL} to {', '.join(ips)}"
        )
    return ips


def format_elapsed(seconds: float) -> str:
    """Render a duration the way a human reads it, e.g. ``1m 5s`` or ``850ms``."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    minutes, secs = divmod(int(round(seconds)), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
