"""
Outbound Port Tester

This is the main entry point for the outbound port tester. It handles
command line arguments, loads defaults from an env file, validates the run
parameters and drives the probe engine.

The tool tests which ports a local NAT/firewall lets through to the outside
world. A self-hosted all-port echo server (or portquiz.net) answering on
every port makes the test fast and reliable.

Usage:
    python -m porttester.main -N 500 -m 1 -M 1024 [--host HOST] [-B] [-d]

Exit status:
    0: The run completed, whether or not any port was reached
    1: The run was aborted because its results could not be recorded
    2: Invalid arguments

License:
    GNU General Public License v3.0
"""

#  *
#  * This file is part of Outbound Port Tester.
#  *
#  * Outbound Port Tester is free software: you can redistribute it and/or modify
#  * it under the terms of the GNU General Public License as published by
#  * the Free Software Foundation, either version 3 of the License, or
#  * (at your option) any later version.
#  *
#  * Outbound Port Tester is distributed in the hope that it will be useful,
#  * but WITHOUT ANY WARRANTY; without even the implied warranty of
#  * MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#  * GNU General Public License for more details.
#  *
#  * You should have received a copy of the GNU General Public License
#  * along with Outbound Port Tester. If not, see <https://www.gnu.org/licenses/>.
#  *

import argparse
import asyncio
import logging
import sys

from colorama import Fore, Style, init

from porttester import __version__
from porttester.common.config import load_defaults
from porttester.common.logger import setup_logger
from porttester.core.errors import AggregationError, ConfigurationError
from porttester.core.utils import resolve_host, validate_arguments
from porttester.scanners.outbound import (
    OutboundPortTester,
    PortRange,
    ProgressBar,
    process_final_result,
    run_outbound,
)


setup_logger()
logger = logging.getLogger("main")

init(autoreset=True)


def setup_env_from_args(args=None):
    # ? First, create a minimal argument parser just to grab the --envfile parameter.
    env_parser = argparse.ArgumentParser(add_help=False)
    env_parser.add_argument(
        "-env",
        "--envfile",
        help="envfile location, default .env",
        default=".env",
        required=False,
    )

    # Only parse sys.argv if args is not provided (for testing)
    if args is None:
        env_args, _ = env_parser.parse_known_args()
    else:
        env_args, _ = env_parser.parse_known_args(args)

    return env_args


def build_parser(defaults: dict) -> argparse.ArgumentParser:
    """
    Build the command line parser, using ``defaults`` from the environment.
    """
    parser = argparse.ArgumentParser(
        prog="porttester",
        description=(
            "Local NAT outbound port restriction testing tool. "
            "Test the ports from inside to outside of the network. "
            "A simple self-hosted all-port echo server may allow fast and reliable testing."
        ),
    )
    parser.add_argument(
        "--protocol",
        default=defaults["protocol"],
        help="Protocol to use, http or https (default: %(default)s)",
    )
    parser.add_argument(
        "--host",
        default=defaults["host"],
        help="Test server host (default: %(default)s)",
    )
    parser.add_argument(
        "--path",
        default=defaults["path"],
        help="Page path requested on every port (default: empty)",
    )
    parser.add_argument(
        "-N",
        "--concurrent",
        type=int,
        default=defaults["concurrent"],
        required=defaults["concurrent"] is None,
        help="Number of concurrent requests",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=int,
        default=defaults["timeout"],
        help="Per-request timeout in seconds (default: %(default)s)",
    )
    parser.add_argument(
        "-m",
        "--fromport",
        type=int,
        default=defaults["fromport"],
        help="First port of the range (default: %(default)s)",
    )
    parser.add_argument(
        "-M",
        "--toport",
        type=int,
        default=defaults["toport"],
        help="Last port of the range (default: %(default)s)",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Show the open ports collected so far after every probe",
    )
    parser.add_argument(
        "-B",
        "--list-blocked",
        action="store_true",
        help="List the ports that could not be reached instead of the open ones",
    )
    parser.add_argument(
        "-env",
        "--envfile",
        help="envfile location, default .env",
        default=".env",
        required=False,
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s v{__version__}"
    )
    return parser


async def execute(args, progress=None):
    """
    Resolve the test server, then probe the requested range.

    Returns:
        FinalResult: The result of the run
    """
    if not await resolve_host(args.host):
        logger.warning(
            f"{Fore.YELLOW}[!] Could not resolve {args.host}, every probe will likely fail{Style.RESET_ALL}"
        )

    tester = OutboundPortTester(
        concurrent_limit=args.concurrent,
        timeout=args.timeout,
    )
    return await run_outbound(
        tester,
        PortRange(args.fromport, args.toport),
        protocol=args.protocol,
        host=args.host,
        path=args.path,
        list_blocked=args.list_blocked,
        debug=args.debug,
        progress=progress,
    )


def main(args=None):
    """
    Main function that parses arguments and runs the outbound port test.

    Args:
        args: Command line arguments (for testing)

    Returns:
        int: Process exit status
    """
    env_args = setup_env_from_args(args)
    defaults = load_defaults(env_args.envfile)

    parser = build_parser(defaults)

    # ? Parse arguments
    if args is None:
        args = parser.parse_args()
    else:
        args = parser.parse_args(args)

    setup_logger(debug=args.debug)

    try:
        validate_arguments(
            protocol=args.protocol,
            host=args.host,
            concurrent=args.concurrent,
            timeout=args.timeout,
            fromport=args.fromport,
            toport=args.toport,
        )
    except ConfigurationError as e:
        parser.error(str(e))

    # Banner
    mode = "BLOCKED PORTS" if args.list_blocked else "OPEN PORTS"
    logger.info(f"{Fore.BLUE}{'=' * 60}")
    logger.info(f"{Fore.CYAN}OUTBOUND PORT TESTER v{__version__}")
    logger.info(
        f"{Fore.CYAN}Listing: {Fore.YELLOW}{mode}{Fore.CYAN} | Server: {Fore.YELLOW}{args.protocol}://{args.host}{Fore.CYAN} | Ports: {Fore.YELLOW}{args.fromport}-{args.toport}"
    )
    logger.info(f"{Fore.BLUE}{'=' * 60}{Style.RESET_ALL}")

    total = args.toport - args.fromport + 1
    try:
        with ProgressBar(total=total) as progress:
            result = asyncio.run(execute(args, progress=progress))
    except AggregationError as e:
        logger.error(
            f"{Fore.RED}[-] Run aborted, results could not be recorded: {e}{Style.RESET_ALL}"
        )
        return 1

    process_final_result(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
