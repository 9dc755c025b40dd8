"""
Utility functions specific to outbound port testing: progress display and
result presentation.
"""

import logging
import threading

from colorama import Fore, Style
from tqdm import tqdm

from porttester.common.logger import setup_logger
from porttester.core.utils import format_elapsed
from porttester.scanners.outbound.finalizer import FinalResult


setup_logger()
logger = logging.getLogger(__name__)


# ===== Progress =====


class ProgressBar:
    """
    Progress reporter backed by a tqdm bar.

    Calls may arrive out of order from concurrent probes; the bar only
    ever moves forward to the highest ``done`` seen.
    """

    def __init__(self, total: int, disable: bool = False):
        self.total = total
        self._shown = 0
        self._lock = threading.Lock()
        self.bar = tqdm(
            total=total,
            unit="port",
            desc="Probing ports",
            bar_format="{l_bar}%s{bar}%s{r_bar}" % (Fore.GREEN, Style.RESET_ALL),
            dynamic_ncols=True,
            disable=disable,
        )

    def __call__(self, done: int, total: int) -> None:
        with self._lock:
            if done > self._shown:
                self.bar.update(done - self._shown)
                self._shown = done

    @property
    def shown(self) -> int:
        return self._shown

    def close(self) -> None:
        self.bar.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


# ===== Result Handling =====


def format_port_lines(result: FinalResult) -> list:
    """
    Render the final ports as display lines.

    Returns:
        list: A header followed by one line per port, or a single line
        saying that no port in the range was opened/closed
    """
    if result.ports:
        lines = [f"List of ports {result.state_label}"]
        lines.extend(f"  - {port:>5}" for port in result.ports)
        return lines

    return [
        f"  - None of port between {result.port_range.start} to "
        f"{result.port_range.end} {result.state_label}..."
    ]


def process_final_result(result: FinalResult) -> list:
    """
    Log the final result of a run.

    Args:
        result: Result returned by ``tester.run``

    Returns:
        list: The lines that were logged, uncolored
    """
    logger.info(f"Time elapsed: {format_elapsed(result.elapsed)}")

    lines = format_port_lines(result)
    if result.ports:
        logger.info(f"{Fore.GREEN}{lines[0]}{Style.RESET_ALL}")
        for line in lines[1:]:
            logger.info(f"{Fore.BLUE}{line}{Style.RESET_ALL}")
    else:
        logger.warning(f"{Fore.RED}{lines[0]}{Style.RESET_ALL}")

    return lines
