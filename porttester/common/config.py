"""
Configuration defaults for the outbound port tester.

Values are read from environment variables (optionally populated from an
env file through python-dotenv) and act as defaults for the command line
flags, which always take precedence.

Recognised variables:
- PORTTESTER_PROTOCOL, PORTTESTER_HOST, PORTTESTER_PATH
- PORTTESTER_CONCURRENT, PORTTESTER_TIMEOUT
- PORTTESTER_FROMPORT, PORTTESTER_TOPORT
"""

import logging
import os

from dotenv import load_dotenv
from colorama import Fore, Style

from porttester.common.logger import setup_logger


setup_logger()
logger = logging.getLogger(__name__)

DEFAULT_PROTOCOL = "http"
DEFAULT_HOST = "portquiz.net"
DEFAULT_PATH = ""
DEFAULT_TIMEOUT = 120
DEFAULT_FROMPORT = 1
DEFAULT_TOPORT = 65535

SUPPORTED_PROTOCOLS = ("http", "https")


def debug_config(key):
    """Log whether a configuration variable was found in the environment."""
    value = os.getenv(key)
    status = (
        f"{Fore.GREEN}SET{Style.RESET_ALL}"
        if value
        else f"{Fore.YELLOW}DEFAULT{Style.RESET_ALL}"
    )
    logger.debug(f"[CONFIG] {key}: {status} ({value})")


def _str_from_env(key, default):
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return value.strip()


def _int_from_env(key, default):
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring non-integer value for {key}: {value!r}")
        return default


def load_defaults(envfile: str = None) -> dict:
    """
    Load the env file (if any) and return the default run parameters.

    Args:
        envfile: Path to an env file; missing files are ignored

    Returns:
        dict: Default values keyed by command line destination name
    """
    if envfile:
        load_dotenv(envfile)

    for key in (
        "PORTTESTER_PROTOCOL",
        "PORTTESTER_HOST",
        "PORTTESTER_PATH",
        "PORTTESTER_CONCURRENT",
        "PORTTESTER_TIMEOUT",
        "PORTTESTER_FROMPORT",
        "PORTTESTER_TOPORT",
    ):
        debug_config(key)

    return {
        "protocol": _str_from_env("PORTTESTER_PROTOCOL", DEFAULT_PROTOCOL),
        "host": _str_from_env("PORTTESTER_HOST", DEFAULT_HOST),
        "path": _str_from_env("PORTTESTER_PATH", DEFAULT_PATH),
        "concurrent": _int_from_env("PORTTESTER_CONCURRENT", None),
        "timeout": _int_from_env("PORTTESTER_TIMEOUT", DEFAULT_TIMEOUT),
        "fromport": _int_from_env("PORTTESTER_FROMPORT", DEFAULT_FROMPORT),
        "toport": _int_from_env("PORTTESTER_TOPORT", DEFAULT_TOPORT),
    }
