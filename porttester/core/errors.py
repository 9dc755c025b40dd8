"""Exception types raised by the port tester."""


class PortTesterError(Exception):
    """Base class for errors that abort a run."""


class ConfigurationError(PortTesterError):
    """Run parameters were rejected before any probe was dispatched."""


class AggregationError(PortTesterError):
    """The shared result state could not be updated safely."""
