import logging

from tqdm import tqdm


class CustomFormatter(logging.Formatter):
    grey = "\x1b[38;20m"
    yellow = "\x1b[33;20m"
    red = "\x1b[31;20m"
    bold_red = "\x1b[31;1m"
    reset = "\x1b[0m"
    format = "\x1b[1m%(asctime)s [%(levelname)s]\x1b[0m - %(message)s"
    debug_format = "\x1b[1m%(asctime)s [%(levelname)s]\x1b[0m - %(name)s - %(message)s"

    FORMATS = {
        logging.DEBUG: grey + debug_format + reset,
        logging.INFO: grey + format + reset,
        logging.WARNING: yellow + format + reset,
        logging.ERROR: red + format + reset,
        logging.CRITICAL: bold_red + format + reset,
    }

    def format(self, record):
        log_fmt = self.FORMATS.get(record.levelno)
        formatter = logging.Formatter(log_fmt, datefmt="%H:%M:%S")
        return formatter.format(record)


class TqdmHandler(logging.StreamHandler):
    """Writes log lines above an active tqdm progress bar instead of through it."""

    def emit(self, record):
        try:
            tqdm.write(self.format(record), file=self.stream)
            self.flush()
        except Exception:
            self.handleError(record)


# Libraries that are far too chatty at DEBUG level for a per-port run
QUIET_LOGGERS = ("aiohttp", "asyncio", "charset_normalizer")


def setup_logger(debug: bool = False):
    """
    Install the colored handler on the root logger.

    Calling it again only adjusts the level, so every module can call it
    on import without stacking handlers.
    """
    level = logging.DEBUG if debug else logging.INFO
    root = logging.getLogger()
    if not any(isinstance(h, TqdmHandler) for h in root.handlers):
        ColorfulHandler = TqdmHandler()
        ColorfulHandler.setFormatter(CustomFormatter())

        logging.addLevelName(logging.ERROR, "ERRR")
        logging.addLevelName(logging.WARNING, "WARN")

        logging.basicConfig(level=level, handlers=[ColorfulHandler])

        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    if debug:
        root.setLevel(level)
