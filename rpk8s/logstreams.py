import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def setup(level: str) -> bool:
    """Send the `app` log stream to stderr with the desired `level`.

    Returns `True` if `level` is not a valid log level.

    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        return True

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logger = logging.getLogger("app")
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(numeric)
    return False
