"""
Logging setup for flagbind hosts.

Every flagbind module logs through a child of the "flagbind" logger and emits
debug records only (dispatch decisions, argument file expansion, ignored
environment overrides). Nothing is printed unless the host opts in, either with
its own logging configuration or with configure() below, which installs a rich
handler on stderr.
"""
import logging

from rich.console import Console
from rich.logging import RichHandler

logger = logging.getLogger("flagbind")
logger.addHandler(logging.NullHandler())


def configure(level=logging.DEBUG, /, *, colorful=True):
    """
    attach a RichHandler to the package logger (idempotent) and set its level.

    returns the package logger so callers can tweak it further.
    """
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True, no_color=not colorful),
        show_path=False,
        markup=False,
        rich_tracebacks=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


__all__ = (
    "configure",
)
