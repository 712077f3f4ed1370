import logging

logger = logging.getLogger("kdtree")
logger.addHandler(logging.NullHandler())

FORMAT = "%(levelname)s %(name)s: %(message)s"


def set_debug(enabled: bool, stream=None) -> None:
    """
    Turn the tree's logging on for a command line run, at DEBUG when enabled
    and INFO otherwise. Library users who never call this only get what their
    own logging config lets through.
    """
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(FORMAT))
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if enabled else logging.INFO)
