import logging

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for API, bot and worker entry points."""
    logging.basicConfig(level=logging.getLevelName(level.upper()), format=_FORMAT)
    logging.getLogger("httpx").setLevel(logging.WARNING)
