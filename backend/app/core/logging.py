import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format=LOG_FORMAT)
    # httpx logs every request at INFO, which drowns out the pipeline logs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
