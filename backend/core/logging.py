import logging

from pythonjsonlogger import jsonlogger

PLAIN_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    handler = logging.StreamHandler()
    if fmt == "plain":
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    else:
        handler.setFormatter(jsonlogger.JsonFormatter(PLAIN_FORMAT))
    root = logging.getLogger()
    root.setLevel(level.upper())
    root.handlers = [handler]
