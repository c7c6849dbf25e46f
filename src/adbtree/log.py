"""
Logging setup shared by the command line and the toga window
"""

import logging
from typing import Callable

LOG_FORMAT = "[%(levelname)s] %(message)s"


def setup_logging(level="INFO") -> None:
    """Configure the root logger with the [LEVEL] message format"""
    if isinstance(level, str):
        numeric = logging.getLevelName(level.upper())
        if not isinstance(numeric, int):
            raise ValueError(f"Unknown log level: {level}")
        level = numeric
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)


class CallbackHandler(logging.Handler):
    """Forwards formatted records to a callable, e.g. a log view appender"""

    def __init__(self, callback: Callable[[str], None], level=logging.NOTSET):
        super().__init__(level)
        self.callback = callback
        self.setFormatter(logging.Formatter(LOG_FORMAT))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.callback(self.format(record))
        except Exception:
            self.handleError(record)
