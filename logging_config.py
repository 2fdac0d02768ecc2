import logging
import sys
from typing import Union

# Libraries that log every statement or request at INFO.
CHATTY_LOGGERS = ("sqlalchemy.engine", "uvicorn.access")


def setup_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    logger = logging.getLogger("givehaven")
    if logger.handlers:
        return logger
    logger.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s"))
    logger.addHandler(handler)
    # DEBUG keeps per-query and per-request lines
    if logger.level > logging.DEBUG:
        for name in CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    return logger
