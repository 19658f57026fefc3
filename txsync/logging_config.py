import logging
import os
import sys
from typing import List

from tqdm import tqdm

# Not a real logging level: DEBUG for txsync plus HTTP wire logging.
TRACE_LEVEL_NAME = 'TRACE'
WIRE_LOGGERS = ("httpx", "httpcore")

FILE_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
CONSOLE_FORMAT = '%(levelname)s - %(message)s'


class TqdmLoggingHandler(logging.Handler):
    """Writes records through tqdm.write so they land above the request progress bars."""

    def emit(self, record):
        try:
            tqdm.write(self.format(record), file=sys.stderr)
            self.flush()
        except (KeyboardInterrupt, SystemExit):
            raise
        except Exception:
            self.handleError(record)


def _build_handlers(log_file_path: str, log_to_console: bool) -> List[logging.Handler]:
    log_dir = os.path.dirname(log_file_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    file_handler = logging.FileHandler(log_file_path, encoding='utf-8')
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
    handlers: List[logging.Handler] = [file_handler]

    if log_to_console:
        console_handler = TqdmLoggingHandler()
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        handlers.append(console_handler)
    return handlers


def _configure(logger: logging.Logger, level: int, handlers: List[logging.Handler]) -> None:
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.propagate = False


def setup_logger(log_level_str: str, log_file_path: str, log_to_console: bool) -> logging.Logger:
    """
    Set up the ``txsync`` logger, which every module logs under.

    The file gets the full timestamped format; the console gets a short one
    written through tqdm. With ``TRACE`` the httpx and httpcore loggers are
    sent to the same handlers at DEBUG, which logs every request and
    response line and is noisy on large resources.

    Args:
        log_level_str: A ``logging`` level name, or 'TRACE'.
        log_file_path: The path to the log file. Missing directories are created.
        log_to_console: Whether to also log to stderr.

    Returns:
        The configured logger instance.
    """
    log_level_str = log_level_str.upper()
    trace = log_level_str == TRACE_LEVEL_NAME
    log_level = logging.DEBUG if trace else getattr(logging, log_level_str, logging.INFO)

    handlers = _build_handlers(log_file_path, log_to_console)
    logger = logging.getLogger("txsync")
    _configure(logger, log_level, handlers)

    if trace:
        for name in WIRE_LOGGERS:
            _configure(logging.getLogger(name), logging.DEBUG, handlers)

    return logger
