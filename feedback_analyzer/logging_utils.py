"""Shared logging utilities.

SafeStreamHandler tolerates broken pipes and closed file descriptors, which
happen when the pipeline runs as an API background task and stdout goes
away (e.g. a uvicorn reload) mid-run.
"""
import logging
import logging.handlers
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
DEFAULT_LOG_FILE = "/tmp/feedback-analyzer.log"

# Libraries whose INFO output drowns out pipeline progress
NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "openai")


class SafeStreamHandler(logging.StreamHandler):
    """StreamHandler that ignores broken pipe and closed file errors.

    File handlers attached alongside keep receiving records.
    """

    def emit(self, record):
        try:
            super().emit(record)
        except BrokenPipeError:
            pass  # stdout closed
        except ValueError:
            pass  # I/O operation on closed file


def configure_safe_logging(level=logging.INFO):
    """Configure root logger with SafeStreamHandler.

    Safe to call multiple times (guards against duplicate handlers).
    """
    logger = logging.getLogger()
    if not any(isinstance(h, SafeStreamHandler) for h in logger.handlers):
        handler = SafeStreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.setLevel(level)
        logger.addHandler(handler)
        # Some libraries set the root logger to WARNING during import
        if logger.level == logging.NOTSET or logger.level > level:
            logger.setLevel(level)


def configure_api_logging(level=logging.INFO, log_file=None):
    """Root logging for the API process: rotating file plus safe stream.

    The file handler keeps stack traces from background pipeline runs even
    when stdout is unavailable. Log path comes from FEEDBACK_ANALYZER_LOG_FILE.
    """
    log_file = log_file or os.getenv("FEEDBACK_ANALYZER_LOG_FILE", DEFAULT_LOG_FILE)
    root = logging.getLogger()

    if not any(isinstance(h, logging.handlers.RotatingFileHandler) for h in root.handlers):
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=3,
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(level)
        root.addHandler(file_handler)

    configure_safe_logging(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
