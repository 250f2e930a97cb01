# log_setup.py
import logging
import os
import sys
from pathlib import Path

# --- Configuration ---
LOG_LEVEL = logging.INFO
LOG_DIR_MODE = 0o750
LOG_FILE_MODE = 0o640

# --- Formatters ---
FORMATTER = logging.Formatter(
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

LEVEL_COLORS = {
    logging.DEBUG: "\033[2m",
    logging.INFO: "\033[1;34m",
    logging.WARNING: "\033[1;33m",
    logging.ERROR: "\033[1;31m",
    logging.CRITICAL: "\033[1;41m",
}
RESET = "\033[0m"

_installed_handlers = []


class SeverityFormatter(logging.Formatter):
    """Tags each console line with its severity, colored when the stream is a terminal."""

    def __init__(self, use_color: bool):
        super().__init__("[%(levelname)s] %(message)s")
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        if not self.use_color:
            return line
        color = LEVEL_COLORS.get(record.levelno, "")
        tag = f"[{record.levelname}]"
        return line.replace(tag, f"{color}{tag}{RESET}", 1)


def get_console_handler():
    """Returns a handler that prints to the console (stdout)."""
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(SeverityFormatter(use_color=sys.stdout.isatty()))
    return console_handler


def get_file_handler(log_file: Path):
    """Returns an append-only file handler for the run log."""
    file_handler = logging.FileHandler(log_file, mode="a")
    file_handler.setFormatter(FORMATTER)
    return file_handler


def get_error_file_handler(log_file: Path):
    """
    Returns a file handler that logs only ERROR and CRITICAL messages.
    The file is opened lazily, so it only appears once an error is logged.
    """
    error_handler = logging.FileHandler(f"{log_file}.err", mode="a", delay=True)
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(FORMATTER)
    return error_handler


def prepare_log_file(log_dir: Path, log_file: Path) -> None:
    """Creates the log directory and file with fixed permissions if they are absent."""
    log_dir.mkdir(mode=LOG_DIR_MODE, parents=True, exist_ok=True)
    log_file.parent.mkdir(mode=LOG_DIR_MODE, parents=True, exist_ok=True)
    if not log_file.exists():
        fd = os.open(log_file, os.O_CREAT | os.O_WRONLY | os.O_APPEND, LOG_FILE_MODE)
        os.close(fd)
        os.chmod(log_file, LOG_FILE_MODE)


def setup_logging(log_dir: Path, log_file: Path, verbose: bool = False) -> logging.Logger:
    """
    Configures the root logger for one run.

    Must be called after privilege escalation so the log file is never
    created by an unprivileged user.
    """
    prepare_log_file(log_dir, log_file)

    logger = logging.getLogger()
    shutdown_logging()

    level = logging.DEBUG if verbose else LOG_LEVEL
    logger.setLevel(level)  # The lowest level the logger will handle

    # Add all handlers to the root logger
    _installed_handlers.extend(
        [
            get_console_handler(),
            get_file_handler(log_file),
            get_error_file_handler(log_file),
        ]
    )
    for handler in _installed_handlers:
        logger.addHandler(handler)

    # 'sh' logs every process state change at DEBUG.
    logging.getLogger("sh").setLevel(logging.WARNING)
    return logger


def shutdown_logging() -> None:
    """Flushes, closes and detaches the handlers installed by setup_logging."""
    logger = logging.getLogger()
    while _installed_handlers:
        handler = _installed_handlers.pop()
        handler.flush()
        handler.close()
        logger.removeHandler(handler)
