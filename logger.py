# logger.py
import logging
import os
import sys

LOG_FILE = os.environ.get("HCI_INSTALLER_LOG", "/var/log/hci-installer.log")
FALLBACK_LOG_FILE = "/tmp/hci-installer.log"


def _file_handler() -> logging.FileHandler:
    global LOG_FILE
    # /var/log is read-only on the live ISO before the overlay is up
    try:
        return logging.FileHandler(LOG_FILE)
    except OSError:
        LOG_FILE = FALLBACK_LOG_FILE
        return logging.FileHandler(LOG_FILE)


def setup_logger() -> logging.Logger:
    logger = logging.getLogger("hci_installer")
    logger.setLevel(logging.DEBUG)
    if logger.handlers:
        return logger

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(threadName)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    fh = _file_handler()
    fh.setLevel(logging.INFO)
    fh.setFormatter(fmt)

    # The TUI owns the terminal; only errors go to stderr
    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(logging.ERROR)
    sh.setFormatter(fmt)

    logger.addHandler(fh)
    logger.addHandler(sh)
    return logger


def set_debug(enabled: bool) -> None:
    """`install.debug` in the config turns on DEBUG records in the log file."""
    for handler in log.handlers:
        if isinstance(handler, logging.FileHandler):
            handler.setLevel(logging.DEBUG if enabled else logging.INFO)


log = setup_logger()
