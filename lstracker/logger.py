"""
Logging setup: rotating main log, errors-only log and console output.
Modules log through `logging.getLogger(__name__)`; this only wires handlers
on the package logger once per process.
"""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

PACKAGE_LOGGER = "lstracker"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(log_dir: Path, level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger(PACKAGE_LOGGER)
    level_no = logging.getLevelName(str(level).upper())
    if not isinstance(level_no, int):
        raise ValueError(f"Unknown log level: {level}")
    logger.setLevel(level_no)

    # Streamlit reruns the script: replace handlers instead of stacking them.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    fmt = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # 1. Main rotating file handler (10MB per file, keep 5 files)
    main_handler = RotatingFileHandler(
        log_path / "ls_tracker.log", maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
    )
    main_handler.setLevel(logging.DEBUG)
    main_handler.setFormatter(fmt)
    logger.addHandler(main_handler)

    # 2. Error-only log file (5MB per file, keep 3 files)
    error_handler = RotatingFileHandler(
        log_path / "errors.log", maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(fmt)
    logger.addHandler(error_handler)

    # 3. Console
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(fmt)
    logger.addHandler(console_handler)

    logger.propagate = False
    return logger
