"""Logging configuration and utilities for hapkmer.

Console output goes through a rich handler, everything is also written to a
log file. Library modules only ever call ``logging.getLogger(__name__)``;
handlers are installed once, by the command being run, via ``setup_logging``.

Example:
    ```python
    logger = setup_logging("build.log", log_level="debug")
    logger.info("Starting kmer index build")
    ```
"""

import inspect
import logging
from pathlib import Path
from typing import Dict, Optional, Union

from rich.console import Console
from rich.logging import RichHandler

HAPKMER_HANDLER_ATTR = "hapkmer_handler_type"

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def get_version_info() -> str:
    """Installed hapkmer version, or the short git hash of a source checkout."""
    import subprocess
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("hapkmer")
    except PackageNotFoundError:
        pass
    try:
        return (
            subprocess.check_output(
                ["git", "rev-parse", "--short", "HEAD"],
                cwd=Path(__file__).resolve().parent,
                stderr=subprocess.DEVNULL,
            )
            .decode("ascii")
            .strip()
        )
    except (subprocess.CalledProcessError, OSError):
        return "Unknown"


def parse_log_level(log_level: Union[int, str]) -> int:
    if isinstance(log_level, str):
        return LOG_LEVELS.get(log_level.lower(), logging.INFO)
    return log_level


def setup_logging(
    log_file: Union[str, Path, logging.Logger, None],
    log_level: Union[int, str] = logging.INFO,
) -> logging.Logger:
    """Setup logging with both file and console handlers on the root logger.

    Calling this again reconfigures the existing hapkmer handlers (level, log
    file) instead of stacking new ones.
    """
    if isinstance(log_file, logging.Logger):
        return log_file

    if log_file is None:
        log_file = Path.cwd() / "hapkmer.log"
    log_file = Path(log_file)
    log_level = parse_log_level(log_level)

    log_file.parent.mkdir(parents=True, exist_ok=True)
    log_file.touch(exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(log_level)

    console_handler = None
    file_handlers = []
    for handler in logger.handlers:
        handler_type = getattr(handler, HAPKMER_HANDLER_ATTR, None)
        if handler_type == "console":
            console_handler = handler
        elif handler_type == "file":
            file_handlers.append(handler)

    if console_handler is None:
        console_handler = RichHandler(
            rich_tracebacks=True,
            console=Console(width=150, stderr=True),
            show_time=False,
            show_path=True,
            markup=True,
        )
        setattr(console_handler, HAPKMER_HANDLER_ATTR, "console")
        logger.addHandler(console_handler)

    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))

    existing_file_handler = None
    for file_handler in file_handlers:
        if Path(file_handler.baseFilename).resolve() == log_file.resolve():
            existing_file_handler = file_handler
        else:
            logger.removeHandler(file_handler)
            file_handler.close()

    if existing_file_handler is None:
        existing_file_handler = logging.FileHandler(log_file)
        setattr(existing_file_handler, HAPKMER_HANDLER_ATTR, "file")
        logger.addHandler(existing_file_handler)

    existing_file_handler.setLevel(log_level)
    existing_file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s --- %(levelname)s --- %(message)s --- %(pathname)s:%(lineno)d",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    return logger


def log_start_info(logger: logging.Logger, config_dict: Dict):
    """Log the command line, version, launch location and parameters at DEBUG."""
    from sys import argv as sys_argv

    logger.debug(f"Original command called: {' '.join(sys_argv)}")
    logger.debug(f"hapkmer version: {get_version_info()}")
    logger.debug(f"Launch location: {Path.cwd()}")
    logger.debug("Config parameters:")
    for key, value in config_dict.items():
        logger.debug(f"{key}: {value}")


def get_logger(logger: Optional[logging.Logger] = None) -> logging.Logger:
    """Get a logger instance for the calling module unless one is provided."""
    if isinstance(logger, logging.Logger):
        return logger

    caller_name = None
    for frame_info in inspect.stack()[1:]:
        module = inspect.getmodule(frame_info.frame)
        if module and module.__name__ != __name__:
            caller_name = module.__name__
            break

    return logging.getLogger(caller_name or __name__)
