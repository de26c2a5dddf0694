"""Utility functions for the pathway comparison pipeline."""

import logging
import platform
from pathlib import Path
from typing import List, Optional, Union

# Output directory layout
DATA_DIR = 'data'
PLOTS_DIR = 'plots'
LOGS_DIR = 'logs'
OUTPUT_SUBDIRS = (DATA_DIR, PLOTS_DIR, LOGS_DIR)

LOG_FILE_NAME = 'pathway_concord.log'
PACKAGE_LOGGER = 'pathway_concord'

# Configure tqdm to work properly on macOS
is_mac = platform.system() == 'Darwin'
tqdm_kwargs = {
    'position': 0,
    'leave': True,
    'ncols': 100,
    'dynamic_ncols': True,
    'ascii': is_mac,
    'disable': None,  # hide when not attached to a terminal
}

# Handlers installed by setup_logging, replaced on the next call
_installed_handlers: List[logging.Handler] = []


def _remove_installed_handlers(root_logger: logging.Logger) -> None:
    while _installed_handlers:
        handler = _installed_handlers.pop()
        root_logger.removeHandler(handler)
        handler.close()


def setup_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    log_file: str = LOG_FILE_NAME
) -> logging.Logger:
    """Set up logging for a pipeline run.

    Handlers go on the root logger so that records from every
    ``pathway_concord`` module reach them. Calling this again replaces the
    handlers from the previous call, so one process can run several
    comparisons without duplicated log lines.

    Args:
        log_dir: Directory for the log file; usually ``<output>/logs``
        level: Logging level
        log_file: Name of the log file inside ``log_dir``

    Returns:
        The package logger
    """
    root_logger = logging.getLogger()
    _remove_installed_handlers(root_logger)
    root_logger.setLevel(level)

    if log_dir:
        log_path = ensure_dir(log_dir) / log_file
        file_handler = logging.FileHandler(log_path, mode='w')
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        root_logger.addHandler(file_handler)
        _installed_handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    ))
    root_logger.addHandler(console_handler)
    _installed_handlers.append(console_handler)

    # numba logs every compilation pass at DEBUG
    logging.getLogger('numba').setLevel(max(level, logging.WARNING))

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    if log_dir:
        logger.info(f"Logging to {log_path}")
    return logger


def ensure_dir(path: Union[str, Path]) -> Path:
    """Ensure a directory exists, creating it if necessary.

    Raises:
        FileExistsError: if a file is in the way
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def output_subdir(output_dir: Union[str, Path], name: str) -> Path:
    """Create and return one of the standard subdirectories of a results directory."""
    if name not in OUTPUT_SUBDIRS:
        raise ValueError(f"Unknown output subdirectory '{name}'; expected one of {', '.join(OUTPUT_SUBDIRS)}")
    return ensure_dir(Path(output_dir) / name)
