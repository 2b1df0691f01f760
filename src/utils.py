import logging
import os
import sys

LOG_FORMAT = "[%(asctime)s] %(levelname)s - %(name)s - %(message)s"


def setup_logger(name: str, level=logging.INFO, log_file: str = None):
    logger = logging.getLogger(name)
    logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    # Attach a file handler at most once per path
    if log_file is not None:
        log_path = os.path.abspath(log_file)
        existing = [h for h in logger.handlers
                    if isinstance(h, logging.FileHandler) and h.baseFilename == log_path]
        if not existing:
            file_handler = logging.FileHandler(log_path)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def create_dirs(*directories):
    """Create output directories if they don't exist"""
    for directory in directories:
        if directory and not os.path.exists(directory):
            os.makedirs(directory)
