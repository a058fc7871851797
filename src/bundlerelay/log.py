import logging

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def configure_logging(level=logging.INFO, filename=None):
    """Console logging plus an optional log file, both in the same format."""
    logger = logging.getLogger()
    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if filename:
        file_handler = logging.FileHandler(filename, mode='a')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
