"""Functions for logging."""

import logging


def setup_logger(level: str) -> None:
    """Configure the root logger so all modules log to stderr.

    Connection-pool chatter from urllib3 is only shown when debugging.
    """
    level_value = getattr(logging, level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level_value)
    # Remove all handlers associated with the root logger (avoid duplicate logs)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root_logger.addHandler(handler)
    logging.getLogger("urllib3").setLevel(level_value if level_value <= logging.DEBUG else logging.WARNING)
