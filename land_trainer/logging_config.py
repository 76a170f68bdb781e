"""
Logging setup for the API process and the feedback workers.
"""
import logging


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger with a single stream handler.

    Args:
        level: Log level name (e.g. "INFO", "DEBUG")
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(name)s - %(message)s'))

    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.addHandler(handler)

    # httpx/openai are chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
