import logging
from logging import Logger

from rich.console import Console
from rich.logging import RichHandler


def get_logger(name: str = "promptsmith") -> Logger:
    """Logger writing through a RichHandler on stderr."""
    logger = logging.getLogger(name)
    if getattr(logger, "_rich_configured", False):
        return logger

    console = Console(stderr=True, highlight=True, log_time_format="[%H.%M]")
    logger.setLevel(logging.INFO)

    if logger.hasHandlers():
        logger.handlers.clear()

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_level=True,
        show_path=True,
        markup=False,  # LLM text can contain [brackets]
        rich_tracebacks=True,
        tracebacks_word_wrap=True,
    )

    logger.addHandler(rich_handler)
    logger.propagate = False
    logger._rich_configured = True
    return logger
