"""Logging manager module for the danmaku-proxy service."""

import logging
import sys
from typing import Optional
from colorama import Fore, Style, init
from emoji import emojize

from danmaku_proxy.config import get_log_level

# Initialize colorama
init(autoreset=True)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class LoggingManager:
    """
    Wraps a named logger with color-coded, emoji-prefixed helpers.

    Request handlers, the cache store and the maintenance task all log
    through one of these so server-side output has a uniform look, while
    clients only ever see redirects and short plain-text messages.
    """

    def __init__(self, logger_name: str, level: int = logging.INFO) -> None:
        """
        Initialize the LoggingManager with a named logger.

        Args:
            logger_name (str): Name for the logger, typically __name__ of the calling module
            level (int): Logging level (default: logging.INFO)
        """
        self.logger = logging.getLogger(logger_name)
        self.logger.setLevel(level)

        # uvicorn and pytest may already have attached handlers
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setLevel(level)
            handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
            self.logger.addHandler(handler)

    def debug(self, message: str, emoji: Optional[str] = None) -> None:
        """Log a debug message, optionally with an emoji."""
        self.logger.debug(self._format_message(message, emoji, Fore.CYAN))

    def info(self, message: str, emoji: Optional[str] = None) -> None:
        """Log an info message, optionally with an emoji."""
        self.logger.info(self._format_message(message, emoji, Fore.GREEN))

    def warning(self, message: str, emoji: Optional[str] = None) -> None:
        """Log a warning message, optionally with an emoji."""
        self.logger.warning(self._format_message(message, emoji, Fore.YELLOW))

    def error(self, message: str, emoji: Optional[str] = None) -> None:
        """
        Log an error message, optionally with an emoji.

        Args:
            message (str): The message to log
            emoji (Optional[str]): Emoji shortcode to prepend to the message
        """
        self.logger.error(self._format_message(message, emoji or ":x:", Fore.RED))

    def exception(self, message: str, emoji: Optional[str] = None) -> None:
        """
        Log an error message together with the active exception's traceback.

        Only meaningful inside an ``except`` block.
        """
        self.logger.exception(self._format_message(message, emoji or ":boom:", Fore.RED + Style.BRIGHT))

    def _format_message(self, message: str, emoji: Optional[str], color: str) -> str:
        """
        Format a log message with optional emoji and color.

        Args:
            message (str): The message to format
            emoji (Optional[str]): Emoji shortcode to prepend to the message
            color (str): ANSI color code to apply to the message

        Returns:
            str: Formatted message
        """
        if emoji:
            return f"{emojize(emoji, language='alias')} {color}{message}{Style.RESET_ALL}"
        return f"{color}{message}{Style.RESET_ALL}"


def get_logger(name: str, level: Optional[int] = None) -> LoggingManager:
    """
    Factory function to create and return a LoggingManager instance.

    Args:
        name (str): Name for the logger, typically __name__ of the calling module
        level (Optional[int]): Logging level; defaults to the configured LOG_LEVEL

    Returns:
        LoggingManager: Configured logging manager instance
    """
    if level is None:
        level = get_log_level()
    return LoggingManager(name, level)
