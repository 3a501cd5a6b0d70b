"""Logging setup and run progress reporting."""

import copy
import logging
import logging.handlers
import sys
import threading
import time
from typing import Any, Dict, Optional

import colorlog
from tqdm import tqdm

LOGGER_NAME = 'trello_markdown_backup'

REDACTED = '***REDACTED***'


def setup_logging(
    verbosity: int = 0,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    level: Optional[str] = None
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        verbosity: Verbosity level (0=WARNING, 1=INFO, 2+=DEBUG)
        log_file: Optional path to a rotating log file
        log_format: Optional custom log format string
        date_format: Optional custom date format string
        level: Explicit level name, overrides verbosity

    Returns:
        Configured logger instance

    Raises:
        ValueError: If level is not a known level name
    """
    if level:
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level_upper = level.upper()
        if level_upper not in allowed_levels:
            raise ValueError(
                f"Invalid log level '{level}'. Must be one of: {sorted(allowed_levels)}"
            )
        log_level = getattr(logging, level_upper)
    elif verbosity >= 2:
        log_level = logging.DEBUG
    elif verbosity >= 1:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    if log_format is None:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    if date_format is None:
        date_format = '%Y-%m-%d %H:%M:%S'

    # Keep third-party loggers (urllib3) quiet
    logging.basicConfig(level=logging.WARNING, format=log_format, datefmt=date_format)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    logger.handlers.clear()
    logger.propagate = False

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(colorlog.ColoredFormatter(
        fmt='%(log_color)s' + log_format,
        datefmt=date_format,
        log_colors={
            'DEBUG': 'cyan',
            'INFO': 'green',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        }
    ))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(fmt=log_format, datefmt=date_format))
        logger.addHandler(file_handler)
        logger.info(f"Logging to file: {log_file}")

    logger.debug(f"Log level: {logging.getLevelName(log_level)}")
    return logger


class ProgressTracker:
    """
    Counts finished items across worker threads and logs a summary on exit.

    Shows a tqdm bar when stderr is a terminal and show_bar is set.
    """

    def __init__(self, total_items: int, item_type: str = "items", show_bar: bool = True):
        self.total_items = total_items
        self.item_type = item_type
        self.processed_items = 0
        self.successful_items = 0
        self.failed_items = 0
        self.start_time: Optional[float] = None
        self.logger = logging.getLogger(LOGGER_NAME)
        self._lock = threading.Lock()
        self._show_bar = show_bar and sys.stderr.isatty()
        self._bar: Optional[tqdm] = None

    def __enter__(self) -> 'ProgressTracker':
        self.start_time = time.time()
        if self._show_bar:
            self._bar = tqdm(total=self.total_items, desc=self.item_type.capitalize(), unit=self.item_type)
        self.logger.info(f"Starting processing of {self.total_items} {self.item_type}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._bar is not None:
            self._bar.close()
            self._bar = None
        if self.start_time is None:
            return

        elapsed = time.time() - self.start_time
        if self.failed_items > 0 and self.failed_items == self.total_items:
            log_method = self.logger.error
        elif self.failed_items > 0:
            log_method = self.logger.warning
        else:
            log_method = self.logger.info

        log_method(
            f"{self.item_type.capitalize()}: {self.successful_items}/{self.total_items} succeeded, "
            f"{self.failed_items} failed in {self._format_elapsed(elapsed)}"
        )

    def increment(self, success: bool = True, label: str = '') -> None:
        """
        Record one finished item.

        Args:
            success: Whether the item was processed successfully
            label: Name of the item, shown in the progress log line
        """
        with self._lock:
            self.processed_items += 1
            if success:
                self.successful_items += 1
            else:
                self.failed_items += 1
            processed = self.processed_items

            if self._bar is not None:
                self._bar.update(1)

        status = "done" if success else "FAILED"
        self.logger.info(f"[{processed}/{self.total_items}] {label or self.item_type} {status}")

    def get_stats(self) -> Dict[str, Any]:
        elapsed = 0.0 if self.start_time is None else time.time() - self.start_time
        return {
            'total': self.total_items,
            'processed': self.processed_items,
            'successful': self.successful_items,
            'failed': self.failed_items,
            'elapsed_time': elapsed,
            'elapsed_time_formatted': self._format_elapsed(elapsed)
        }

    @staticmethod
    def _format_elapsed(seconds: float) -> str:
        """Format elapsed time in human-readable format."""
        if seconds < 60:
            return f"{seconds:.1f}s"

        minutes = int(seconds // 60)
        seconds = int(seconds % 60)
        if minutes < 60:
            return f"{minutes}m {seconds}s"

        hours = minutes // 60
        minutes = minutes % 60
        return f"{hours}h {minutes}m {seconds}s"


def log_section(title: str) -> None:
    logger = logging.getLogger(LOGGER_NAME)
    separator = "=" * 60
    logger.info(separator)
    logger.info(f"  {title.upper()}")
    logger.info(separator)


def log_config(config: Dict[str, Any]) -> None:
    """
    Log the effective configuration with credentials masked.

    Args:
        config: Configuration dictionary to log
    """
    logger = logging.getLogger(LOGGER_NAME)
    sanitized = _sanitize_config(config)

    log_section("Configuration")

    trello = sanitized.get('trello', {})
    logger.info(f"API Key: {trello.get('api_key') or 'Not Set'}")
    logger.info(f"API Token: {trello.get('api_token') or 'Not Set'}")
    logger.info(f"Request Timeout: {trello.get('request_timeout', 60)}s")

    export_settings = sanitized.get('export', {})
    logger.info(f"Output Directory: {export_settings.get('output_directory', 'Not Set')}")
    for key in (
        'max_card_filename_title_length',
        'single_file',
        'numbering',
        'remove_emoji',
        'always_use_forward_slashes',
        'ignore_failed_attachment_downloads',
        'keep_json_backups'
    ):
        if key in export_settings:
            logger.info(f"{key.replace('_', ' ').capitalize()}: {export_settings[key]}")

    boards = sanitized.get('boards', {})
    logger.info(f"Included Boards: {boards.get('include') or 'All Boards'}")
    logger.info(f"Excluded Boards: {boards.get('exclude') or 'None'}")
    logger.info(f"Link Excluded Boards: {sanitized.get('links', {}).get('exclude_boards') or 'None'}")

    concurrency = sanitized.get('concurrency', {})
    logger.info(
        f"Concurrency: {concurrency.get('rate_limit', 10)} req/s, "
        f"{concurrency.get('board_workers', 4)} board workers, "
        f"{concurrency.get('card_workers', 8)} card workers"
    )


def _sanitize_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Deep copy of config with credential values masked."""
    sensitive_fields = {'api_key', 'api_token', 'token', 'secret', 'password'}

    def mask_sensitive(data: Any) -> Any:
        if isinstance(data, dict):
            masked = {}
            for key, value in data.items():
                is_sensitive = any(sensitive in str(key).lower() for sensitive in sensitive_fields)
                if is_sensitive and isinstance(value, str) and value:
                    masked[key] = REDACTED
                else:
                    masked[key] = mask_sensitive(value)
            return masked
        if isinstance(data, list):
            return [mask_sensitive(item) for item in data]
        return data

    return mask_sensitive(copy.deepcopy(config))


__all__ = [
    'LOGGER_NAME',
    'setup_logging',
    'ProgressTracker',
    'log_section',
    'log_config'
]
