"""Deletes and recreates the backup's output root."""

import logging
import os
import time
from pathlib import Path
from typing import Union

logger = logging.getLogger('trello_markdown_backup.exporters.output_tree')

OUTPUT_SUBFOLDER = 't2md'
DELETE_ATTEMPTS = 10
DELETE_RETRY_DELAY = 0.1


def _remove_with_retries(remove, path: Path, attempts: int, delay: float) -> None:
    """Call remove(path), retrying while something (a sync client, an editor) holds it."""
    for attempt in range(1, attempts + 1):
        try:
            remove(path)
            return
        except FileNotFoundError:
            return
        except OSError as e:
            if attempt == attempts:
                raise
            logger.debug(f"Delete of {path} failed (attempt {attempt}/{attempts}): {e}")
            time.sleep(delay)


def delete_directory_with_retries(
    path: Union[str, Path],
    attempts: int = DELETE_ATTEMPTS,
    delay: float = DELETE_RETRY_DELAY
) -> None:
    """
    Delete a directory tree depth-first, retrying each removal.

    Args:
        path: Directory to delete
        attempts: Attempts per file or directory
        delay: Seconds between attempts

    Raises:
        OSError: If an entry still can't be removed after the last attempt
    """
    path = Path(path)
    if not path.exists():
        return

    for root, dirs, files in os.walk(path, topdown=False):
        for name in files:
            _remove_with_retries(os.remove, Path(root) / name, attempts, delay)
        for name in dirs:
            child = Path(root) / name
            if child.is_symlink():
                _remove_with_retries(os.unlink, child, attempts, delay)
            else:
                _remove_with_retries(os.rmdir, child, attempts, delay)

    _remove_with_retries(os.rmdir, path, attempts, delay)


def prepare_output_root(output_folder: Union[str, Path]) -> Path:
    """
    Give the run an empty output root under the user's output folder.

    Args:
        output_folder: Folder chosen by the user

    Returns:
        Path of the freshly created run root
    """
    root = Path(output_folder) / OUTPUT_SUBFOLDER
    if root.exists():
        logger.info(f"Deleting previous backup at {root}")
        delete_directory_with_retries(root)
    root.mkdir(parents=True, exist_ok=True)
    return root
