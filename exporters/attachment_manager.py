"""Attachment manager for downloading card uploads and pointing card text at the local copies."""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import requests

from exporters.naming import encode_spaces, relative_link
from models import BackupContext, TrelloAttachment, TrelloCard

ATTACHMENT_TABLE_HEADER = (
    "id | original fileName | relative downloaded path\n"
    "---|---|---\n"
)
FAILED_DOWNLOAD_MARKER = '**failed to download**'


class AttachmentManager:
    """
    Downloads the uploaded attachments of a single card.

    This manager:
    1. Downloads each upload into the card's attachments folder, named by attachment ID
    2. Records the relative, space-encoded path on the attachment
    3. Builds the Markdown table listing every attachment
    4. Rewrites attachment source URLs in card text to the local paths
    """

    def __init__(
        self,
        context: BackupContext,
        card: TrelloCard,
        card_folder: Path,
        stem: str,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the attachment manager.

        Args:
            context: Shared backup context (client and options)
            card: Card whose attachments are handled
            card_folder: Folder the card's Markdown files are written to
            stem: Card filename stem, e.g. "0 My card"
            logger: Logger instance
        """
        self.context = context
        self.options = context.options
        self.card = card
        self.card_folder = card_folder
        self.attachments_folder = card_folder / f"{stem} - Attachments"
        self.logger = logger or logging.getLogger('trello_markdown_backup.exporters.attachment_manager')

        self.stats = {
            'total_attachments': 0,
            'downloaded': 0,
            'failed': 0,
            'total_size_bytes': 0
        }

    @property
    def board_name(self) -> str:
        return self.card.board.name if self.card.board else ''

    def process_attachments(self) -> List[str]:
        """
        Download every uploaded attachment of the card.

        Returns:
            One Markdown table row per uploaded attachment, in card order.
            Empty when the card has no uploads.

        Raises:
            requests.exceptions.RequestException, OSError: When a download fails
                and failed downloads are not being ignored
        """
        uploads = self.card.uploaded_attachments
        if not uploads:
            return []

        self.attachments_folder.mkdir(parents=True, exist_ok=True)
        self.logger.debug(f"Downloading {len(uploads)} attachment(s) for card '{self.card.name}'")

        return [self.download_attachment(attachment) for attachment in uploads]

    def download_attachment(self, attachment: TrelloAttachment) -> str:
        """
        Download one attachment and describe it as a table row.

        Args:
            attachment: Upload-type attachment

        Returns:
            Table row linking the downloaded file, or a failure row in tolerant mode
        """
        self.stats['total_attachments'] += 1
        destination = self.attachments_folder / f"{attachment.id}{Path(attachment.file_name).suffix}"

        try:
            size = self.context.client.download_attachment(attachment.url, destination)
        except (requests.exceptions.RequestException, OSError) as e:
            if not self.options.ignore_failed_attachment_downloads:
                raise
            self.logger.warning(
                f"Failed to download attachment {attachment.file_name} from {attachment.url}"
                f"    Board: \"{self.board_name}\"    Card: {self.card.name}    Exception: {e!r}"
            )
            attachment.download_failed = True
            self.stats['failed'] += 1
            return f"{attachment.id} | {attachment.file_name} | {FAILED_DOWNLOAD_MARKER}"

        relative_path = relative_link(str(destination), str(self.card_folder), self.options)
        attachment.local_path = encode_spaces(relative_path)

        self.stats['downloaded'] += 1
        self.stats['total_size_bytes'] += size or 0
        self.logger.debug(f"Saved attachment '{attachment.file_name}' -> {destination}")

        return f"{attachment.id} | {attachment.file_name} | [{relative_path}]({attachment.local_path})"

    @staticmethod
    def build_table(rows: List[str], title: Optional[str] = None) -> str:
        """
        Render the attachments table.

        Args:
            rows: Rows returned by download_attachment
            title: Card title for the file heading; omitted when appending to a single file
        """
        heading = f"# {title} - Attachments\n\n" if title else ''
        return heading + ATTACHMENT_TABLE_HEADER + "\n".join(rows) + "\n"

    def rewrite_references(self, text: str) -> str:
        """Replace literal attachment URLs in text with the downloaded relative paths."""
        for attachment in self.card.uploaded_attachments:
            if attachment.local_path and attachment.url:
                text = text.replace(attachment.url, attachment.local_path)
        return text

    def get_stats(self) -> Dict[str, int]:
        return self.stats.copy()
