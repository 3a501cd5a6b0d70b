"""Markdown export package for the Trello backup pipeline.

Package Structure:
- naming: Path-safe names, emoji stripping and duplicate-name suffixes
- board_exporter: Phase one for a board (fetch, folders, numbering, card dispatch)
- card_exporter: Writes one card's description, checklists, attachments and comments
- attachment_manager: Downloads card uploads and rewrites their URLs in card text
- link_rewriter: Phase two, rewrites card URLs to relative links across all boards
- output_tree: Deletes and recreates the output root

Configuration Referenced:
- export.max_card_filename_title_length, export.remove_emoji: Output names
- export.single_file, export.numbering: Card file layout
- export.always_use_forward_slashes: Link separators
- export.ignore_failed_attachment_downloads: Attachment failure policy
- links.exclude_boards: Boards whose cards are never link targets
"""

from .attachment_manager import AttachmentManager
from .board_exporter import BoardExporter
from .card_exporter import CardExporter
from .link_rewriter import LinkRewriter, find_card_urls
from .output_tree import prepare_output_root

__all__ = [
    'AttachmentManager',
    'BoardExporter',
    'CardExporter',
    'LinkRewriter',
    'find_card_urls',
    'prepare_output_root'
]
