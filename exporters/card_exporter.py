"""Writes one card's Markdown files: description, checklists, attachments and comments."""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional

from exporters.attachment_manager import AttachmentManager
from exporters.naming import usable_card_name, with_suffix
from models import BackupContext, TrelloAction, TrelloBoard, TrelloCard

COMMENT_SEPARATOR = "## " + "-" * 40
SECTION_WORKERS = 4


class CardExporter:
    """
    Exports a single card of a board.

    In multi-file mode each section is its own file and the sections are
    written concurrently. In single-file mode every section is appended to the
    description file, one after the other.
    """

    def __init__(self, context: BackupContext, board: TrelloBoard, logger: Optional[logging.Logger] = None):
        self.context = context
        self.options = context.options
        self.board = board
        self.logger = logger or logging.getLogger('trello_markdown_backup.exporters.card_exporter')

    def stem_for(self, card: TrelloCard, index: int, suffix: str) -> str:
        """Filename stem shared by every file of the card."""
        name = usable_card_name(card, self.options)
        if self.options.numbering:
            name = f"{index} {name}"
        return with_suffix(name, suffix)

    def export(
        self,
        card: TrelloCard,
        index: int,
        folder: Path,
        suffix: str,
        comments: List[TrelloAction]
    ) -> TrelloCard:
        """
        Write every file of a card and record their paths on it.

        Args:
            card: Card to export
            index: Number of the card in its list folder
            folder: Folder the card's files go in
            suffix: Duplicate-name suffix, "" when the name is unique
            comments: The card's comment actions, in any order

        Returns:
            The card, with its output path fields populated
        """
        stem = self.stem_for(card, index, suffix)
        attachments = AttachmentManager(self.context, card, folder, stem)
        self.logger.debug(f"Exporting card '{card.name}' as '{stem}'")

        description_path = folder / f"{stem}.md"
        card.description_path = str(description_path)

        sections: List[Callable[[], None]] = [
            lambda: self._write_checklists(card, folder, stem),
            lambda: self._write_attachments(card, folder, stem, attachments),
            lambda: self._write_comments(card, folder, stem, comments)
        ]

        if self.options.single_file:
            self._write_description(card, description_path)
            for write_section in sections:
                write_section()
        else:
            with ThreadPoolExecutor(max_workers=SECTION_WORKERS) as executor:
                futures = [executor.submit(self._write_description, card, description_path)]
                futures.extend(executor.submit(write_section) for write_section in sections)
                # result() re-raises the first failure after every section has finished
                for future in futures:
                    future.result()

        if card.uploaded_attachments:
            self._rewrite_attachment_references(card, attachments)

        return card

    def _section_target(self, card: TrelloCard, folder: Path, stem: str, section: str) -> Path:
        if self.options.single_file:
            return Path(card.description_path)
        return folder / f"{stem} - {section}.md"

    def _write(self, path: Path, content: str) -> None:
        if self.options.single_file:
            with open(path, 'a', encoding='utf-8') as f:
                f.write("\n\n" + content)
        else:
            path.write_text(content, encoding='utf-8')

    def _heading(self, card: TrelloCard, section: str) -> str:
        # the single file already opens with the card title
        if self.options.single_file:
            return ''
        return f"# {card.name} - {section}\n\n"

    def _write_description(self, card: TrelloCard, path: Path) -> None:
        content = f"# {card.name}\n\nOriginal URL: {card.short_url}\n\n---\n\n{card.desc}"
        path.write_text(content, encoding='utf-8')

    def _write_checklists(self, card: TrelloCard, folder: Path, stem: str) -> None:
        checklists = self.board.checklists_for_card(card)
        if not checklists:
            return

        content = self._heading(card, 'Checklists')
        for checklist in checklists:
            content += f"## {checklist.name}\n\n"
            for item in checklist.ordered_items():
                mark = 'x' if item.is_complete else ' '
                content += f"- [{mark}] {item.name}\n"
            content += "\n"

        path = self._section_target(card, folder, stem, 'Checklists')
        self._write(path, content)
        card.checklists_path = str(path)

    def _write_attachments(self, card: TrelloCard, folder: Path, stem: str, attachments: AttachmentManager) -> None:
        rows = attachments.process_attachments()
        if not rows:
            return

        title = None if self.options.single_file else card.name
        path = self._section_target(card, folder, stem, 'Attachments')
        self._write(path, AttachmentManager.build_table(rows, title))
        card.attachments_path = str(path)

    def _write_comments(self, card: TrelloCard, folder: Path, stem: str, comments: List[TrelloAction]) -> None:
        if not comments:
            return

        content = self._heading(card, 'Comments')
        # ISO 8601 timestamps sort as strings
        for comment in sorted(comments, key=lambda action: action.date):
            content += f"{COMMENT_SEPARATOR}\n\n{comment.text}\n\n"

        path = self._section_target(card, folder, stem, 'Comments')
        self._write(path, content)
        card.comments_path = str(path)

    def _rewrite_attachment_references(self, card: TrelloCard, attachments: AttachmentManager) -> None:
        """Point attachment URLs in the description and comments at the downloaded files."""
        for path in dict.fromkeys(p for p in (card.description_path, card.comments_path) if p):
            original = Path(path).read_text(encoding='utf-8')
            rewritten = attachments.rewrite_references(original)
            if rewritten != original:
                Path(path).write_text(rewritten, encoding='utf-8')
                self.logger.debug(f"Rewrote attachment references in {path}")
