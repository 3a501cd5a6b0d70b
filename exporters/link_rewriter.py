"""Phase two: turn links between Trello cards into relative links between exported files."""

import logging
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List, Optional

from exporters.naming import encode_spaces, relative_link
from models import BackupOptions, TrelloBoard, TrelloCard

logger = logging.getLogger('trello_markdown_backup.exporters.link_rewriter')

# A card URL: short link, then an optional "/" and an optional slug that may itself end in "/".
# Trailing sentence punctuation such as "." or ")" never matches.
_CARD_URL = r'https?://trello\.com/c/(?P<short_link>[A-Za-z0-9]+)(?:/(?:[\w\-%]+/?)?)?'
CARD_URL_PATTERN = re.compile(_CARD_URL)

# [label](card URL) or [label](card URL "title"); Trello pastes card links as
# [url](url "smartCard-inline")
MARKDOWN_CARD_LINK_PATTERN = re.compile(
    r'\[(?P<label>[^\[\]\n]*)\]\(' + _CARD_URL + r'(?P<title>\s+"[^"\n]*")?\)'
)


def find_card_urls(text: str) -> List[str]:
    """Every card URL in text, in order of appearance, case preserved."""
    return [match.group(0) for match in CARD_URL_PATTERN.finditer(text)]


class LinkRewriter:
    """
    Rewrites card URLs in exported Markdown to relative file links.

    This rewriter:
    1. Indexes every exported card by short link, across all boards
    2. Scans each file a card produced for card URLs
    3. Replaces URLs of other exported cards with a link to their description file
    4. Writes a file back only when its text changed
    """

    def __init__(self, options: BackupOptions, max_workers: int = 4, logger: Optional[logging.Logger] = None):
        self.options = options
        self.max_workers = max(1, max_workers)
        self.logger = logger or logging.getLogger('trello_markdown_backup.exporters.link_rewriter')
        self.excluded_boards = set(options.link_exclude_boards)

    @staticmethod
    def build_index(boards: List[TrelloBoard]) -> Dict[str, TrelloCard]:
        """Map short link to card, merged across boards."""
        index = {}
        for board in boards:
            for card in board.cards:
                if card.short_link:
                    index[card.short_link] = card
        return index

    def is_excluded(self, card: TrelloCard) -> bool:
        board = card.board
        if board is None:
            return False
        return board.name in self.excluded_boards or board.short_link in self.excluded_boards

    def _destination(
        self,
        short_link: str,
        current_card: TrelloCard,
        index: Dict[str, TrelloCard]
    ) -> Optional[TrelloCard]:
        """The card a URL should link to, or None when the URL stays as it is."""
        if short_link == current_card.short_link:
            return None
        destination = index.get(short_link)
        if destination is None or not destination.description_path or self.is_excluded(destination):
            return None
        return destination

    def rewrite_text(
        self,
        text: str,
        current_card: TrelloCard,
        current_dir: str,
        index: Dict[str, TrelloCard]
    ) -> str:
        """
        Replace card URLs in text with relative Markdown links.

        URLs pointing at current_card itself, at cards not in index, at cards
        without a description file, or into an excluded board are left as they are.
        A URL that is already the target of a Markdown link only has the target
        replaced; when the link text is the URL itself it becomes the card title.

        Args:
            text: File contents
            current_card: Card that owns the file
            current_dir: Directory of the file, links are relative to it
            index: Short link to card lookup

        Returns:
            The rewritten text
        """
        def target_for(destination: TrelloCard) -> str:
            return encode_spaces(relative_link(destination.description_path, current_dir, self.options))

        def replace_link(match: 're.Match') -> str:
            destination = self._destination(match.group('short_link'), current_card, index)
            if destination is None:
                return match.group(0)

            label = match.group('label')
            if CARD_URL_PATTERN.fullmatch(label.strip()):
                return f"[{destination.name}]({target_for(destination)})"
            return f"[{label}]({target_for(destination)}{match.group('title') or ''})"

        def replace_url(match: 're.Match') -> str:
            destination = self._destination(match.group('short_link'), current_card, index)
            if destination is None:
                return match.group(0)
            return f"[{destination.name}]({target_for(destination)})"

        text = MARKDOWN_CARD_LINK_PATTERN.sub(replace_link, text)
        # links rewritten above no longer contain card URLs
        return CARD_URL_PATTERN.sub(replace_url, text)

    def rewrite_card(self, card: TrelloCard, index: Dict[str, TrelloCard]) -> int:
        """
        Rewrite every file a card produced.

        Returns:
            Number of files written back
        """
        rewritten_files = 0
        for path in card.output_paths():
            file_path = Path(path)
            original = file_path.read_text(encoding='utf-8')
            rewritten = self.rewrite_text(original, card, str(file_path.parent), index)
            if rewritten != original:
                file_path.write_text(rewritten, encoding='utf-8')
                rewritten_files += 1
                self.logger.debug(f"Rewrote card links in {path}")
        return rewritten_files

    def _rewrite_board(self, board: TrelloBoard, index: Dict[str, TrelloCard]) -> int:
        return sum(self.rewrite_card(card, index) for card in board.cards)

    def rewrite_all(self, boards: List[TrelloBoard]) -> Dict[str, int]:
        """
        Rewrite card links in every exported file, one task per board.

        Args:
            boards: Boards returned by the board exports

        Returns:
            Statistics dictionary

        Raises:
            OSError: If a file can't be read or written
        """
        index = self.build_index(boards)
        self.logger.info(f"Rewriting card links across {len(boards)} boards ({len(index)} cards)")

        stats = {'boards': len(boards), 'cards_indexed': len(index), 'files_rewritten': 0}
        first_failure = None

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(self._rewrite_board, board, index): board for board in boards}
            for future in as_completed(futures):
                board = futures[future]
                try:
                    stats['files_rewritten'] += future.result()
                except OSError as e:
                    self.logger.error(f"Failed to rewrite links in board '{board.name}': {e}")
                    if first_failure is None:
                        first_failure = e

        if first_failure is not None:
            raise first_failure

        self.logger.info(f"Card links rewritten in {stats['files_rewritten']} files")
        return stats
