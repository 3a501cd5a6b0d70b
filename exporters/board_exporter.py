"""Phase one for a single board: fetch, lay out folders, number cards, export every card."""

import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, wait
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from exporters.card_exporter import CardExporter
from exporters.naming import (
    card_collision_key,
    compute_suffixes,
    list_collision_key,
    usable_board_name,
    usable_list_name,
    with_suffix
)
from models import BackupContext, BoardParseError, TrelloAction, TrelloBoard, TrelloBoardSummary, TrelloCard

ARCHIVED_FOLDER = 'archived'


class BoardExporter:
    """
    Exports one board into the output root.

    Lists and cards are numbered and disambiguated up front, on the calling
    thread, before any card work is dispatched to the card pool.
    """

    def __init__(self, context: BackupContext, logger: Optional[logging.Logger] = None):
        """
        Initialize the board exporter.

        Args:
            context: Shared backup context
            logger: Logger instance
        """
        self.context = context
        self.options = context.options
        self.logger = logger or logging.getLogger('trello_markdown_backup.exporters.board_exporter')

        self.stats = {
            'lists': 0,
            'cards': 0,
            'archived_cards': 0,
            'comments': 0,
            'failed_cards': 0
        }

    def export(self, summary: TrelloBoardSummary, suffix: str = '') -> TrelloBoard:
        """
        Fetch and export a board.

        Args:
            summary: Board as listed by the API
            suffix: Suffix keeping the board's output names apart from a same-named board

        Returns:
            The parsed board with every list and card path populated

        Raises:
            BoardParseError: If the backup is malformed
            Exception: The first card failure, once every card has finished
        """
        self.logger.info(f"Exporting board '{summary.name}'")
        raw, comments = self._fetch(summary)

        # saved before parsing so a payload that fails to parse is still on disk
        base_name = with_suffix(usable_board_name(summary.name, self.options), suffix)
        backup_path = self.context.output_root / f"{base_name}.json"
        backup_path.write_bytes(raw)

        board = TrelloBoard.from_json(raw)
        board.backup_path = str(backup_path)

        board_folder = self.context.output_root / base_name
        board_folder.mkdir(parents=True, exist_ok=True)
        board.folder_path = str(board_folder)

        self._create_list_folders(board, board_folder)
        jobs = self._plan_cards(board)
        self._export_cards(board, jobs, self._comments_by_card(board, comments))

        self.logger.info(
            f"Board '{board.name}' exported: {self.stats['lists']} lists, {self.stats['cards']} cards"
        )
        return board

    def _fetch(self, summary: TrelloBoardSummary) -> Tuple[bytes, List[TrelloAction]]:
        """Download the backup and the comment history side by side."""
        client = self.context.client
        with ThreadPoolExecutor(max_workers=2) as executor:
            backup_future = executor.submit(client.get_board_backup, summary.short_link)
            # the API takes the short link wherever it takes a board ID
            comments_future = executor.submit(client.get_board_comments, summary.id or summary.short_link)
            raw = backup_future.result()
            comments = comments_future.result()
        return raw, comments

    def _create_list_folders(self, board: TrelloBoard, board_folder: Path) -> None:
        """Create a folder, plus its archived subfolder, for every list in position order."""
        board.lists = board.sorted_lists()
        suffixes = compute_suffixes(board.lists, lambda trello_list: list_collision_key(trello_list, self.options))

        archived_lists_folder = board_folder / ARCHIVED_FOLDER
        next_index = {False: 0, True: 0}

        for trello_list in board.lists:
            index = next_index[trello_list.closed]
            next_index[trello_list.closed] += 1

            name = usable_list_name(trello_list, self.options)
            if self.options.numbering:
                folder_name = f"{index} {name}"
            else:
                suffix = suffixes[trello_list]
                # "archived" next to the list folders is reserved for archived lists
                if not suffix and name.lower() == ARCHIVED_FOLDER:
                    suffix = '1'
                folder_name = with_suffix(name, suffix)

            parent = archived_lists_folder if trello_list.closed else board_folder
            folder = parent / folder_name
            archive_folder = folder / ARCHIVED_FOLDER
            archive_folder.mkdir(parents=True, exist_ok=True)

            trello_list.folder_path = str(folder)
            trello_list.archive_folder_path = str(archive_folder)
            self.stats['lists'] += 1

    def _plan_cards(self, board: TrelloBoard) -> List[Tuple[TrelloCard, int, Path, str]]:
        """
        Give every card its folder, number and suffix.

        Runs before any card task starts; the list counters are not touched afterwards.
        """
        board.cards = board.sorted_cards()
        suffixes = compute_suffixes(board.cards, lambda card: card_collision_key(card, self.options))

        jobs = []
        for card in board.cards:
            trello_list = board.get_list(card.id_list)
            if trello_list is None:
                raise BoardParseError(
                    f"Card '{card.name}' in board '{board.name}' refers to missing list {card.id_list}"
                )

            folder = Path(trello_list.archive_folder_path if card.closed else trello_list.folder_path)
            index = trello_list.next_card_index(card.closed)
            jobs.append((card, index, folder, suffixes[card]))

        return jobs

    @staticmethod
    def _comments_by_card(board: TrelloBoard, comments: List[TrelloAction]) -> Dict[str, List[TrelloAction]]:
        """
        Group comments by card.

        The API history is complete; the backup only carries recent actions, so
        they only fill in anything the API missed.
        """
        grouped: Dict[str, List[TrelloAction]] = defaultdict(list)
        seen = set()
        for comment in list(comments) + board.actions:
            if not comment.is_comment or comment.id in seen:
                continue
            seen.add(comment.id)
            grouped[comment.card_id].append(comment)
        return grouped

    def _export_cards(
        self,
        board: TrelloBoard,
        jobs: List[Tuple[TrelloCard, int, Path, str]],
        comments: Dict[str, List[TrelloAction]]
    ) -> None:
        if not jobs:
            return

        card_exporter = CardExporter(self.context, board)
        with ThreadPoolExecutor(max_workers=max(1, self.options.card_workers)) as executor:
            futures = [
                executor.submit(card_exporter.export, card, index, folder, suffix, comments.get(card.id, []))
                for card, index, folder, suffix in jobs
            ]
            wait(futures)

        first_failure = None
        for (card, _, _, _), future in zip(jobs, futures):
            error = future.exception()
            if error is not None:
                self.stats['failed_cards'] += 1
                self.logger.error(f"Failed to export card '{card.name}' in board '{board.name}': {error}")
                if first_failure is None:
                    first_failure = error
                continue

            self.stats['cards'] += 1
            if card.closed:
                self.stats['archived_cards'] += 1
            self.stats['comments'] += len(comments.get(card.id, []))

        if first_failure is not None:
            raise first_failure
