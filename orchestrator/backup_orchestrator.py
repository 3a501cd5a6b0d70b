"""
Backup orchestrator coordinating the whole run.

Sequences: recreate output root → list boards → export boards (phase one,
concurrent) → rewrite card links (phase two) → cleanup → report.
"""

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from exporters import BoardExporter, LinkRewriter, prepare_output_root
from exporters.naming import compute_suffixes, usable_board_name
from logger import ProgressTracker, log_section
from models import BackupContext, BackupError, BackupOptions, TrelloBoard, TrelloBoardSummary
from orchestrator.backup_report import STATUS_EXPORTED, STATUS_FAILED, STATUS_SKIPPED, BackupReport


class BackupOrchestrator:
    """Single top-level coordinator owning the client, the output root and the options for one run."""

    def __init__(
        self,
        client,
        output_folder: Union[str, Path],
        options: Optional[BackupOptions] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            client: TrelloClient (or anything with the same methods)
            output_folder: Folder chosen by the user; the backup goes in its t2md subfolder
            options: Backup options
            logger: Optional logger instance
        """
        self.client = client
        self.output_folder = Path(output_folder)
        self.options = options or BackupOptions()
        self.logger = logger or logging.getLogger('trello_markdown_backup.orchestrator')
        self.report_generator = BackupReport(logger=self.logger)
        self.report: Dict[str, Any] = {}

    def filter_boards(
        self,
        summaries: List[TrelloBoardSummary]
    ) -> Tuple[List[TrelloBoardSummary], List[TrelloBoardSummary]]:
        """
        Apply the include and exclude lists. Boards match by name or short link.

        Returns:
            Tuple of (boards to export, boards skipped)
        """
        include = set(self.options.include_boards)
        exclude = set(self.options.exclude_boards)

        selected, skipped = [], []
        for summary in summaries:
            keys = {summary.name, summary.short_link}
            if (include and not keys & include) or keys & exclude:
                skipped.append(summary)
            else:
                selected.append(summary)

        unmatched = include - {key for summary in summaries for key in (summary.name, summary.short_link)}
        for name in sorted(unmatched):
            self.logger.warning(f"Included board '{name}' was not found")

        return selected, skipped

    def run(self) -> Dict[str, Any]:
        """
        Run the full backup.

        Returns:
            Report dictionary (also kept on self.report)

        Raises:
            BackupError: If any board failed; card links are then left untouched
        """
        start_time = time.time()

        output_root = prepare_output_root(self.output_folder)
        context = BackupContext(client=self.client, output_root=output_root, options=self.options)
        self.logger.info(f"Backing up to {output_root}")

        log_section("Listing boards")
        selected, skipped = self.filter_boards(self.client.get_boards())
        for summary in skipped:
            self.logger.info(f"Skipping board '{summary.name}'")

        log_section("Exporting boards")
        boards, board_results = self._export_boards(context, selected)
        board_results.extend(
            {'name': summary.name, 'short_link': summary.short_link, 'status': STATUS_SKIPPED}
            for summary in skipped
        )

        failed = [result for result in board_results if result['status'] == STATUS_FAILED]
        phase_stats: Dict[str, Any] = {}

        if not failed:
            log_section("Rewriting card links")
            rewriter = LinkRewriter(self.options, max_workers=self.options.board_workers, logger=self.logger)
            phase_stats['link_rewrite'] = rewriter.rewrite_all(boards)

            if not self.options.keep_json_backups:
                phase_stats['cleanup'] = self._remove_json_backups(boards)

        self.report = self.report_generator.generate_report(
            board_results,
            phase_stats,
            time.time() - start_time,
            str(output_root)
        )

        if failed:
            names = ', '.join(f"'{result['name']}'" for result in failed)
            raise BackupError(f"{len(failed)} board(s) failed: {names}. Card links were not rewritten")

        return self.report

    def _export_boards(
        self,
        context: BackupContext,
        summaries: List[TrelloBoardSummary]
    ) -> Tuple[List[TrelloBoard], List[Dict[str, Any]]]:
        """Export boards concurrently; one board failing doesn't stop the others."""
        suffixes = compute_suffixes(
            summaries,
            lambda summary: usable_board_name(summary.name, self.options).lower()
        )

        boards: List[TrelloBoard] = []
        results: List[Dict[str, Any]] = []

        with ProgressTracker(total_items=len(summaries), item_type='boards') as tracker:
            with ThreadPoolExecutor(max_workers=max(1, self.options.board_workers)) as executor:
                futures = {}
                for summary in summaries:
                    exporter = BoardExporter(context)
                    future = executor.submit(exporter.export, summary, suffixes[summary])
                    futures[future] = (summary, exporter)

                for future in as_completed(futures):
                    summary, exporter = futures[future]
                    result = {'name': summary.name, 'short_link': summary.short_link}
                    try:
                        boards.append(future.result())
                        result.update(status=STATUS_EXPORTED, **exporter.stats)
                        tracker.increment(success=True, label=f"Board '{summary.name}'")
                    except Exception as e:
                        self.logger.error(f"Failed to export board '{summary.name}': {e}", exc_info=True)
                        result.update(status=STATUS_FAILED, error=str(e), **exporter.stats)
                        tracker.increment(success=False, label=f"Board '{summary.name}'")
                    results.append(result)

        return boards, results

    def _remove_json_backups(self, boards: List[TrelloBoard]) -> Dict[str, int]:
        removed = 0
        for board in boards:
            if board.backup_path and os.path.exists(board.backup_path):
                os.remove(board.backup_path)
                removed += 1
        self.logger.info(f"Removed {removed} raw JSON backups")
        return {'json_backups_removed': removed}
