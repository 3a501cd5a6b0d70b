"""
Backup report generator.

Aggregates per-board statistics and the link-rewrite phase into one report,
formatted for the console or written out as JSON.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

STATUS_EXPORTED = 'exported'
STATUS_FAILED = 'failed'
STATUS_SKIPPED = 'skipped'


class BackupReport:
    """Builds the end-of-run report."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger('trello_markdown_backup.orchestrator.report')

    def generate_report(
        self,
        board_results: List[Dict[str, Any]],
        phase_stats: Dict[str, Any],
        duration: float,
        output_root: str
    ) -> Dict[str, Any]:
        """
        Generate the run report.

        Args:
            board_results: One entry per listed board (name, status, counts, error)
            phase_stats: Statistics of the link rewrite and cleanup phases
            duration: Run duration in seconds
            output_root: Where the backup was written

        Returns:
            Report dictionary
        """
        report = {
            'summary': self._build_summary(board_results, duration),
            'boards': board_results,
            'phases': phase_stats,
            'errors': [
                {'board': result['name'], 'error': result['error']}
                for result in board_results if result.get('status') == STATUS_FAILED
            ],
            'output_root': output_root,
            'timestamp': datetime.now().isoformat()
        }

        self.logger.debug(
            f"Report generated: {report['summary']['boards_exported']} boards, "
            f"{report['summary']['boards_failed']} failed"
        )
        return report

    def _build_summary(self, board_results: List[Dict[str, Any]], duration: float) -> Dict[str, Any]:
        exported = [result for result in board_results if result.get('status') == STATUS_EXPORTED]
        return {
            'boards_total': len(board_results),
            'boards_exported': len(exported),
            'boards_failed': sum(1 for result in board_results if result.get('status') == STATUS_FAILED),
            'boards_skipped': sum(1 for result in board_results if result.get('status') == STATUS_SKIPPED),
            'lists': sum(result.get('lists', 0) for result in exported),
            'cards': sum(result.get('cards', 0) for result in exported),
            'archived_cards': sum(result.get('archived_cards', 0) for result in exported),
            'comments': sum(result.get('comments', 0) for result in exported),
            'duration_seconds': duration,
            'duration_formatted': self._format_duration(duration)
        }

    @staticmethod
    def _format_duration(seconds: float) -> str:
        if seconds < 60:
            return f"{seconds:.1f}s"
        minutes, seconds = divmod(int(seconds), 60)
        if minutes < 60:
            return f"{minutes}m {seconds}s"
        hours, minutes = divmod(minutes, 60)
        return f"{hours}h {minutes}m {seconds}s"

    def format_console_report(self, report: Dict[str, Any]) -> str:
        """Render the report as plain text for the terminal."""
        summary = report['summary']
        sections = [
            "=" * 60,
            "  TRELLO BACKUP REPORT",
            "=" * 60,
            "",
            f"Output: {report.get('output_root', '')}",
            f"Duration: {summary['duration_formatted']}",
            "",
            f"Boards: {summary['boards_exported']}/{summary['boards_total']} exported"
            + (f", {summary['boards_skipped']} skipped" if summary['boards_skipped'] else '')
            + (f", {summary['boards_failed']} failed" if summary['boards_failed'] else ''),
            f"Lists: {summary['lists']}",
            f"Cards: {summary['cards']} ({summary['archived_cards']} archived)",
            f"Comments: {summary['comments']}",
        ]

        links = report.get('phases', {}).get('link_rewrite')
        if links:
            sections.append(f"Files with rewritten card links: {links.get('files_rewritten', 0)}")
        elif summary['boards_failed']:
            sections.append("Card links were not rewritten because a board failed")

        if report.get('errors'):
            sections.append("")
            sections.append("Errors:")
            for error in report['errors']:
                sections.append(f"  {error['board']}: {error['error']}")

        sections.append("=" * 60)
        return "\n".join(sections)

    def export_json_report(self, report: Dict[str, Any], filepath: str) -> None:
        """
        Write the report to a JSON file.

        Args:
            report: Report dictionary
            filepath: Output file path
        """
        try:
            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(report, f, indent=2, ensure_ascii=False, default=str)
            self.logger.info(f"JSON report exported to {filepath}")
        except OSError as e:
            self.logger.error(f"Failed to export JSON report: {str(e)}")
