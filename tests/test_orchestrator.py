"""End-to-end tests for a backup run against the fake Trello client."""

import tempfile
import unittest
from pathlib import Path

from models import BackupError, BackupOptions
from orchestrator import BackupOrchestrator, BackupReport
from orchestrator.backup_report import STATUS_EXPORTED, STATUS_FAILED, STATUS_SKIPPED
from trello_fakes import FakeTrelloClient, board_json, card_json, list_json


def alpha_board():
    return board_json(
        'ba', 'Alpha', 'alpha',
        lists=[list_json('la', 'L')],
        cards=[card_json('ca', 'Task', 'la', short_link='taskA', desc="Follow up in https://trello.com/c/targetB")]
    )


def beta_board():
    return board_json(
        'bb', 'Beta', 'beta',
        lists=[list_json('lb', 'L')],
        cards=[card_json('cb', 'Target', 'lb', short_link='targetB', desc="Back to https://trello.com/c/taskA/1-task")]
    )


class TestBackupOrchestrator(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.output = Path(self._tmp.name)
        self.root = self.output / 't2md'

    def tearDown(self):
        self._tmp.cleanup()

    def run_backup(self, client, **options):
        orchestrator = BackupOrchestrator(client, self.output, BackupOptions(**options))
        return orchestrator, orchestrator.run()

    def test_exports_boards_and_rewrites_links_between_them(self):
        _, report = self.run_backup(FakeTrelloClient(boards=[alpha_board(), beta_board()]))

        task = (self.root / 'Alpha' / '0 L' / '0 Task.md').read_text(encoding='utf-8')
        target = (self.root / 'Beta' / '0 L' / '0 Target.md').read_text(encoding='utf-8')
        self.assertIn('Follow up in [Target](../../Beta/0%20L/0%20Target.md)', task)
        self.assertIn('Back to [Task](../../Alpha/0%20L/0%20Task.md)', target)
        self.assertIn('Original URL: https://trello.com/c/taskA', task)

        self.assertEqual(report['summary']['boards_exported'], 2)
        self.assertEqual(report['summary']['cards'], 2)
        self.assertEqual(report['phases']['link_rewrite']['files_rewritten'], 2)

    def test_json_backups_kept_by_default(self):
        self.run_backup(FakeTrelloClient(boards=[alpha_board()]))
        self.assertTrue((self.root / 'Alpha.json').exists())

        _, report = self.run_backup(FakeTrelloClient(boards=[alpha_board()]), keep_json_backups=False)
        self.assertFalse((self.root / 'Alpha.json').exists())
        self.assertEqual(report['phases']['cleanup'], {'json_backups_removed': 1})

    def test_previous_output_is_deleted(self):
        self.root.mkdir()
        (self.root / 'stale.md').write_text('old', encoding='utf-8')

        self.run_backup(FakeTrelloClient(boards=[alpha_board()]))

        self.assertFalse((self.root / 'stale.md').exists())
        self.assertTrue((self.root / 'Alpha').is_dir())

    def test_failed_board_fails_run_and_skips_link_rewrite(self):
        client = FakeTrelloClient(boards=[alpha_board(), beta_board()], failing_boards=['beta'])
        orchestrator = BackupOrchestrator(client, self.output, BackupOptions())

        with self.assertLogs('trello_markdown_backup.orchestrator', level='ERROR'):
            with self.assertRaises(BackupError) as raised:
                orchestrator.run()

        self.assertIn('Beta', str(raised.exception))
        task = (self.root / 'Alpha' / '0 L' / '0 Task.md').read_text(encoding='utf-8')
        self.assertIn('https://trello.com/c/targetB', task)
        self.assertTrue((self.root / 'Alpha.json').exists())

        statuses = {result['name']: result['status'] for result in orchestrator.report['boards']}
        self.assertEqual(statuses, {'Alpha': STATUS_EXPORTED, 'Beta': STATUS_FAILED})
        self.assertNotIn('link_rewrite', orchestrator.report['phases'])

    def test_include_and_exclude_filters(self):
        client = FakeTrelloClient(boards=[alpha_board(), beta_board()])

        orchestrator, report = self.run_backup(client, include_boards=['alpha'])
        statuses = {result['name']: result['status'] for result in report['boards']}
        self.assertEqual(statuses, {'Alpha': STATUS_EXPORTED, 'Beta': STATUS_SKIPPED})
        self.assertFalse((self.root / 'Beta').exists())

        _, report = self.run_backup(client, exclude_boards=['Alpha'])
        statuses = {result['name']: result['status'] for result in report['boards']}
        self.assertEqual(statuses, {'Alpha': STATUS_SKIPPED, 'Beta': STATUS_EXPORTED})

    def test_unknown_included_board_is_reported(self):
        client = FakeTrelloClient(boards=[alpha_board()])
        orchestrator = BackupOrchestrator(client, self.output, BackupOptions(include_boards=['Gamma']))

        with self.assertLogs('trello_markdown_backup.orchestrator', level='WARNING') as logs:
            selected, skipped = orchestrator.filter_boards(client.get_boards())

        self.assertEqual(selected, [])
        self.assertEqual(len(skipped), 1)
        self.assertIn('Gamma', logs.output[0])

    def test_boards_with_the_same_name_get_suffixes(self):
        first = alpha_board()
        second = board_json('bc', 'Alpha', 'alpha2', lists=[list_json('lc', 'L')])
        self.run_backup(FakeTrelloClient(boards=[first, second]), keep_json_backups=True)

        self.assertTrue((self.root / 'Alpha 1' / '0 L' / '0 Task.md').is_file())
        self.assertTrue((self.root / 'Alpha 2' / '0 L').is_dir())
        self.assertTrue((self.root / 'Alpha 1.json').is_file())


class TestBackupReport(unittest.TestCase):
    def test_summary_and_console_output(self):
        generator = BackupReport()
        report = generator.generate_report(
            [
                {'name': 'Alpha', 'status': STATUS_EXPORTED, 'lists': 2, 'cards': 5, 'archived_cards': 1, 'comments': 3},
                {'name': 'Beta', 'status': STATUS_FAILED, 'error': 'HTTP 500', 'lists': 1, 'cards': 0},
                {'name': 'Gamma', 'status': STATUS_SKIPPED}
            ],
            {},
            75.0,
            '/tmp/out/t2md'
        )

        summary = report['summary']
        self.assertEqual(
            (summary['boards_total'], summary['boards_exported'], summary['boards_failed'], summary['boards_skipped']),
            (3, 1, 1, 1)
        )
        self.assertEqual((summary['lists'], summary['cards'], summary['comments']), (2, 5, 3))
        self.assertEqual(summary['duration_formatted'], '1m 15s')
        self.assertEqual(report['errors'], [{'board': 'Beta', 'error': 'HTTP 500'}])

        text = generator.format_console_report(report)
        self.assertIn('Boards: 1/3 exported, 1 skipped, 1 failed', text)
        self.assertIn('Beta: HTTP 500', text)
        self.assertIn('Card links were not rewritten', text)


if __name__ == '__main__':
    unittest.main()
