"""Tests for the per-card Markdown files."""

import tempfile
import unittest
from pathlib import Path

from exporters.card_exporter import COMMENT_SEPARATOR, CardExporter
from models import BackupContext, BackupOptions, TrelloAction, TrelloBoard
from trello_fakes import FakeTrelloClient, attachment_json, board_json, card_json, comment_json, list_json

PHOTO_URL = 'https://trello.com/1/cards/c1/attachments/att1/download/photo.png'


def make_board():
    return TrelloBoard.from_dict(board_json(
        'b1', 'Roadmap', 'bsl',
        lists=[list_json('l1', 'Doing')],
        cards=[
            card_json(
                'c1', 'Card', 'l1',
                desc=f"Screenshot: {PHOTO_URL}",
                id_checklists=['k1'],
                attachments=[attachment_json('att1', 'photo.png', PHOTO_URL)]
            ),
            card_json('c2', 'Bare', 'l1')
        ],
        checklists=[{'id': 'k1', 'idCard': 'c1', 'name': 'Todo', 'pos': 1, 'checkItems': [
            {'id': 'i2', 'name': 'two', 'pos': 2, 'state': 'incomplete'},
            {'id': 'i1', 'name': 'one', 'pos': 1, 'state': 'complete'}
        ]}]
    ))


def make_comments():
    return [
        TrelloAction.from_dict(comment_json('a2', 'c1', 'second', '2024-02-01T00:00:00.000Z')),
        TrelloAction.from_dict(comment_json('a1', 'c1', f"first, see {PHOTO_URL}", '2024-01-01T00:00:00.000Z'))
    ]


class CardExporterTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.folder = Path(self._tmp.name)
        self.board = make_board()
        self.client = FakeTrelloClient(attachments={PHOTO_URL: b'png'})

    def tearDown(self):
        self._tmp.cleanup()

    def make_exporter(self, **options):
        options.setdefault('always_use_forward_slashes', True)
        context = BackupContext(client=self.client, output_root=self.folder, options=BackupOptions(**options))
        return CardExporter(context, self.board)

    def read(self, name):
        return (self.folder / name).read_text(encoding='utf-8')


class TestMultiFileExport(CardExporterTestCase):
    def test_writes_one_file_per_section(self):
        card = self.make_exporter().export(self.board.cards[0], 0, self.folder, '', make_comments())

        self.assertEqual(
            self.read('0 Card.md'),
            "# Card\n\nOriginal URL: https://trello.com/c/slc1\n\n---\n\n"
            "Screenshot: ./0%20Card%20-%20Attachments/att1.png"
        )
        self.assertEqual(
            self.read('0 Card - Checklists.md'),
            "# Card - Checklists\n\n## Todo\n\n- [x] one\n- [ ] two\n\n"
        )
        self.assertEqual(
            self.read('0 Card - Comments.md'),
            f"# Card - Comments\n\n{COMMENT_SEPARATOR}\n\nfirst, see ./0%20Card%20-%20Attachments/att1.png\n\n"
            f"{COMMENT_SEPARATOR}\n\nsecond\n\n"
        )
        self.assertEqual(
            self.read('0 Card - Attachments.md'),
            "# Card - Attachments\n\n"
            "id | original fileName | relative downloaded path\n"
            "---|---|---\n"
            "att1 | photo.png | [./0 Card - Attachments/att1.png](./0%20Card%20-%20Attachments/att1.png)\n"
        )
        self.assertTrue((self.folder / '0 Card - Attachments' / 'att1.png').exists())
        self.assertEqual(card.description_path, str(self.folder / '0 Card.md'))
        self.assertEqual(len(card.output_paths()), 4)

    def test_card_without_sections_writes_only_description(self):
        card = self.make_exporter().export(self.board.cards[1], 1, self.folder, '', [])

        self.assertEqual(sorted(path.name for path in self.folder.iterdir()), ['1 Bare.md'])
        self.assertEqual(card.output_paths(), [str(self.folder / '1 Bare.md')])
        self.assertEqual(card.comments_path, '')

    def test_stem_without_numbering_and_with_suffix(self):
        exporter = self.make_exporter(numbering=False)
        self.assertEqual(exporter.stem_for(self.board.cards[1], 4, '2'), 'Bare 2')
        self.assertEqual(self.make_exporter().stem_for(self.board.cards[1], 4, '2'), '4 Bare 2')


class TestSingleFileExport(CardExporterTestCase):
    def test_sections_are_appended_to_description(self):
        card = self.make_exporter(single_file=True).export(self.board.cards[0], 0, self.folder, '', make_comments())

        self.assertEqual(
            self.read('0 Card.md'),
            "# Card\n\nOriginal URL: https://trello.com/c/slc1\n\n---\n\n"
            "Screenshot: ./0%20Card%20-%20Attachments/att1.png"
            "\n\n## Todo\n\n- [x] one\n- [ ] two\n\n"
            "\n\nid | original fileName | relative downloaded path\n"
            "---|---|---\n"
            "att1 | photo.png | [./0 Card - Attachments/att1.png](./0%20Card%20-%20Attachments/att1.png)\n"
            f"\n\n{COMMENT_SEPARATOR}\n\nfirst, see ./0%20Card%20-%20Attachments/att1.png\n\n"
            f"{COMMENT_SEPARATOR}\n\nsecond\n\n"
        )
        self.assertEqual(card.output_paths(), [str(self.folder / '0 Card.md')])
        self.assertEqual(
            sorted(path.name for path in self.folder.iterdir()),
            ['0 Card - Attachments', '0 Card.md']
        )


if __name__ == '__main__':
    unittest.main()
