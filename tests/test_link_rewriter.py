"""Tests for finding card URLs and rewriting them to relative links."""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from exporters.link_rewriter import LinkRewriter, find_card_urls
from models import BackupOptions, TrelloBoard, TrelloCard

CARD_URL_TEXT = """
    Document in a card somewhere (https://trello.com/c/aa11BB22/146-animating-in-blender)
    complete https://trello.com/c/aa11BB22
    complete https://trello.com/c/aa11BB22
    complete https://trello.com/c/Aa11BB22.
    https://trello.com/c/aa11BB22
    https://trello.com/c/aa11BB22/
    complete https://trello.com/c/aa11BB22/
    https://trello.com/c/aa11BB22/146-animating-in-blender/
    https://trello.com/c/aa11BB22/146-animating-in-blender/. This sentence continues.
    https://trello.com/c/aa11BB22/7-test-card-%E2%9D%A4-%F0%9F%92%A4
    https://trello.com/c/aa11BB22/7-test-card-%E2%9D%A4-%F0%9F%92%A4-%E2%9A%A1
    https://trello.com/c/aa11BB22/7-test-card-%E2%9D%A4-%F0%9F%92%A4-%E2%9A%A1-%F0%9F%9A%AB
"""


class TestFindCardUrls(unittest.TestCase):
    def test_finds_every_variant(self):
        self.assertEqual(find_card_urls(CARD_URL_TEXT), [
            "https://trello.com/c/aa11BB22/146-animating-in-blender",
            "https://trello.com/c/aa11BB22",
            "https://trello.com/c/aa11BB22",
            "https://trello.com/c/Aa11BB22",
            "https://trello.com/c/aa11BB22",
            "https://trello.com/c/aa11BB22/",
            "https://trello.com/c/aa11BB22/",
            "https://trello.com/c/aa11BB22/146-animating-in-blender/",
            "https://trello.com/c/aa11BB22/146-animating-in-blender/",
            "https://trello.com/c/aa11BB22/7-test-card-%E2%9D%A4-%F0%9F%92%A4",
            "https://trello.com/c/aa11BB22/7-test-card-%E2%9D%A4-%F0%9F%92%A4-%E2%9A%A1",
            "https://trello.com/c/aa11BB22/7-test-card-%E2%9D%A4-%F0%9F%92%A4-%E2%9A%A1-%F0%9F%9A%AB",
        ])

    def test_ignores_board_urls_and_other_hosts(self):
        self.assertEqual(find_card_urls("https://trello.com/b/abc/board https://example.com/c/abc"), [])


class LinkRewriterTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

        self.board_a = TrelloBoard(id='ba', name='Board A', short_link='boardA')
        self.board_b = TrelloBoard(id='bb', name='Board B', short_link='boardB')
        self.source = self.make_card(self.board_a, 'src1', 'Source card', '0 List/0 Source card.md')
        self.target = self.make_card(self.board_b, 'dst1', 'Target card', '1 Other list/3 Target card.md')

    def tearDown(self):
        self._tmp.cleanup()

    def make_card(self, board, short_link, name, relative_path):
        card = TrelloCard(id=short_link, name=name, id_list='l', short_link=short_link, board=board)
        path = self.root / board.name / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"# {name}\n\nOriginal URL: https://trello.com/c/{short_link}\n", encoding='utf-8')
        card.description_path = str(path)
        board.cards.append(card)
        return card

    def rewrite(self, text, **options):
        options.setdefault('always_use_forward_slashes', True)
        rewriter = LinkRewriter(BackupOptions(**options))
        index = rewriter.build_index([self.board_a, self.board_b])
        current_dir = str(Path(self.source.description_path).parent)
        return rewriter.rewrite_text(text, self.source, current_dir, index)


class TestRewriteText(LinkRewriterTestCase):
    expected_link = '[Target card](../../Board%20B/1%20Other%20list/3%20Target%20card.md)'

    def test_rewrites_reference_to_other_card(self):
        text = "See https://trello.com/c/dst1/12-target-card."
        self.assertEqual(self.rewrite(text), f"See {self.expected_link}.")

    def test_self_reference_is_left_alone(self):
        text = "Original URL: https://trello.com/c/src1"
        self.assertEqual(self.rewrite(text), text)

    def test_unknown_and_differently_cased_short_links_are_left_alone(self):
        text = "https://trello.com/c/nope123 https://trello.com/c/DST1"
        self.assertEqual(self.rewrite(text), text)

    def test_excluded_board_by_name_or_short_link(self):
        text = "https://trello.com/c/dst1"
        self.assertEqual(self.rewrite(text, link_exclude_boards=['Board B']), text)
        self.assertEqual(self.rewrite(text, link_exclude_boards=['boardB']), text)

    def test_markdown_link_target_is_replaced_by_path(self):
        text = "[the target](https://trello.com/c/dst1)"
        self.assertEqual(
            self.rewrite(text),
            "[the target](../../Board%20B/1%20Other%20list/3%20Target%20card.md)"
        )

    def test_pasted_card_link_with_title_becomes_single_link(self):
        text = 'See [https://trello.com/c/dst1](https://trello.com/c/dst1 "smartCard-inline") now'
        self.assertEqual(self.rewrite(text), f"See {self.expected_link} now")

    def test_titled_link_with_own_label_keeps_label_and_title(self):
        text = '[next step](https://trello.com/c/dst1/12-target-card "details")'
        self.assertEqual(
            self.rewrite(text),
            '[next step](../../Board%20B/1%20Other%20list/3%20Target%20card.md "details")'
        )

    def test_pasted_link_to_unknown_card_is_left_alone(self):
        text = '[https://trello.com/c/nope123](https://trello.com/c/nope123 "smartCard-inline")'
        self.assertEqual(self.rewrite(text), text)


class TestRewriteAll(LinkRewriterTestCase):
    def test_rewrites_files_with_cross_references(self):
        path = Path(self.source.description_path)
        path.write_text(path.read_text(encoding='utf-8') + "\nNext: https://trello.com/c/dst1\n", encoding='utf-8')

        stats = LinkRewriter(BackupOptions(always_use_forward_slashes=True)).rewrite_all([self.board_a, self.board_b])

        self.assertEqual(stats['files_rewritten'], 1)
        content = path.read_text(encoding='utf-8')
        self.assertIn('Next: [Target card](../../Board%20B/1%20Other%20list/3%20Target%20card.md)', content)
        self.assertIn('Original URL: https://trello.com/c/src1', content)

    def test_files_without_cross_references_are_not_written(self):
        before = Path(self.source.description_path).read_text(encoding='utf-8')

        with patch('pathlib.Path.write_text') as write_text:
            stats = LinkRewriter(BackupOptions()).rewrite_all([self.board_a, self.board_b])

        write_text.assert_not_called()
        self.assertEqual(stats['files_rewritten'], 0)
        self.assertEqual(Path(self.source.description_path).read_text(encoding='utf-8'), before)


if __name__ == '__main__':
    unittest.main()
