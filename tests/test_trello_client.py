"""Tests for the Trello REST client against a mocked HTTP session."""

import json
import os
import tempfile
import unittest
from unittest.mock import MagicMock, Mock

import requests

from models import BoardParseError
from trello_client import API_BASE_URL, TrelloClient
from trello_fakes import board_json, comment_json


def make_response(payload=None, content=None, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.text = ''
    if payload is not None:
        response.json.return_value = payload
    if content is not None:
        response.content = content
    if status_code >= 400:
        response.text = 'error'
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Error", response=response
        )
    return response


class TestTrelloClient(unittest.TestCase):
    def setUp(self):
        self.rate_limiter = Mock()
        self.client = TrelloClient('my-key', 'my-token', self.rate_limiter)

    def use_responses(self, *responses):
        self.client.session = Mock()
        self.client.session.request.side_effect = list(responses)

    def test_authorization_header(self):
        self.assertEqual(
            self.client.session.headers['Authorization'],
            'OAuth oauth_consumer_key="my-key", oauth_token="my-token"'
        )

    def test_requires_credentials(self):
        with self.assertRaises(ValueError):
            TrelloClient('', 'token', self.rate_limiter)

    def test_get_boards(self):
        self.use_responses(make_response([
            {'id': 'b1', 'name': 'Roadmap', 'shortLink': 'abc'},
            {'id': 'b2', 'name': 'Reading', 'shortLink': 'def'}
        ]))

        boards = self.client.get_boards()

        self.assertEqual([(board.name, board.short_link) for board in boards], [('Roadmap', 'abc'), ('Reading', 'def')])
        args, kwargs = self.client.session.request.call_args
        self.assertEqual(args, ('GET', f'{API_BASE_URL}/members/me/boards'))
        self.assertEqual(kwargs['params']['limit'], 1000)
        self.rate_limiter.acquire.assert_called_once()

    def test_get_boards_rejects_missing_short_link(self):
        self.use_responses(make_response([{'id': 'b1', 'name': 'Roadmap'}]))
        with self.assertRaises(BoardParseError):
            self.client.get_boards()

    def test_malformed_json(self):
        response = make_response()
        response.json.side_effect = ValueError('Expecting value')
        self.use_responses(response)
        with self.assertRaises(BoardParseError):
            self.client.get_boards()

    def test_get_board_backup_returns_raw_payload(self):
        raw = json.dumps(board_json('b1', 'Roadmap', 'abc')).encode('utf-8')
        self.use_responses(make_response(content=raw))

        self.assertEqual(self.client.get_board_backup('abc'), raw)
        self.assertEqual(self.client.session.request.call_args[0][1], 'https://trello.com/b/abc.json')

    def test_get_board_backup_does_not_parse(self):
        self.use_responses(make_response(content=b'{not json'))
        self.assertEqual(self.client.get_board_backup('abc'), b'{not json')

    def test_comment_pagination(self):
        self.use_responses(
            make_response([
                comment_json('a3', 'c1', 'newest', '2024-01-03T10:00:00.000Z'),
                comment_json('a2', 'c1', 'middle', '2024-01-02T10:00:00.000Z')
            ]),
            make_response([comment_json('a1', 'c2', 'oldest', '2024-01-01T10:00:00.000Z')]),
            make_response([])
        )

        comments = self.client.get_board_comments('b1')

        self.assertEqual([comment.id for comment in comments], ['a3', 'a2', 'a1'])
        calls = self.client.session.request.call_args_list
        self.assertEqual(len(calls), 3)
        self.assertNotIn('before', calls[0][1]['params'])
        self.assertEqual(calls[0][1]['params']['filter'], 'commentCard')
        self.assertEqual(calls[1][1]['params']['before'], '2024-01-02T10:00:00.000Z')
        self.assertEqual(calls[2][1]['params']['before'], '2024-01-01T10:00:00.000Z')
        self.assertEqual(self.rate_limiter.acquire.call_count, 3)

    def test_http_error_propagates_without_retry(self):
        self.use_responses(make_response(status_code=404))

        with self.assertLogs('trello_markdown_backup.client', level='ERROR'):
            with self.assertRaises(requests.exceptions.HTTPError):
                self.client.get_board_backup('missing')
        self.assertEqual(self.client.session.request.call_count, 1)

    def test_download_attachment_streams_to_file(self):
        response = make_response()
        response.iter_content.return_value = [b'ab', b'', b'cd']
        self.use_responses(response)

        with tempfile.TemporaryDirectory() as tmp:
            destination = os.path.join(tmp, 'a1.png')
            written = self.client.download_attachment('https://trello.com/1/a1.png', destination)

            with open(destination, 'rb') as f:
                self.assertEqual(f.read(), b'abcd')
        self.assertEqual(written, 4)
        self.assertTrue(self.client.session.request.call_args[1]['stream'])
        response.close.assert_called_once()

    def test_from_config(self):
        client = TrelloClient.from_config(
            {'trello': {'api_key': 'k', 'api_token': 't', 'request_timeout': 5}},
            self.rate_limiter
        )
        self.assertEqual(client.timeout, 5)
        self.assertIs(client.rate_limiter, self.rate_limiter)


if __name__ == '__main__':
    unittest.main()
