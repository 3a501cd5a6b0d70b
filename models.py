"""Data models for the Trello to Markdown backup pipeline."""

import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger('trello_markdown_backup')

# Trello encodes some positions as words instead of numbers
POSITION_TOP = 'top'
POSITION_BOTTOM = 'bottom'

COMMENT_ACTION_TYPE = 'commentCard'


class BackupError(Exception):
    """Base exception for backup failures."""
    pass


class BoardParseError(BackupError):
    """Raised when a board payload is malformed or missing required fields."""
    pass


def parse_position(value: Any) -> float:
    """
    Decode a Trello position value.

    Positions arrive as numbers, numbers in strings, or the words "top" and
    "bottom". "bottom" maps to the largest float minus one so ties can still
    sort after it; "top" maps to zero.

    Args:
        value: Raw JSON value

    Returns:
        Position as a float

    Raises:
        BoardParseError: If the value can't be read as a position
    """
    if value is None:
        return 0.0

    if isinstance(value, bool):
        raise BoardParseError(f"Couldn't parse `{value}` as a position")

    if isinstance(value, (int, float)):
        return float(value)

    if isinstance(value, str):
        if value == POSITION_BOTTOM:
            return sys.float_info.max - 1
        if value == POSITION_TOP:
            return 0.0
        try:
            return float(value)
        except ValueError:
            raise BoardParseError(
                f"Couldn't parse the string `{value}` as a number or as one of Trello's positions"
            )

    raise BoardParseError(f"Couldn't parse `{value!r}` as a position")


def coerce_text(value: Any) -> str:
    """Read a JSON value that should be a string, tolerating booleans and numbers."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value
    raise BoardParseError(f"Expected text, got {type(value).__name__}")


def _fields(data: Any) -> Dict[str, Any]:
    """Lower-case the keys of a JSON object so lookups ignore case."""
    if not isinstance(data, dict):
        raise BoardParseError(f"Expected a JSON object, got {type(data).__name__}")
    return {str(key).lower(): value for key, value in data.items()}


def _objects(value: Any) -> List[Any]:
    """Read an optional JSON array."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise BoardParseError(f"Expected a JSON array, got {type(value).__name__}")
    return value


class Nameable(Protocol):
    """Anything that gets an output name: lists and cards."""

    name: str
    closed: bool


@dataclass(eq=False)
class TrelloBoardSummary:
    """A board as listed by /members/me/boards."""

    name: str
    short_link: str
    id: str = ''

    def required_fields_filled(self) -> bool:
        return bool(self.name and self.short_link)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrelloBoardSummary':
        fields = _fields(data)
        return cls(
            name=coerce_text(fields.get('name')),
            short_link=coerce_text(fields.get('shortlink')),
            id=coerce_text(fields.get('id'))
        )


@dataclass(eq=False)
class TrelloAttachment:
    """A card attachment, plus where we saved it."""

    id: str
    name: str
    url: str
    file_name: str = ''
    is_upload: bool = False
    # relative to the card's folder, spaces encoded. Written once after download
    local_path: str = ''
    download_failed: bool = False

    def required_fields_filled(self) -> bool:
        return bool(self.name and self.url and self.id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrelloAttachment':
        fields = _fields(data)
        return cls(
            id=coerce_text(fields.get('id')),
            name=coerce_text(fields.get('name')),
            url=coerce_text(fields.get('url')),
            file_name=coerce_text(fields.get('filename')),
            is_upload=bool(fields.get('isupload', False))
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'url': self.url,
            'file_name': self.file_name,
            'is_upload': self.is_upload,
            'local_path': self.local_path,
            'download_failed': self.download_failed
        }


@dataclass
class TrelloCheckItem:
    """One entry of a checklist."""

    id: str
    name: str
    id_checklist: str = ''
    pos: float = 0.0
    state: str = ''

    @property
    def is_complete(self) -> bool:
        return self.state == 'complete'

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrelloCheckItem':
        fields = _fields(data)
        return cls(
            id=coerce_text(fields.get('id')),
            name=coerce_text(fields.get('name')),
            id_checklist=coerce_text(fields.get('idchecklist')),
            pos=parse_position(fields.get('pos')),
            state=coerce_text(fields.get('state'))
        )


@dataclass
class TrelloChecklist:
    """A checklist. Stored at board level and linked to cards by ID."""

    id: str
    name: str
    id_card: str = ''
    pos: float = 0.0
    check_items: List[TrelloCheckItem] = field(default_factory=list)

    def ordered_items(self) -> List[TrelloCheckItem]:
        return sorted(self.check_items, key=lambda item: item.pos)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrelloChecklist':
        fields = _fields(data)
        return cls(
            id=coerce_text(fields.get('id')),
            name=coerce_text(fields.get('name')),
            id_card=coerce_text(fields.get('idcard')),
            pos=parse_position(fields.get('pos')),
            check_items=[TrelloCheckItem.from_dict(item) for item in _objects(fields.get('checkitems'))]
        )


@dataclass
class TrelloAction:
    """A board action. Only comments are kept."""

    id: str
    type: str
    date: str  # ISO 8601, sorts as a string
    card_id: str = ''
    text: str = ''

    @property
    def is_comment(self) -> bool:
        return self.type == COMMENT_ACTION_TYPE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrelloAction':
        fields = _fields(data)
        action_data = _fields(fields.get('data') or {})
        card_data = _fields(action_data.get('card') or {})
        return cls(
            id=coerce_text(fields.get('id')),
            type=coerce_text(fields.get('type')),
            date=coerce_text(fields.get('date')),
            card_id=coerce_text(card_data.get('id')),
            text=coerce_text(action_data.get('text'))
        )


@dataclass(eq=False)
class TrelloList:
    """A list (column) plus the folders created for it during export."""

    id: str
    name: str
    pos: float = 0.0
    closed: bool = False
    folder_path: str = ''
    archive_folder_path: str = ''
    # running per-list card numbering. Only touched by the board's dispatch loop
    non_archived_card_index: int = 0
    archived_card_index: int = 0

    def required_fields_filled(self) -> bool:
        return bool(self.name and self.id)

    def next_card_index(self, archived: bool) -> int:
        """Hand out the next card number for the archived or non-archived folder."""
        if archived:
            index = self.archived_card_index
            self.archived_card_index += 1
        else:
            index = self.non_archived_card_index
            self.non_archived_card_index += 1
        return index

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrelloList':
        fields = _fields(data)
        return cls(
            id=coerce_text(fields.get('id')),
            name=coerce_text(fields.get('name')),
            pos=parse_position(fields.get('pos')),
            closed=bool(fields.get('closed', False))
        )


@dataclass(eq=False)
class TrelloCard:
    """A card plus the files written for it during export."""

    id: str
    name: str
    id_list: str
    desc: str = ''
    pos: float = 0.0
    closed: bool = False
    short_link: str = ''
    short_url: str = ''
    id_checklists: List[str] = field(default_factory=list)
    attachments: List[TrelloAttachment] = field(default_factory=list)
    # output paths, '' means the file wasn't written
    description_path: str = ''
    comments_path: str = ''
    checklists_path: str = ''
    attachments_path: str = ''
    board: Optional['TrelloBoard'] = field(default=None, repr=False)

    def required_fields_filled(self) -> bool:
        return bool(self.name and self.id and self.id_list)

    @property
    def uploaded_attachments(self) -> List[TrelloAttachment]:
        """Direct file uploads only, not pasted links."""
        return [attachment for attachment in self.attachments if attachment.is_upload]

    def output_paths(self) -> List[str]:
        """Distinct, non-empty paths of every file written for this card."""
        paths = []
        for path in (self.description_path, self.checklists_path, self.attachments_path, self.comments_path):
            if path and path not in paths:
                paths.append(path)
        return paths

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrelloCard':
        fields = _fields(data)
        return cls(
            id=coerce_text(fields.get('id')),
            name=coerce_text(fields.get('name')),
            id_list=coerce_text(fields.get('idlist')),
            desc=coerce_text(fields.get('desc')),
            pos=parse_position(fields.get('pos')),
            closed=bool(fields.get('closed', False)),
            short_link=coerce_text(fields.get('shortlink')),
            short_url=coerce_text(fields.get('shorturl')),
            id_checklists=[coerce_text(checklist_id) for checklist_id in _objects(fields.get('idchecklists'))],
            attachments=[TrelloAttachment.from_dict(item) for item in _objects(fields.get('attachments'))]
        )


@dataclass(eq=False)
class TrelloBoard:
    """A full board backup, as downloaded from trello.com/b/<shortLink>.json."""

    id: str
    name: str
    short_link: str
    lists: List[TrelloList] = field(default_factory=list)
    cards: List[TrelloCard] = field(default_factory=list)
    checklists: List[TrelloChecklist] = field(default_factory=list)
    actions: List[TrelloAction] = field(default_factory=list)
    # set by the board export
    folder_path: str = ''
    backup_path: str = ''

    def required_fields_filled(self) -> bool:
        return bool(self.name and self.short_link)

    def get_list(self, list_id: str) -> Optional[TrelloList]:
        for trello_list in self.lists:
            if trello_list.id == list_id:
                return trello_list
        return None

    def checklists_for_card(self, card: TrelloCard) -> List[TrelloChecklist]:
        """Checklists belonging to a card, in their position order."""
        wanted = set(card.id_checklists)
        return sorted(
            (checklist for checklist in self.checklists if checklist.id in wanted),
            key=lambda checklist: checklist.pos
        )

    def sorted_lists(self) -> List[TrelloList]:
        # sorted() is stable so equal positions keep their source order
        return sorted(self.lists, key=lambda trello_list: trello_list.pos)

    def sorted_cards(self) -> List[TrelloCard]:
        return sorted(self.cards, key=lambda card: card.pos)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrelloBoard':
        """
        Build a board from its parsed backup JSON.

        Raises:
            BoardParseError: If the board, a list or a card is missing required fields
        """
        fields = _fields(data)
        board = cls(
            id=coerce_text(fields.get('id')),
            name=coerce_text(fields.get('name')),
            short_link=coerce_text(fields.get('shortlink')),
            lists=[TrelloList.from_dict(item) for item in _objects(fields.get('lists'))],
            cards=[TrelloCard.from_dict(item) for item in _objects(fields.get('cards'))],
            checklists=[TrelloChecklist.from_dict(item) for item in _objects(fields.get('checklists'))],
            actions=[
                action for action in (TrelloAction.from_dict(item) for item in _objects(fields.get('actions')))
                if action.is_comment
            ]
        )

        if not board.required_fields_filled():
            raise BoardParseError("Board is missing required properties (name, shortLink)")
        for trello_list in board.lists:
            if not trello_list.required_fields_filled():
                raise BoardParseError(f"A list in board '{board.name}' is missing required properties")
        for card in board.cards:
            if not card.required_fields_filled():
                raise BoardParseError(f"A card in board '{board.name}' is missing required properties")
            card.board = board

        return board

    @classmethod
    def from_json(cls, payload: bytes) -> 'TrelloBoard':
        """Parse a raw backup payload."""
        try:
            data = json.loads(payload)
        except ValueError as e:
            raise BoardParseError(f"Board backup is not valid JSON: {e}")
        return cls.from_dict(data)


@dataclass
class BackupOptions:
    """Plain configuration record consumed by the export pipeline."""

    max_card_filename_title_length: int = 40
    remove_emoji: bool = False
    always_use_forward_slashes: bool = False
    single_file: bool = False
    numbering: bool = True
    ignore_failed_attachment_downloads: bool = False
    rate_limit: int = 10
    include_boards: List[str] = field(default_factory=list)
    exclude_boards: List[str] = field(default_factory=list)
    link_exclude_boards: List[str] = field(default_factory=list)
    scope_duplicates_by_archived_state: bool = True
    keep_json_backups: bool = True
    board_workers: int = 4
    card_workers: int = 8

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'BackupOptions':
        """Read the options out of a loaded configuration dictionary."""
        export_config = config.get('export', {}) or {}
        boards_config = config.get('boards', {}) or {}
        links_config = config.get('links', {}) or {}
        concurrency_config = config.get('concurrency', {}) or {}
        defaults = cls()

        return cls(
            max_card_filename_title_length=export_config.get(
                'max_card_filename_title_length', defaults.max_card_filename_title_length
            ),
            remove_emoji=export_config.get('remove_emoji', defaults.remove_emoji),
            always_use_forward_slashes=export_config.get(
                'always_use_forward_slashes', defaults.always_use_forward_slashes
            ),
            single_file=export_config.get('single_file', defaults.single_file),
            numbering=export_config.get('numbering', defaults.numbering),
            ignore_failed_attachment_downloads=export_config.get(
                'ignore_failed_attachment_downloads', defaults.ignore_failed_attachment_downloads
            ),
            scope_duplicates_by_archived_state=export_config.get(
                'scope_duplicates_by_archived_state', defaults.scope_duplicates_by_archived_state
            ),
            keep_json_backups=export_config.get('keep_json_backups', defaults.keep_json_backups),
            rate_limit=concurrency_config.get('rate_limit', defaults.rate_limit),
            board_workers=concurrency_config.get('board_workers', defaults.board_workers),
            card_workers=concurrency_config.get('card_workers', defaults.card_workers),
            include_boards=list(boards_config.get('include') or []),
            exclude_boards=list(boards_config.get('exclude') or []),
            link_exclude_boards=list(links_config.get('exclude_boards') or [])
        )


@dataclass
class BackupContext:
    """Everything a board or card export needs, passed explicitly instead of held in globals."""

    client: Any  # TrelloClient
    output_root: Path
    options: BackupOptions = field(default_factory=BackupOptions)


__all__ = [
    'BackupContext',
    'BackupError',
    'BackupOptions',
    'BoardParseError',
    'COMMENT_ACTION_TYPE',
    'Nameable',
    'TrelloAction',
    'TrelloAttachment',
    'TrelloBoard',
    'TrelloBoardSummary',
    'TrelloCard',
    'TrelloCheckItem',
    'TrelloChecklist',
    'TrelloList',
    'coerce_text',
    'parse_position'
]
