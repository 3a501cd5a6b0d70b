"""
Output naming: path-safe names, truncation, emoji stripping, and the suffixes
that keep colliding names apart.
"""

import os
import re
from collections import Counter
from typing import Callable, Dict, Hashable, Iterable, TypeVar

from models import BackupOptions, Nameable, TrelloCard, TrelloList

T = TypeVar('T', bound=Hashable)

# Characters rejected in file names by Windows, macOS or Linux
_INVALID_PATH_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_WHITESPACE_RUN = re.compile(r'\s+')
# Output name for anything that sanitizes to nothing
UNNAMED = 'Untitled'

_EMOJI_CHARS = (
    '\U0001F000-\U0001FAFF'
    '\u2600-\u27BF'
    '\u231A\u231B\u2328\u23CF\u23E9-\u23F3\u23F8-\u23FA'
    '\u2B05-\u2B07\u2B1B\u2B1C\u2B50\u2B55'
    '\u3030\u303D\u3297\u3299'
)
# One emoji plus its presentation selector, skin tone and any ZWJ continuation
EMOJI_PATTERN = re.compile(
    f'[{_EMOJI_CHARS}][\uFE0F\U0001F3FB-\U0001F3FF]*'
    f'(?:\u200D[{_EMOJI_CHARS}][\uFE0F\U0001F3FB-\U0001F3FF]*)*'
)


def sanitize_for_path(name: str) -> str:
    """
    Make a name safe to use as a single path component.

    Invalid characters split the name, empty pieces are dropped, the rest are
    joined with underscores, and trailing dots are trimmed.
    """
    pieces = [piece for piece in _INVALID_PATH_CHARS.split(name) if piece]
    return '_'.join(pieces).rstrip('.')


def collapse_whitespace(name: str) -> str:
    return _WHITESPACE_RUN.sub(' ', name).strip()


def remove_emoji(text: str, replacement: str = '_') -> str:
    """Replace every emoji in text with the replacement string."""
    return EMOJI_PATTERN.sub(replacement, text)


def _usable_name(name: str, options: BackupOptions) -> str:
    if options.remove_emoji:
        name = remove_emoji(name)
    return collapse_whitespace(sanitize_for_path(name)) or UNNAMED


def usable_card_name(card: TrelloCard, options: BackupOptions) -> str:
    """Card name as it appears in file names: truncated, sanitized and trimmed."""
    return _usable_name(card.name[:options.max_card_filename_title_length], options)


def usable_list_name(trello_list: TrelloList, options: BackupOptions) -> str:
    return _usable_name(trello_list.name, options)


def usable_board_name(name: str, options: BackupOptions) -> str:
    return _usable_name(name, options)


def _archived_discriminator(entity: Nameable, options: BackupOptions) -> str:
    if not options.scope_duplicates_by_archived_state:
        return ''
    return '|archived' if entity.closed else '|open'


def card_collision_key(card: TrelloCard, options: BackupOptions) -> str:
    """Cards collide when they land in the same folder with the same usable name."""
    return f"{usable_card_name(card, options).lower()}|{card.id_list}{_archived_discriminator(card, options)}"


def list_collision_key(trello_list: TrelloList, options: BackupOptions) -> str:
    return f"{usable_list_name(trello_list, options).lower()}{_archived_discriminator(trello_list, options)}"


def compute_suffixes(entities: Iterable[T], key_fn: Callable[[T], str]) -> Dict[T, str]:
    """
    Number entities that share a key.

    Entities are walked in order. The first entity with a given key gets "1",
    the next "2", and so on; entities whose key occurs only once get "".

    Args:
        entities: Entities in output order. Must hash by identity
        key_fn: Collision key of an entity

    Returns:
        Mapping of entity to suffix
    """
    seen: Counter = Counter()
    provisional = []
    for entity in entities:
        key = key_fn(entity)
        seen[key] += 1
        provisional.append((entity, key, seen[key]))

    return {
        entity: (str(count) if seen[key] > 1 else '')
        for entity, key, count in provisional
    }


def with_suffix(name: str, suffix: str) -> str:
    return f"{name} {suffix}" if suffix else name


def encode_spaces(path: str) -> str:
    return path.replace(' ', '%20')


def relative_link(target: str, start: str, options: BackupOptions) -> str:
    """
    Relative path from the directory start to target, as written in Markdown.

    Paths inside start get a leading "./". Separators become "/" when
    always_use_forward_slashes is on.
    """
    relative = os.path.relpath(target, start)
    if not relative.startswith('..'):
        relative = f".{os.sep}{relative}"
    if options.always_use_forward_slashes:
        relative = relative.replace('\\', '/')
    return relative
