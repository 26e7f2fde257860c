"""Defines the :class:`Note` record and how notes are represented in storage.

A note is stored under a key derived from its id by :func:`note_key`, with a value produced by :func:`encode_note`.
"""

from __future__ import annotations
from dataclasses import dataclass
import json


MAX_NOTE_ID = 2 ** 64 - 1


class NoteEncodeError(Exception):
    """Raised when a note cannot be serialized for storage."""
    def __init__(self, message: str, note: Note, cause: BaseException = None):
        super().__init__(message)
        self.message = message
        self.note = note
        self.cause = cause


class NoteDecodeError(Exception):
    """Raised when a stored value cannot be parsed as a note."""
    def __init__(self, message: str, data: bytes, cause: BaseException = None):
        super().__init__(message)
        self.message = message
        self.data = data
        self.cause = cause


@dataclass
class Note:
    """A note within a notebook.

    The default instance (id 0, empty content) is what lookups return when no note is found. Ids assigned by the
    store start at 1, so an id of 0 never refers to a stored note.
    """

    id: int = 0
    """Unique within the note's notebook, and never reused even after the note is deleted."""

    content: str = ''

    def as_json(self) -> dict:
        """Returns a dict representing the instance, suitable for serializing as json."""
        return {
            'id': self.id,
            'content': self.content
        }

    @classmethod
    def from_json(cls, data: dict) -> Note:
        return cls(id=data['id'], content=data['content'])


def _check_id(note_id: int) -> None:
    if isinstance(note_id, bool) or not isinstance(note_id, int):
        raise TypeError(f'Note id must be an int, not {type(note_id).__name__}')
    if not 0 <= note_id <= MAX_NOTE_ID:
        raise ValueError(f'Note id out of range: {note_id}')


def note_key(note_id: int) -> bytes:
    """Returns the storage key for a note id: its decimal representation, without padding or leading zeros."""
    _check_id(note_id)
    return str(note_id).encode('ascii')


def parse_note_key(key: bytes) -> int:
    """Inverse of :func:`note_key`.

    Raises :exc:`ValueError` for anything :func:`note_key` would not have produced.
    """
    text = key.decode('ascii', errors='replace')
    if not text.isdigit() or (len(text) > 1 and text.startswith('0')):
        raise ValueError(f'Not a note key: {key!r}')
    note_id = int(text)
    if note_id > MAX_NOTE_ID:
        raise ValueError(f'Not a note key: {key!r}')
    return note_id


def encode_note(note: Note) -> bytes:
    """Serializes the note as a UTF-8 json object with ``id`` and ``content`` fields."""
    try:
        _check_id(note.id)
        if not isinstance(note.content, str):
            raise TypeError(f'Note content must be a str, not {type(note.content).__name__}')
        return json.dumps(note.as_json(), ensure_ascii=False).encode('utf-8')
    except (TypeError, ValueError) as e:
        raise NoteEncodeError(f'Cannot encode note {note.id!r}', note, e) from e


def decode_note(data: bytes) -> Note:
    try:
        parsed = json.loads(data.decode('utf-8'))
    except ValueError as e:
        raise NoteDecodeError('Stored note is not valid json', data, e) from e
    if not isinstance(parsed, dict):
        raise NoteDecodeError('Stored note is not a json object', data)
    note_id = parsed.get('id')
    content = parsed.get('content')
    if isinstance(note_id, bool) or not isinstance(note_id, int) or not 0 <= note_id <= MAX_NOTE_ID:
        raise NoteDecodeError(f'Stored note has invalid id: {note_id!r}', data)
    if not isinstance(content, str):
        raise NoteDecodeError('Stored note has invalid content', data)
    return Note.from_json(parsed)
