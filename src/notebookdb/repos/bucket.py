"""Provides the :class:`BucketRepo` class, which stores notes in a :class:`notebookdb.engine.Database`.

The layout inside the database is::

    Notebook                  (top-level bucket)
      <notebook name>         (one nested bucket per notebook)
        <note id> -> note     (key from notebookdb.models.note_key, value from notebookdb.models.encode_note)

Each notebook bucket's sequence supplies the ids for its notes.
"""

import logging
from typing import Iterable, Iterator, List, Optional

from notebookdb.conf import BucketRepoConf
from notebookdb.engine import Bucket, Database, Tx
from notebookdb.models import Note, note_key, parse_note_key, encode_note, decode_note
from notebookdb.repos.base import NoteRepo, NotebookNotFoundError


logger = logging.getLogger(__name__)

ROOT_BUCKET = b'Notebook'


def ensure_notebook_bucket(tx: Tx, notebook: str) -> Bucket:
    """Returns the bucket for the notebook, creating it if necessary. Requires a write transaction."""
    root = tx.create_bucket_if_not_exists(ROOT_BUCKET)
    bucket = root.bucket(notebook.encode('utf-8'))
    if bucket is None:
        logger.debug('Creating notebook %s', notebook)
        bucket = root.create_bucket(notebook.encode('utf-8'))
    return bucket


def get_notebook_bucket(tx: Tx, notebook: str) -> Optional[Bucket]:
    """Returns the bucket for the notebook, or None if it does not exist."""
    root = tx.bucket(ROOT_BUCKET)
    if root is None:
        return None
    return root.bucket(notebook.encode('utf-8'))


def _find(bucket: Bucket, note_id: int) -> Optional[bytes]:
    key = note_key(note_id)
    found = bucket.cursor().seek(key)
    if found and found[0] == key:
        return found[1]
    return None


class BucketRepo(NoteRepo):
    """Stores notes in a single database file.

    Every method runs in its own transaction. Reads see a consistent snapshot and may run while another thread or
    process is writing; writes are serialized by the database.

    Remember to call :meth:`close` when done with the instance, or use the instance as a context manager.

    .. attribute:: conf
       :type: notebookdb.conf.BucketRepoConf
    """
    def __init__(self, conf: BucketRepoConf):
        if not conf.path:
            raise ValueError('`path` must be set in BucketRepoConf.')
        self.conf = conf
        self.db = Database(conf.path, timeout=conf.timeout)
        with self.db.update() as tx:
            tx.create_bucket_if_not_exists(ROOT_BUCKET)

    def exists(self, notebook: str, note_id: int) -> bool:
        with self.db.view() as tx:
            bucket = get_notebook_bucket(tx, notebook)
            return bucket is not None and _find(bucket, note_id) is not None

    def get(self, notebook: str, note_id: int) -> Note:
        with self.db.view() as tx:
            bucket = get_notebook_bucket(tx, notebook)
            data = bucket and _find(bucket, note_id)
            return decode_note(data) if data is not None else Note()

    def add_many(self, notebook: str, contents: Iterable[str]) -> List[int]:
        if isinstance(contents, (str, bytes)):
            raise TypeError('contents must be an iterable of strings, not a single string')
        ids = []
        with self.db.update() as tx:
            bucket = ensure_notebook_bucket(tx, notebook)
            for content in contents:
                note = Note(bucket.next_sequence(), content)
                bucket.put(note_key(note.id), encode_note(note))
                ids.append(note.id)
        logger.debug('Added notes %s to notebook %s', ids, notebook)
        return ids

    def delete_many(self, notebook: str, note_ids: Iterable[int]) -> None:
        with self.db.update() as tx:
            bucket = get_notebook_bucket(tx, notebook)
            if bucket is None:
                raise NotebookNotFoundError(notebook)
            note_ids = list(note_ids)
            for note_id in note_ids:
                bucket.delete(note_key(note_id))
        logger.debug('Deleted notes %s from notebook %s', note_ids, notebook)

    def notebooks(self) -> List[str]:
        with self.db.view() as tx:
            root = tx.bucket(ROOT_BUCKET)
            if root is None:
                return []
            return sorted(name.decode('utf-8') for name in root.bucket_names())

    def notes(self, notebook: str) -> Iterator[Note]:
        with self.db.view() as tx:
            bucket = get_notebook_bucket(tx, notebook)
            if bucket is None:
                return iter([])
            # keys are decimal strings, so byte order is not numeric order
            entries = sorted((parse_note_key(k), v) for k, v in bucket.items())
            return iter([decode_note(v) for _, v in entries])

    def count(self, notebook: str) -> int:
        with self.db.view() as tx:
            bucket = get_notebook_bucket(tx, notebook)
            if bucket is None:
                return 0
            return sum(1 for _ in bucket.items())

    def close(self) -> None:
        self.db.close()
