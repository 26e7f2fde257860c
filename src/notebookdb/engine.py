"""Provides an embedded key/value store with nested buckets, backed by SQLite.

The most important classes are :class:`Database`, :class:`Tx` and :class:`Bucket`.

A database holds top-level buckets. Each bucket holds byte-string keys mapped to byte-string values, may contain
nested buckets of its own, and has a durable sequence that can be used to generate ids. Keys are ordered bytewise,
and a :class:`Cursor` can be used to seek to a key (or the next key after it).

All access happens inside a transaction. Read transactions see a consistent snapshot of the database as of the
moment they began, even while a writer commits changes. Only one write transaction can be open at a time; a second
writer waits up to :attr:`Database.timeout` seconds and then fails with :exc:`sqlite3.OperationalError`.
"""

from __future__ import annotations
from contextlib import contextmanager
import logging
import sqlite3
from typing import Iterator, List, Optional, Tuple


logger = logging.getLogger(__name__)

MAX_SEQUENCE = 2 ** 63 - 1
"""Largest value a bucket sequence can hold (SQLite integers are signed 64-bit)."""

_SQL_CREATE_SCHEMA = """
CREATE TABLE IF NOT EXISTS buckets (
    id INTEGER PRIMARY KEY,
    parent_id INTEGER NOT NULL,
    name BLOB NOT NULL,
    sequence INTEGER NOT NULL DEFAULT 0
);

CREATE UNIQUE INDEX IF NOT EXISTS buckets_index_parent_id_name ON buckets (parent_id, name);

CREATE TABLE IF NOT EXISTS entries (
    bucket_id INTEGER NOT NULL,
    key BLOB NOT NULL,
    value BLOB NOT NULL,
    PRIMARY KEY (bucket_id, key),
    FOREIGN KEY(bucket_id) REFERENCES buckets(id)
) WITHOUT ROWID;
"""

# parent_id used for top-level buckets
_ROOT_ID = 0


class EngineError(Exception):
    """Base class for errors caused by misusing the engine API."""


class TxClosedError(EngineError):
    def __init__(self):
        super().__init__('Transaction has already been committed or rolled back')


class TxNotWritableError(EngineError):
    def __init__(self):
        super().__init__('Transaction is read-only')


class BucketNameRequiredError(EngineError):
    def __init__(self):
        super().__init__('Bucket name must not be empty')


class BucketExistsError(EngineError):
    def __init__(self, name: bytes):
        super().__init__(f'Bucket already exists: {name!r}')
        self.name = name


class KeyRequiredError(EngineError):
    def __init__(self):
        super().__init__('Key must not be empty')


class SequenceOverflowError(EngineError):
    def __init__(self):
        super().__init__(f'Bucket sequence cannot exceed {MAX_SEQUENCE}')


def _check_bytes(what: str, value) -> None:
    if not isinstance(value, bytes):
        raise TypeError(f'{what} must be bytes, not {type(value).__name__}')


def _check_name(name: bytes) -> None:
    _check_bytes('Bucket name', name)
    if not name:
        raise BucketNameRequiredError()


def _check_key(key: bytes) -> None:
    _check_bytes('Key', key)
    if not key:
        raise KeyRequiredError()


class Database:
    """A database file containing buckets.

    Remember to call :meth:`close` when done with the instance, or use the instance as a context manager.

    Every transaction opens its own connection to the file, so an in-memory database is not supported.

    .. attribute:: path
       :type: str

    .. attribute:: timeout
       :type: float

       Seconds a write transaction waits for another writer to finish before failing.
    """
    def __init__(self, path: str, timeout: float = 5.0):
        if not path or path == ':memory:':
            raise ValueError('A database file path is required.')
        self.path = path
        self.timeout = timeout
        self.closed = False
        logger.debug('Opening database %s', path)
        connection = self._connect()
        try:
            connection.execute('PRAGMA journal_mode=WAL')
            connection.executescript(_SQL_CREATE_SCHEMA)
        finally:
            connection.close()

    def _connect(self) -> sqlite3.Connection:
        # isolation_level=None hands transaction control to Tx
        return sqlite3.connect(self.path, timeout=self.timeout, isolation_level=None, check_same_thread=False)

    def begin(self, writable: bool) -> Tx:
        """Starts a transaction. You must call :meth:`Tx.commit` or :meth:`Tx.rollback` on the result.

        Usually :meth:`view` or :meth:`update` is more convenient.
        """
        if self.closed:
            raise EngineError('Database is closed')
        connection = self._connect()
        try:
            if writable:
                connection.execute('BEGIN IMMEDIATE')
            else:
                connection.execute('BEGIN')
                # takes the read snapshot now rather than at the first query
                connection.execute('SELECT 1 FROM buckets LIMIT 1').fetchall()
        except BaseException:
            connection.close()
            raise
        return Tx(connection, writable)

    @contextmanager
    def view(self) -> Iterator[Tx]:
        """Context manager providing a read-only transaction, which is released on exit."""
        tx = self.begin(False)
        try:
            yield tx
        finally:
            tx.rollback()

    @contextmanager
    def update(self) -> Iterator[Tx]:
        """Context manager providing a write transaction.

        The transaction is committed if the block exits normally, and rolled back if it raises.
        """
        tx = self.begin(True)
        try:
            yield tx
            tx.commit()
        except BaseException as e:
            logger.debug('Rolling back transaction on %s: %r', self.path, e)
            raise
        finally:
            tx.rollback()

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class Tx:
    """A read-only or read-write transaction.

    .. attribute:: writable
       :type: bool
    """
    def __init__(self, connection: sqlite3.Connection, writable: bool):
        self._connection = connection
        self.writable = writable

    @property
    def closed(self) -> bool:
        return self._connection is None

    def _cursor(self) -> sqlite3.Cursor:
        if self._connection is None:
            raise TxClosedError()
        return self._connection.cursor()

    def _check_writable(self) -> None:
        if self._connection is None:
            raise TxClosedError()
        if not self.writable:
            raise TxNotWritableError()

    def commit(self) -> None:
        """Commits the changes and closes the transaction."""
        self._check_writable()
        connection = self._connection
        self._connection = None
        try:
            connection.execute('COMMIT')
        except BaseException:
            if connection.in_transaction:
                connection.execute('ROLLBACK')
            raise
        finally:
            connection.close()

    def rollback(self) -> None:
        """Discards any changes and closes the transaction. Does nothing if already closed."""
        connection = self._connection
        if connection is None:
            return
        self._connection = None
        try:
            if connection.in_transaction:
                connection.execute('ROLLBACK')
        finally:
            connection.close()

    def bucket(self, name: bytes) -> Optional[Bucket]:
        """Returns the top-level bucket with the given name, or None if it does not exist."""
        return _child_bucket(self, _ROOT_ID, name)

    def create_bucket(self, name: bytes) -> Bucket:
        """Creates a top-level bucket. Raises :exc:`BucketExistsError` if it already exists."""
        return _create_child_bucket(self, _ROOT_ID, name)

    def create_bucket_if_not_exists(self, name: bytes) -> Bucket:
        return _child_bucket(self, _ROOT_ID, name) or _create_child_bucket(self, _ROOT_ID, name)

    def bucket_names(self) -> List[bytes]:
        """Returns the names of all top-level buckets in byte order."""
        return _child_bucket_names(self, _ROOT_ID)


def _child_bucket(tx: Tx, parent_id: int, name: bytes) -> Optional[Bucket]:
    _check_name(name)
    cursor = tx._cursor()
    cursor.execute('SELECT id FROM buckets WHERE parent_id = ? AND name = ?', (parent_id, name))
    row = cursor.fetchone()
    return Bucket(tx, row[0], name) if row else None


def _create_child_bucket(tx: Tx, parent_id: int, name: bytes) -> Bucket:
    _check_name(name)
    tx._check_writable()
    cursor = tx._cursor()
    try:
        cursor.execute('INSERT INTO buckets (parent_id, name) VALUES (?, ?)', (parent_id, name))
    except sqlite3.IntegrityError as e:
        raise BucketExistsError(name) from e
    return Bucket(tx, cursor.lastrowid, name)


def _child_bucket_names(tx: Tx, parent_id: int) -> List[bytes]:
    cursor = tx._cursor()
    cursor.execute('SELECT name FROM buckets WHERE parent_id = ? ORDER BY name', (parent_id,))
    return [bytes(r[0]) for r in cursor]


class Bucket:
    """A collection of key/value pairs and nested buckets. Only valid for the lifetime of its transaction.

    .. attribute:: name
       :type: bytes
    """
    def __init__(self, tx: Tx, bucket_id: int, name: bytes):
        self.tx = tx
        self.name = name
        self._id = bucket_id

    def __repr__(self):
        return f'Bucket({self.name!r})'

    def bucket(self, name: bytes) -> Optional[Bucket]:
        """Returns the nested bucket with the given name, or None if it does not exist."""
        return _child_bucket(self.tx, self._id, name)

    def create_bucket(self, name: bytes) -> Bucket:
        """Creates a nested bucket. Raises :exc:`BucketExistsError` if it already exists."""
        return _create_child_bucket(self.tx, self._id, name)

    def create_bucket_if_not_exists(self, name: bytes) -> Bucket:
        return _child_bucket(self.tx, self._id, name) or _create_child_bucket(self.tx, self._id, name)

    def bucket_names(self) -> List[bytes]:
        """Returns the names of all nested buckets in byte order."""
        return _child_bucket_names(self.tx, self._id)

    def get(self, key: bytes) -> Optional[bytes]:
        """Returns the value for the key, or None if the key is not present."""
        _check_key(key)
        cursor = self.tx._cursor()
        cursor.execute('SELECT value FROM entries WHERE bucket_id = ? AND key = ?', (self._id, key))
        row = cursor.fetchone()
        return bytes(row[0]) if row else None

    def put(self, key: bytes, value: bytes) -> None:
        """Sets the value for the key, replacing any existing value."""
        _check_key(key)
        _check_bytes('Value', value)
        self.tx._check_writable()
        self.tx._cursor().execute('INSERT OR REPLACE INTO entries (bucket_id, key, value) VALUES (?, ?, ?)',
                                  (self._id, key, value))

    def delete(self, key: bytes) -> None:
        """Removes the key. Does nothing if the key is not present."""
        _check_key(key)
        self.tx._check_writable()
        self.tx._cursor().execute('DELETE FROM entries WHERE bucket_id = ? AND key = ?', (self._id, key))

    def cursor(self) -> Cursor:
        return Cursor(self)

    def items(self) -> Iterator[Tuple[bytes, bytes]]:
        """Yields every key/value pair in key order."""
        cursor = self.tx._cursor()
        cursor.execute('SELECT key, value FROM entries WHERE bucket_id = ? ORDER BY key', (self._id,))
        for key, value in cursor:
            yield bytes(key), bytes(value)

    def sequence(self) -> int:
        """Returns the current value of the bucket's sequence without changing it."""
        cursor = self.tx._cursor()
        cursor.execute('SELECT sequence FROM buckets WHERE id = ?', (self._id,))
        return cursor.fetchone()[0]

    def set_sequence(self, value: int) -> None:
        if not 0 <= value <= MAX_SEQUENCE:
            raise SequenceOverflowError()
        self.tx._check_writable()
        self.tx._cursor().execute('UPDATE buckets SET sequence = ? WHERE id = ?', (value, self._id))

    def next_sequence(self) -> int:
        """Increments the bucket's sequence and returns the new value. The first value returned is 1.

        The increment is part of the transaction, so it is undone if the transaction rolls back.
        """
        self.tx._check_writable()
        value = self.sequence()
        if value >= MAX_SEQUENCE:
            raise SequenceOverflowError()
        self.set_sequence(value + 1)
        return value + 1


class Cursor:
    """Moves through the keys of a bucket in byte order.

    Each positioning method returns a ``(key, value)`` tuple, or None when there is no such entry.
    """
    def __init__(self, bucket: Bucket):
        self.bucket = bucket
        self._key = None
        self._done = False

    def _fetch(self, sql: str, params: tuple) -> Optional[Tuple[bytes, bytes]]:
        cursor = self.bucket.tx._cursor()
        cursor.execute(sql, params)
        row = cursor.fetchone()
        if not row:
            self._key = None
            self._done = True
            return None
        self._done = False
        self._key = bytes(row[0])
        return self._key, bytes(row[1])

    def first(self) -> Optional[Tuple[bytes, bytes]]:
        return self._fetch('SELECT key, value FROM entries WHERE bucket_id = ? ORDER BY key LIMIT 1',
                           (self.bucket._id,))

    def seek(self, key: bytes) -> Optional[Tuple[bytes, bytes]]:
        """Moves to the given key, or to the next key after it if it is not present."""
        _check_bytes('Key', key)
        return self._fetch('SELECT key, value FROM entries WHERE bucket_id = ? AND key >= ? ORDER BY key LIMIT 1',
                           (self.bucket._id, key))

    def next(self) -> Optional[Tuple[bytes, bytes]]:
        """Moves to the key after the current one. At the start of iteration, behaves like :meth:`first`."""
        if self._done:
            return None
        if self._key is None:
            return self.first()
        return self._fetch('SELECT key, value FROM entries WHERE bucket_id = ? AND key > ? ORDER BY key LIMIT 1',
                           (self.bucket._id, self._key))
