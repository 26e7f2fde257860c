import threading
import pytest
from notebookdb.conf import BucketRepoConf
from notebookdb.engine import BucketNameRequiredError, TxNotWritableError
from notebookdb.models import Note, NoteDecodeError, NoteEncodeError, MAX_NOTE_ID, note_key
from notebookdb.repos.base import NotebookNotFoundError
from notebookdb.repos.bucket import BucketRepo, ROOT_BUCKET, ensure_notebook_bucket, get_notebook_bucket


def config(tmp_path):
    return BucketRepoConf(path=str(tmp_path / 'notes.db'))


def test_init(tmp_path):
    config(tmp_path).instantiate().close()
    assert (tmp_path / 'notes.db').exists()


def test_init_requires_path():
    with pytest.raises(ValueError, match='`path` must be set'):
        BucketRepo(BucketRepoConf())


def test_add_many_assigns_consecutive_ids(tmp_path):
    with config(tmp_path).instantiate() as repo:
        assert repo.add_many('nb', ['a', 'b', 'c']) == [1, 2, 3]
        assert repo.get('nb', 1) == Note(1, 'a')
        assert repo.get('nb', 2) == Note(2, 'b')
        assert repo.get('nb', 3) == Note(3, 'c')
        assert repo.add_many('nb', ['d']) == [4]


def test_add_many_accepts_any_iterable(tmp_path):
    with config(tmp_path).instantiate() as repo:
        assert repo.add_many('nb', (c for c in ['x', 'y'])) == [1, 2]
        assert repo.add_many('nb', []) == []
        assert [n.content for n in repo.notes('nb')] == ['x', 'y']


def test_ids_are_per_notebook(tmp_path):
    with config(tmp_path).instantiate() as repo:
        assert repo.add_many('one', ['a', 'b']) == [1, 2]
        assert repo.add_many('two', ['c']) == [1]
        assert repo.get('one', 1).content == 'a'
        assert repo.get('two', 1).content == 'c'
        assert not repo.exists('two', 2)


def test_ids_not_reused_after_delete(tmp_path):
    with config(tmp_path).instantiate() as repo:
        repo.add_many('nb', ['a', 'b'])
        repo.delete_many('nb', [1, 2])
        assert repo.add_many('nb', ['c']) == [3]
        assert not repo.exists('nb', 1)
        assert not repo.exists('nb', 2)


def test_ids_survive_reopen(tmp_path):
    with config(tmp_path).instantiate() as repo:
        repo.add_many('nb', ['a', 'b'])
        repo.delete('nb', 2)
    with config(tmp_path).instantiate() as repo:
        assert repo.get('nb', 1) == Note(1, 'a')
        assert repo.add_many('nb', ['c']) == [3]


def test_exists(tmp_path):
    with config(tmp_path).instantiate() as repo:
        repo.add_many('nb', ['a', 'b'])
        assert repo.exists('nb', 1)
        assert repo.exists('nb', 2)
        assert not repo.exists('nb', 0)
        assert not repo.exists('nb', 3)
        repo.delete_many('nb', [1])
        assert not repo.exists('nb', 1)
        assert repo.exists('nb', 2)


def test_exists_requires_exact_key(tmp_path):
    with config(tmp_path).instantiate() as repo:
        repo.add_many('nb', ['note'] * 12)
        repo.delete_many('nb', [1])
        # seeking b'1' lands on b'10'
        assert not repo.exists('nb', 1)
        assert repo.exists('nb', 10)


def test_missing_notebook_reads(tmp_path):
    with config(tmp_path).instantiate() as repo:
        assert not repo.exists('nope', 1)
        assert repo.get('nope', 1) == Note()
        assert list(repo.notes('nope')) == []
        assert repo.count('nope') == 0
        assert repo.notebooks() == []


def test_get_missing_note(tmp_path):
    with config(tmp_path).instantiate() as repo:
        repo.add_many('nb', ['a'])
        assert repo.get('nb', 2) == Note(0, '')


def test_round_trip_content(tmp_path):
    contents = ['', 'plain', 'multi\nline\ttext', 'quotes " and \\ backslashes', 'emoji 😀 and ünïcödé',
                '{"id": 99, "content": "fake"}', 'x' * 100000]
    with config(tmp_path).instantiate() as repo:
        ids = repo.add_many('nb', contents)
        assert [repo.get('nb', i).content for i in ids] == contents
        assert [repo.get('nb', i).id for i in ids] == ids


def test_add_many_is_atomic(tmp_path):
    with config(tmp_path).instantiate() as repo:
        with pytest.raises(NoteEncodeError):
            repo.add_many('nb', ['a', 'b', 'bad \ud800 surrogate'])
        assert not repo.exists('nb', 1)
        assert not repo.exists('nb', 2)
        assert repo.notebooks() == []
        # the sequence increments were rolled back too
        assert repo.add_many('nb', ['c']) == [1]


def test_add_many_failure_leaves_existing_notes(tmp_path):
    with config(tmp_path).instantiate() as repo:
        repo.add_many('nb', ['a'])
        with pytest.raises(NoteEncodeError):
            repo.add_many('nb', ['b', '\udfff'])
        assert [n.content for n in repo.notes('nb')] == ['a']
        assert repo.add_many('nb', ['c']) == [2]


def test_delete_many_absent_ids(tmp_path):
    with config(tmp_path).instantiate() as repo:
        repo.add_many('nb', ['a', 'b'])
        repo.delete_many('nb', [5, 6, 0])
        assert repo.exists('nb', 1)
        assert repo.exists('nb', 2)


def test_delete_many_missing_notebook(tmp_path):
    with config(tmp_path).instantiate() as repo:
        with pytest.raises(NotebookNotFoundError) as excinfo:
            repo.delete_many('nope', [1])
        assert excinfo.value.notebook == 'nope'
        assert repo.notebooks() == []


def test_delete_many_is_atomic(tmp_path):
    with config(tmp_path).instantiate() as repo:
        repo.add_many('nb', ['a', 'b'])
        with pytest.raises(ValueError):
            repo.delete_many('nb', [1, -1])
        assert repo.exists('nb', 1)
        assert repo.exists('nb', 2)


def test_add_and_delete_conveniences(tmp_path):
    with config(tmp_path).instantiate() as repo:
        assert repo.add('nb', 'hello') == Note(1, 'hello')
        repo.delete('nb', 1)
        assert not repo.exists('nb', 1)


def test_notebooks(tmp_path):
    with config(tmp_path).instantiate() as repo:
        repo.add_many('work', ['a'])
        repo.add_many('Journal', ['b'])
        repo.add_many('ideas', ['c'])
        assert repo.notebooks() == ['Journal', 'ideas', 'work']


def test_notebook_stays_after_notes_deleted(tmp_path):
    with config(tmp_path).instantiate() as repo:
        repo.add_many('nb', ['a'])
        repo.delete_many('nb', [1])
        assert repo.notebooks() == ['nb']
        repo.delete_many('nb', [1])


def test_notes_ordered_numerically(tmp_path):
    with config(tmp_path).instantiate() as repo:
        repo.add_many('nb', [str(i) for i in range(1, 13)])
        repo.delete_many('nb', [3])
        notes = list(repo.notes('nb'))
        assert [n.id for n in notes] == [1, 2, 4, 5, 6, 7, 8, 9, 10, 11, 12]
        assert all(n.content == str(n.id) for n in notes)
        assert repo.count('nb') == 11


def test_get_corrupt_note(tmp_path):
    with config(tmp_path).instantiate() as repo:
        repo.add_many('nb', ['a'])
        with repo.db.update() as tx:
            get_notebook_bucket(tx, 'nb').put(note_key(1), b'not json')
        with pytest.raises(NoteDecodeError):
            repo.get('nb', 1)
        assert repo.exists('nb', 1)


def test_notebook_names_are_not_keys(tmp_path):
    with config(tmp_path).instantiate() as repo:
        repo.add_many('nb', ['a'])
        with repo.db.view() as tx:
            root = tx.bucket(ROOT_BUCKET)
            assert root.bucket_names() == [b'nb']
            assert list(root.items()) == []
            assert list(root.bucket(b'nb').items()) == [(b'1', b'{"id": 1, "content": "a"}')]


def test_ensure_notebook_bucket(tmp_path):
    with config(tmp_path).instantiate() as repo:
        with repo.db.update() as tx:
            assert get_notebook_bucket(tx, 'nb') is None
            created = ensure_notebook_bucket(tx, 'nb')
            assert ensure_notebook_bucket(tx, 'nb').name == created.name
            assert get_notebook_bucket(tx, 'nb') is not None
        with repo.db.view() as tx:
            assert get_notebook_bucket(tx, 'nb') is not None
            with pytest.raises(TxNotWritableError):
                ensure_notebook_bucket(tx, 'other')
        assert repo.notebooks() == ['nb']


def test_concurrent_adds_get_unique_ids(tmp_path):
    with config(tmp_path).instantiate() as repo:
        results = []
        errors = []

        def worker():
            try:
                for _ in range(10):
                    results.extend(repo.add_many('nb', ['x', 'y']))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert not errors
        assert sorted(results) == list(range(1, 81))
        assert repo.count('nb') == 80


def test_add_many_rejects_non_string_content(tmp_path):
    with config(tmp_path).instantiate() as repo:
        with pytest.raises(NoteEncodeError):
            repo.add_many('nb', ['a', None])
        with pytest.raises(NoteEncodeError):
            repo.add_many('nb', [42])
        assert not repo.exists('nb', 1)
        assert repo.notebooks() == []
        assert repo.add_many('nb', ['b']) == [1]


def test_add_many_rejects_single_string(tmp_path):
    with config(tmp_path).instantiate() as repo:
        with pytest.raises(TypeError):
            repo.add_many('nb', 'hello')
        with pytest.raises(TypeError):
            repo.add_many('nb', b'hello')
        assert repo.notebooks() == []


def test_empty_notebook_name(tmp_path):
    with config(tmp_path).instantiate() as repo:
        with pytest.raises(BucketNameRequiredError):
            repo.add_many('', ['a'])
        with pytest.raises(BucketNameRequiredError):
            repo.exists('', 1)
        with pytest.raises(BucketNameRequiredError):
            repo.delete_many('', [1])
        assert repo.notebooks() == []


def test_id_range(tmp_path):
    with config(tmp_path).instantiate() as repo:
        repo.add_many('nb', ['a'])
        assert not repo.exists('nb', MAX_NOTE_ID)
        assert repo.get('nb', MAX_NOTE_ID) == Note()
        repo.delete_many('nb', [MAX_NOTE_ID])
        with pytest.raises(ValueError):
            repo.exists('nb', MAX_NOTE_ID + 1)
        with pytest.raises(ValueError):
            repo.get('nb', -1)
        assert repo.exists('nb', 1)
