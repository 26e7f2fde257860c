"""Defines the API for accessing notebooks and their notes.

The most important class is :class:`NoteRepo`.
"""

from typing import Iterable, Iterator, List

from notebookdb.models import Note


class NotebookNotFoundError(Exception):
    """Raised when an operation requires a notebook that does not exist."""
    def __init__(self, notebook: str):
        super().__init__(f'Notebook does not exist: {notebook}')
        self.notebook = notebook


class NoteRepo:
    """Base class for repos, which are responsible for storing notes grouped into notebooks.

    Notebooks are identified by name and are created automatically when the first note is added to them.
    Each note gets an id that is unique within its notebook; ids increase with every note added, and are not reused
    even after a note is deleted.

    Operations that read never fail because a notebook is missing; they behave as if the notebook were empty.
    """
    def exists(self, notebook: str, note_id: int) -> bool:
        """Returns True if the notebook contains a note with the given id."""
        raise NotImplementedError()

    def get(self, notebook: str, note_id: int) -> Note:
        """Looks up a note.

        If there is no such note (or no such notebook), returns an empty :class:`notebookdb.models.Note` with id 0
        rather than raising. Use :meth:`exists` if you need to tell the difference between that and a stored note.
        May raise :exc:`notebookdb.models.NoteDecodeError` if the stored data is corrupt.
        """
        raise NotImplementedError()

    def add_many(self, notebook: str, contents: Iterable[str]) -> List[int]:
        """Adds a note for each of the given contents, creating the notebook if needed.

        Ids are assigned in the order the contents are given, and returned in the same order.
        Either all of the notes are added or, if an exception is raised, none of them are.
        """
        raise NotImplementedError()

    def delete_many(self, notebook: str, note_ids: Iterable[int]) -> None:
        """Deletes the notes with the given ids. Ids of notes that do not exist are ignored.

        Raises :exc:`NotebookNotFoundError` if the notebook does not exist.
        Either all of the deletions are applied or, if an exception is raised, none of them are.
        """
        raise NotImplementedError()

    def notebooks(self) -> List[str]:
        """Returns the names of all notebooks, sorted."""
        raise NotImplementedError()

    def notes(self, notebook: str) -> Iterator[Note]:
        """Returns all notes in the notebook, ordered by id."""
        raise NotImplementedError()

    def count(self, notebook: str) -> int:
        """Returns the number of notes in the notebook."""
        return sum(1 for _ in self.notes(notebook))

    def close(self) -> None:
        """Release any resources associated with the repo. Should be called when you're done with an instance."""
        pass

    def add(self, notebook: str, content: str) -> Note:
        """Convenience method equivalent to calling add_many with one content string; returns the new note."""
        note_id, = self.add_many(notebook, [content])
        return Note(note_id, content)

    def delete(self, notebook: str, note_id: int) -> None:
        """Convenience method equivalent to calling delete_many with one id"""
        self.delete_many(notebook, [note_id])

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
