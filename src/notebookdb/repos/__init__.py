"""Handles storage of notebooks and notes.

:class:`notebookdb.repos.base.NoteRepo` defines an API.
:class:`notebookdb.repos.bucket.BucketRepo` implements it on top of :mod:`notebookdb.engine`.
"""
