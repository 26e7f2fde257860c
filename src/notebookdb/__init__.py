"""Stores notes, grouped into notebooks, in an embedded transactional database.

To use the Python API, look at :class:`notebookdb.repos.base.NoteRepo`, and create an instance with
:meth:`notebookdb.conf.BucketRepoConf.instantiate`:

.. code-block:: python

   from notebookdb.conf import BucketRepoConf
   with BucketRepoConf(path='notes.db').instantiate() as repo:
       ids = repo.add_many('journal', ['first entry', 'second entry'])
       print(repo.get('journal', ids[0]).content)
"""
