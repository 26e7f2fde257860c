from __future__ import annotations
from dataclasses import dataclass, replace
import os.path


@dataclass
class BucketRepoConf:
    """Configures access to notes stored in a database file, via :class:`notebookdb.repos.bucket.BucketRepo`."""

    path: str = None
    """Required. Path where the database file should be stored.

    The file will be created if it does not exist. SQLite also keeps ``-wal`` and ``-shm`` files next to it while
    the database is in use.
    """

    timeout: float = 5.0
    """How many seconds a change waits for another change in progress to finish before giving up.

    Reads never wait.
    """

    @classmethod
    def for_user(cls) -> BucketRepoConf:
        path = os.path.expanduser(os.path.join('~', '.notebookdb.conf.py'))
        if not os.path.exists(path):
            raise Exception(f'You need to create the config file: {path}')
        with open(path, 'r') as file:
            conf_script = file.read()
        context = {}
        exec(conf_script, context)
        if 'conf' not in context or not isinstance(context['conf'], cls):
            raise Exception('You need to assign an instance of BucketRepoConf to the variable `conf` '
                            f'in your config file: {path}')
        return context['conf']

    def standardize(self):
        return replace(
            self,
            path=self.path and os.path.abspath(os.path.expanduser(self.path))
        )

    def instantiate(self):
        from notebookdb.repos.bucket import BucketRepo
        return BucketRepo(self.standardize())
