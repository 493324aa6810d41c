import os
import plyvel
from mptbench.slogging import get_logger
from mptbench.exceptions import StoreOpenError, StoreError, CommitError

log = get_logger('db')


class BaseDB(object):

    path = None

    def rollback(self):
        pass

    def close(self):
        pass


class _EphemDB(BaseDB):

    def __init__(self):
        self.db = {}

    def get(self, key):
        return self.db[key]

    def put(self, key, value):
        self.db[key] = value

    def delete(self, key):
        del self.db[key]

    def commit(self):
        pass

    def _has_key(self, key):
        return key in self.db

    def __contains__(self, key):
        return self._has_key(key)


DB = EphemDB = _EphemDB


class LevelDB(BaseDB):

    """
    LevelDB store. Writes are buffered until commit(), which applies them
    in one write batch.
    """

    def __init__(self, dbfile, compression=None, max_open_files=None,
                 lru_cache_size=None, write_buffer_size=None):
        self.path = os.path.abspath(dbfile)
        log.debug('opening', path=self.path, compression=compression)
        try:
            self.db = plyvel.DB(self.path, create_if_missing=True,
                                compression=compression,
                                max_open_files=max_open_files,
                                lru_cache_size=lru_cache_size,
                                write_buffer_size=write_buffer_size)
        except (plyvel.Error, OSError) as e:
            raise StoreOpenError("cannot open LevelDB at %s: %s" % (self.path, e))
        self.uncommitted = dict()

    def get(self, key):
        if key in self.uncommitted:
            if self.uncommitted[key] is None:
                raise KeyError("key not in db")
            return self.uncommitted[key]
        try:
            o = self.db.get(key)
        except plyvel.Error as e:
            raise StoreError("LevelDB read failed: %s" % e)
        if o is None:
            raise KeyError("key not in db")
        return o

    def put(self, key, value):
        self.uncommitted[key] = value

    def delete(self, key):
        self.uncommitted[key] = None

    def commit(self):
        log.debug('commit', db=self)
        try:
            with self.db.write_batch() as batch:
                for k, v in self.uncommitted.items():
                    if v is None:
                        batch.delete(k)
                    else:
                        batch.put(k, v)
        except plyvel.Error as e:
            raise CommitError("LevelDB write failed: %s" % e)
        self.uncommitted.clear()

    def rollback(self):
        self.uncommitted.clear()

    def _has_key(self, key):
        try:
            self.get(key)
            return True
        except KeyError:
            return False

    def __contains__(self, key):
        return self._has_key(key)

    def close(self):
        if not self.db.closed:
            self.db.close()

    def __repr__(self):
        return '<LevelDB at %s uncommitted=%d>' % (self.path, len(self.uncommitted))
