import rlp
from rlp.sedes import big_endian_int
from rlp.exceptions import DecodingError
from mptbench import utils
from mptbench.utils import hash32, trie_root, zpad, is_zero_word
from mptbench.trie import Trie, BLANK_NODE, BLANK_ROOT
from mptbench.securetrie import SecureTrie
from mptbench.triedb import TrieDB
from mptbench.exceptions import CommitError, StoreError, ViewAlreadyOpen, ViewReleased
from mptbench.slogging import get_logger

log = get_logger('state')

BLANK_HASH = utils.sha3(b'')
ZERO_WORD = b'\x00' * 32


class Account(rlp.Serializable):

    fields = [
        ('nonce', big_endian_int),
        ('balance', big_endian_int),
        ('storage', trie_root),
        ('code_hash', hash32)
    ]


class StateObject(object):

    """In-memory, mutable account; dropped with the view that loaded it."""

    def __init__(self, triedb, address, nonce=0, balance=0,
                 storage=BLANK_ROOT, code_hash=BLANK_HASH, existent=False):
        self.triedb = triedb
        self.address = address
        self.nonce = nonce
        self.balance = balance
        self.storage = storage
        self.code_hash = code_hash
        self.existent = existent
        self.storage_cache = {}
        self._storage_trie = None
        self.dirty = False

    @classmethod
    def from_rlp(cls, triedb, address, rlpdata):
        acct = rlp.decode(rlpdata, Account)
        return cls(triedb, address, acct.nonce, acct.balance, acct.storage,
                   acct.code_hash, existent=True)

    @property
    def storage_trie(self):
        if self._storage_trie is None:
            self._storage_trie = SecureTrie(Trie(self.triedb, self.storage))
        return self._storage_trie

    def get_storage_data(self, key):
        if key not in self.storage_cache:
            v = self.storage_trie.get(key)
            self.storage_cache[key] = zpad(rlp.decode(v), 32) if v else ZERO_WORD
        return self.storage_cache[key]

    def set_storage_data(self, key, value):
        self.storage_cache[key] = value
        self.dirty = True

    def commit(self):
        for k, v in self.storage_cache.items():
            if is_zero_word(v):
                self.storage_trie.delete(k)
            else:
                self.storage_trie.update(k, rlp.encode(v.lstrip(b'\x00')))
        self.storage_cache = {}
        self.storage = self.storage_trie.root_hash
        self.existent = True
        self.dirty = False
        return rlp.encode(Account(self.nonce, self.balance, self.storage,
                                  self.code_hash))


class StateView(object):

    """
    Mutable working state rooted at one committed root.

    A view is owned by whoever opened it and must be released before the
    StateDatabase hands out the next one.
    """

    def __init__(self, state_db, root=BLANK_ROOT):
        self.state_db = state_db
        self.root = root
        self.trie = SecureTrie(Trie(state_db.triedb, root))
        self.cache = {}
        self.released = False

    def _check(self):
        if self.released:
            raise ViewReleased("view at %s was released" % self.root.hex()[:8])

    def get_and_cache_account(self, address):
        self._check()
        if address in self.cache:
            return self.cache[address]
        rlpdata = self.trie.get(address)
        if rlpdata != BLANK_NODE:
            o = StateObject.from_rlp(self.state_db.triedb, address, rlpdata)
        else:
            o = StateObject(self.state_db.triedb, address)
        self.cache[address] = o
        return o

    def get_balance(self, address):
        return self.get_and_cache_account(address).balance

    def get_nonce(self, address):
        return self.get_and_cache_account(address).nonce

    def get_state(self, address, key):
        return self.get_and_cache_account(address).get_storage_data(key)

    def account_exists(self, address):
        return self.get_and_cache_account(address).existent

    def set_balance(self, address, value):
        acct = self.get_and_cache_account(address)
        acct.balance = value
        acct.dirty = True

    def set_nonce(self, address, value):
        acct = self.get_and_cache_account(address)
        acct.nonce = value
        acct.dirty = True

    def set_state(self, address, key, value):
        if len(value) != 32:
            raise ValueError("storage values are 32 byte words, got %d bytes" % len(value))
        self.get_and_cache_account(address).set_storage_data(key, value)

    def commit(self, revision):
        """Apply all cached changes to the tries and return the new root.

        Nodes stay in the trie database buffer until StateDatabase.flush.
        """
        self._check()
        try:
            for addr, acct in self.cache.items():
                if acct.dirty:
                    self.trie.update(addr, acct.commit())
            root = self.trie.root_hash
        except (KeyError, DecodingError, StoreError) as e:
            raise CommitError("state commit at revision %d failed: %r" % (revision, e))
        self.state_db.triedb.record_revision(revision, root)
        log.debug('committed', revision=revision, root=root.hex()[:8],
                  accounts=len(self.cache))
        self.cache = {}
        self.root = root
        return root

    def release(self):
        if self.released:
            return
        self.cache = {}
        self.trie = None
        self.released = True
        self.state_db._release(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.release()


class StateDatabase(object):

    def __init__(self, db, retention=1):
        self.db = db
        self.triedb = TrieDB(db, retention)
        self._view = None

    @property
    def path(self):
        return self.db.path

    def open_at(self, root=BLANK_ROOT):
        if self._view is not None:
            raise ViewAlreadyOpen("release the view at %s first" %
                                  self._view.root.hex()[:8])
        self._view = StateView(self, root)
        return self._view

    def _release(self, view):
        if self._view is view:
            self._view = None

    def _storage_roots(self, rlpdata):
        return [rlp.decode(rlpdata, Account).storage]

    def flush(self, root):
        """Write the nodes of `root` and the pending revision records, and
        prune the state that falls out of the retention window."""
        return self.triedb.commit(root, resolve_leaf=self._storage_roots)

    def discard(self):
        """Drop buffered nodes and revision records that were not flushed."""
        self.triedb.rollback()

    def root_at(self, revision):
        return self.triedb.root_at(revision)

    def head(self):
        return self.triedb.head()

    def close(self):
        if self._view is not None:
            self._view.release()
        self.db.close()
