import rlp
from rlp.sedes import big_endian_int
from rlp.exceptions import DecodingError
from mptbench.trie import BLANK_NODE, BLANK_ROOT, child_refs, node_values
from mptbench.slogging import get_logger
from mptbench.exceptions import CommitError, StoreError

log = get_logger('triedb')

HEAD_KEY = b'head-root'
RETAINED_KEY = b'retained-roots'


def revision_key(revision):
    return b'revision:%d' % revision


def refcount_key(key):
    return b'r:' + key


class TrieDB(object):

    """
    Node store shared by all tries of a state.

    New nodes are kept in a dirty buffer. commit(root) writes the nodes
    reachable from root and drops the rest of the buffer, so nodes
    superseded within a batch never reach disk.

    Stored nodes are reference counted: one reference per stored parent
    (account leaves count as parents of their storage roots) and one per
    retained root. The last `retention` flushed roots are retained; when
    a root falls out of that window its references are released and the
    nodes no other retained root uses are deleted.
    """

    def __init__(self, db, retention=1):
        if retention < 1:
            raise ValueError("at least one root must be retained")
        self.db = db
        self.retention = retention
        self.dirty = {}
        self.pending = {}
        self.refcounts = {}

    def get(self, key):
        if key in self.dirty:
            return self.dirty[key]
        return self.db.get(key)

    def put(self, key, value):
        self.dirty[key] = value

    def __contains__(self, key):
        return key in self.dirty or key in self.db

    def record_revision(self, revision, root):
        self.pending[revision_key(revision)] = root

    def root_at(self, revision):
        """Root recorded for `revision`; its nodes may have been pruned."""
        key = revision_key(revision)
        if key in self.pending:
            return self.pending[key]
        return self.db.get(key)

    def head(self):
        try:
            return self.db.get(HEAD_KEY)
        except KeyError:
            return BLANK_ROOT

    def retained_roots(self):
        try:
            return list(rlp.decode(self.db.get(RETAINED_KEY)))
        except KeyError:
            return []

    def refcount(self, key):
        if key in self.refcounts:
            return self.refcounts[key]
        try:
            return big_endian_int.deserialize(self.db.get(refcount_key(key)))
        except KeyError:
            return 0

    def _refs(self, node, resolve_leaf):
        refs = [(child, resolve_leaf) for child in child_refs(node)]
        if resolve_leaf is not None:
            for value in node_values(node):
                refs.extend((sub_root, None) for sub_root in resolve_leaf(value))
        return refs

    def _incref(self, root, resolve_leaf):
        written = 0
        stack = [(root, resolve_leaf)]
        while stack:
            ref, resolver = stack.pop()
            if isinstance(ref, (list, tuple)):
                # embedded node, its refs belong to the parent
                node = ref
            elif ref in (BLANK_NODE, BLANK_ROOT):
                continue
            else:
                count = self.refcount(ref)
                self.refcounts[ref] = count + 1
                if count:
                    continue
                rlpnode = self.dirty[ref]
                self.db.put(ref, rlpnode)
                written += 1
                node = rlp.decode(rlpnode)
            stack.extend(self._refs(node, resolver))
        return written

    def _decref(self, root, resolve_leaf):
        pruned = 0
        stack = [(root, resolve_leaf)]
        while stack:
            ref, resolver = stack.pop()
            if isinstance(ref, (list, tuple)):
                node = ref
            elif ref in (BLANK_NODE, BLANK_ROOT):
                continue
            else:
                count = self.refcount(ref) - 1
                self.refcounts[ref] = count
                if count > 0:
                    continue
                node = rlp.decode(self.db.get(ref))
                self.db.delete(ref)
                pruned += 1
            stack.extend(self._refs(node, resolver))
        return pruned

    def commit(self, root, resolve_leaf=None):
        """Persist `root` and prune the roots that leave the retention window.

        Node writes, deletes, reference counts and the pending revision
        records go to the backend in one commit.

        :param resolve_leaf: maps a leaf value of the root trie to the
            roots of the sub tries it references (account storage)
        :return: (written, discarded, pruned) node counts
        """
        try:
            retained = self.retained_roots()
            written = self._incref(root, resolve_leaf)
            retained.append(root)
            pruned = 0
            while len(retained) > self.retention:
                pruned += self._decref(retained.pop(0), resolve_leaf)
            for key, count in self.refcounts.items():
                if count > 0:
                    self.db.put(refcount_key(key), big_endian_int.serialize(count))
                else:
                    self.db.delete(refcount_key(key))
            for key, value in self.pending.items():
                self.db.put(key, value)
            self.db.put(RETAINED_KEY, rlp.encode(retained))
            self.db.put(HEAD_KEY, root)
            self.db.commit()
        except CommitError:
            self.rollback()
            raise
        except (KeyError, DecodingError, StoreError) as e:
            self.rollback()
            raise CommitError("cannot flush root %s: %r" % (root.hex(), e))
        discarded = len(self.dirty) - written
        log.debug('flushed', root=root.hex()[:8], written=written,
                  discarded=discarded, pruned=pruned, revisions=len(self.pending))
        self._reset()
        return written, discarded, pruned

    def _reset(self):
        self.dirty = {}
        self.pending = {}
        self.refcounts = {}

    def rollback(self):
        log.debug('rollback', dirty=len(self.dirty), pending=len(self.pending))
        self._reset()
        self.db.rollback()
