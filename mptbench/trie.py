"""
Hexary Merkle Patricia trie.

Nodes are python lists: ``[path, value]`` for leaves, ``[path, ref]`` for
extensions and 16 refs plus a value slot for branches. A ref is either the
keccak of the node's rlp (stored in the db) or, for nodes whose rlp is
shorter than 32 bytes, the node itself.

Nodes are never mutated once built, so a root computed earlier stays valid
for as long as its nodes are in the db.
"""
import rlp
from mptbench import utils

TERMINATOR = 16

BLANK_NODE = b''
BLANK_ROOT = utils.sha3rlp(b'')

BLANK, LEAF, EXTENSION, BRANCH = 'blank', 'leaf', 'extension', 'branch'


def bytes_to_nibbles(data):
    """
    >>> bytes_to_nibbles(b'he')
    [6, 8, 6, 5]
    """
    nibbles = []
    for byte in data:
        nibbles.append(byte >> 4)
        nibbles.append(byte & 0x0f)
    return nibbles


def nibbles_to_bytes(nibbles):
    if len(nibbles) % 2:
        raise ValueError("odd number of nibbles: %r" % nibbles)
    if any(not 0 <= n < 16 for n in nibbles):
        raise ValueError("not a nibble sequence: %r" % nibbles)
    return bytes(nibbles[i] << 4 | nibbles[i + 1]
                 for i in range(0, len(nibbles), 2))


def encode_path(nibbles, leaf):
    """Hex prefix encoding; flag bit 2 marks a leaf, bit 1 an odd length."""
    flag = 2 if leaf else 0
    if len(nibbles) % 2:
        return nibbles_to_bytes([flag | 1] + nibbles)
    return nibbles_to_bytes([flag, 0] + nibbles)


def decode_path(packed):
    """:return: (nibbles, is_leaf)"""
    nibbles = bytes_to_nibbles(packed)
    flag = nibbles[0]
    return nibbles[1:] if flag & 1 else nibbles[2:], bool(flag & 2)


def common_prefix_length(a, b):
    n = 0
    for x, y in zip(a, b):
        if x != y:
            break
        n += 1
    return n


def node_kind(node):
    if node == BLANK_NODE:
        return BLANK
    if len(node) == 17:
        return BRANCH
    if len(node) == 2:
        return LEAF if decode_path(node[0])[1] else EXTENSION
    raise ValueError("invalid trie node with %d items" % len(node))


def child_refs(node):
    """Refs held by `node` (hashes or embedded nodes); values excluded."""
    kind = node_kind(node)
    if kind == EXTENSION:
        return [node[1]]
    if kind == BRANCH:
        return [ref for ref in node[:16] if ref != BLANK_NODE]
    return []


def node_values(node):
    kind = node_kind(node)
    if kind == LEAF:
        return [node[1]]
    if kind == BRANCH and node[16] != BLANK_NODE:
        return [node[16]]
    return []


class Trie(object):

    def __init__(self, db, root_hash=BLANK_ROOT):
        """
        :param db: node store with get/put, usually a TrieDB
        :param root_hash: BLANK_ROOT or the hash of a stored root node
        """
        self.db = db
        self.root_hash = root_hash

    @property
    def root_hash(self):
        """Stores the root node and returns its hash."""
        if self.root_node == BLANK_NODE:
            return BLANK_ROOT
        encoded = rlp.encode(self.root_node)
        key = utils.sha3(encoded)
        self.db.put(key, encoded)
        return key

    @root_hash.setter
    def root_hash(self, value):
        if not isinstance(value, bytes) or len(value) not in (0, 32):
            raise ValueError("bad root hash %r" % value)
        if value in (BLANK_ROOT, BLANK_NODE):
            self.root_node = BLANK_NODE
        else:
            self.root_node = self._load(value)

    def _store(self, node):
        if node == BLANK_NODE:
            return BLANK_NODE
        encoded = rlp.encode(node)
        if len(encoded) < 32:
            return node
        key = utils.sha3(encoded)
        self.db.put(key, encoded)
        return key

    def _load(self, ref):
        if ref == BLANK_NODE:
            return BLANK_NODE
        if isinstance(ref, (list, tuple)):
            return list(ref)
        return list(rlp.decode(self.db.get(ref)))

    def _get(self, node, path):
        while True:
            kind = node_kind(node)
            if kind == BLANK:
                return BLANK_NODE
            if kind == BRANCH:
                if not path:
                    return node[16]
                node, path = self._load(node[path[0]]), path[1:]
                continue
            key, _ = decode_path(node[0])
            if kind == LEAF:
                return node[1] if path == key else BLANK_NODE
            if path[:len(key)] != key:
                return BLANK_NODE
            node, path = self._load(node[1]), path[len(key):]

    def _insert(self, node, path, value):
        kind = node_kind(node)
        if kind == BLANK:
            return [encode_path(path, True), value]
        if kind == BRANCH:
            node = node[:]
            if path:
                child = self._insert(self._load(node[path[0]]), path[1:], value)
                node[path[0]] = self._store(child)
            else:
                node[16] = value
            return node

        key, leaf = decode_path(node[0])
        n = common_prefix_length(key, path)
        if leaf and key == path:
            return [node[0], value]
        if not leaf and n == len(key):
            child = self._insert(self._load(node[1]), path[n:], value)
            return [node[0], self._store(child)]

        # split at the first differing nibble
        branch = [BLANK_NODE] * 17
        rest = key[n:]
        if leaf and not rest:
            branch[16] = node[1]
        elif leaf:
            branch[rest[0]] = self._store([encode_path(rest[1:], True), node[1]])
        elif len(rest) == 1:
            branch[rest[0]] = node[1]
        else:
            branch[rest[0]] = self._store([encode_path(rest[1:], False), node[1]])
        rest = path[n:]
        if rest:
            branch[rest[0]] = self._store([encode_path(rest[1:], True), value])
        else:
            branch[16] = value
        if n:
            return [encode_path(path[:n], False), self._store(branch)]
        return branch

    def _join(self, prefix, child):
        """Prepend `prefix` to the path leading to `child`."""
        if node_kind(child) == BRANCH:
            return [encode_path(prefix, False), self._store(child)]
        key, leaf = decode_path(child[0])
        return [encode_path(prefix + key, leaf), child[1]]

    def _collapse(self, branch):
        # a branch left with one entry turns into a leaf or extension
        used = [i for i in range(17) if branch[i] != BLANK_NODE]
        if len(used) > 1:
            return branch
        if used == [16]:
            return [encode_path([], True), branch[16]]
        return self._join(used[:1], self._load(branch[used[0]]))

    def _remove(self, node, path):
        kind = node_kind(node)
        if kind == BLANK:
            return BLANK_NODE
        if kind == BRANCH:
            node = node[:]
            if not path:
                node[16] = BLANK_NODE
                return self._collapse(node)
            ref = self._store(self._remove(self._load(node[path[0]]), path[1:]))
            if ref == node[path[0]]:
                return node
            node[path[0]] = ref
            return self._collapse(node) if ref == BLANK_NODE else node

        key, leaf = decode_path(node[0])
        if path[:len(key)] != key:
            return node
        if leaf:
            return BLANK_NODE if path == key else node
        child = self._remove(self._load(node[1]), path[len(key):])
        if self._store(child) == node[1]:
            return node
        if child == BLANK_NODE:
            return BLANK_NODE
        return self._join(key, child)

    def _items(self, node, path):
        kind = node_kind(node)
        if kind == BLANK:
            return
        if kind == BRANCH:
            for i in range(16):
                for item in self._items(self._load(node[i]), path + [i]):
                    yield item
            if node[16] != BLANK_NODE:
                yield nibbles_to_bytes(path), node[16]
            return
        key, leaf = decode_path(node[0])
        if leaf:
            yield nibbles_to_bytes(path + key), node[1]
        else:
            for item in self._items(self._load(node[1]), path + key):
                yield item

    def to_dict(self):
        return dict(self._items(self.root_node, []))

    def get(self, key):
        return self._get(self.root_node, bytes_to_nibbles(key))

    def __len__(self):
        return sum(1 for _ in self._items(self.root_node, []))

    def __contains__(self, key):
        return self.get(key) != BLANK_NODE

    def update(self, key, value):
        """Set `key` to `value`; an empty value deletes the key."""
        if not isinstance(key, bytes) or not isinstance(value, bytes):
            raise TypeError("keys and values must be bytes")
        if value == BLANK_NODE:
            return self.delete(key)
        self.root_node = self._insert(self.root_node, bytes_to_nibbles(key), value)

    def delete(self, key):
        if not isinstance(key, bytes):
            raise TypeError("keys must be bytes")
        if len(key) > 32:
            raise ValueError("max key length is 32, got %d" % len(key))
        self.root_node = self._remove(self.root_node, bytes_to_nibbles(key))
