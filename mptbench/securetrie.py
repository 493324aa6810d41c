from mptbench import utils


class SecureTrie(object):

    """Trie keyed by keccak256(key). Preimages are not stored."""

    def __init__(self, t):
        self.trie = t
        self.db = t.db

    def update(self, k, v):
        self.trie.update(utils.sha3(k), v)

    def get(self, k):
        return self.trie.get(utils.sha3(k))

    def delete(self, k):
        self.trie.delete(utils.sha3(k))

    def to_dict(self):
        # keys are the hashed keys
        return self.trie.to_dict()

    def __len__(self):
        return len(self.trie)

    @property
    def root_hash(self):
        return self.trie.root_hash

    @root_hash.setter
    def root_hash(self, value):
        self.trie.root_hash = value
