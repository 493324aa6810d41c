import pytest
from mptbench.db import EphemDB, LevelDB
from mptbench.state import StateDatabase, ZERO_WORD
from mptbench.trie import Trie, BLANK_ROOT
from mptbench.triedb import TrieDB, HEAD_KEY, revision_key, refcount_key
from mptbench.exceptions import CommitError, ViewAlreadyOpen, ViewReleased
from mptbench.tests.conftest import BrokenReadsDB, live_nodes, stored_nodes
from mptbench.utils import sha3

ALICE = sha3(b'alice')[:20]
BOB = sha3(b'bob')[:20]


def word(i):
    return i.to_bytes(32, byteorder='big')


def test_view_roundtrip(state_db):
    view = state_db.open_at()
    view.set_balance(ALICE, 10 ** 18)
    view.set_nonce(ALICE, 7)
    view.set_state(ALICE, sha3(b'slot-0'), word(1))
    view.set_state(ALICE, sha3(b'slot-1'), word(2 ** 255))
    root = view.commit(0)
    state_db.flush(root)
    view.release()

    with state_db.open_at(root) as view:
        assert view.account_exists(ALICE)
        assert not view.account_exists(BOB)
        assert view.get_balance(ALICE) == 10 ** 18
        assert view.get_nonce(ALICE) == 7
        assert view.get_state(ALICE, sha3(b'slot-0')) == word(1)
        assert view.get_state(ALICE, sha3(b'slot-1')) == word(2 ** 255)
        assert view.get_state(ALICE, sha3(b'slot-2')) == ZERO_WORD


def test_zero_value_is_not_stored(state_db):
    view = state_db.open_at()
    view.set_balance(ALICE, 1)
    root_without = view.commit(0)
    view.set_state(ALICE, sha3(b'slot-0'), ZERO_WORD)
    assert view.commit(1) == root_without

    view.set_state(ALICE, sha3(b'slot-0'), word(5))
    root_with = view.commit(2)
    assert root_with != root_without
    view.set_state(ALICE, sha3(b'slot-0'), ZERO_WORD)
    assert view.commit(3) == root_without


def test_commit_is_deterministic():
    roots = []
    for _ in range(2):
        state_db = StateDatabase(EphemDB())
        view = state_db.open_at()
        for i in range(30):
            addr = sha3(b'account-%d' % i)[:20]
            view.set_balance(addr, i)
            view.set_state(addr, sha3(b'%d' % i), word(i + 1))
        roots.append(view.commit(0))
    assert roots[0] == roots[1]


def test_single_view_ownership(state_db):
    view = state_db.open_at()
    with pytest.raises(ViewAlreadyOpen):
        state_db.open_at()
    view.release()
    with pytest.raises(ViewReleased):
        view.set_balance(ALICE, 1)
    view.release()  # idempotent
    state_db.open_at().release()


def test_revision_bookkeeping(state_db):
    view = state_db.open_at()
    view.set_balance(ALICE, 1)
    r0 = view.commit(0)
    view.set_balance(BOB, 1)
    r1 = view.commit(1000000)
    assert state_db.root_at(0) == r0
    assert state_db.root_at(1000000) == r1
    state_db.flush(r1)
    assert state_db.db.get(revision_key(0)) == r0
    assert state_db.db.get(revision_key(1000000)) == r1
    assert state_db.head() == r1


def test_flush_writes_only_reachable_nodes():
    db = EphemDB()
    triedb = TrieDB(db)
    t = Trie(triedb)
    for i in range(50):
        t.update(sha3(b'k%d' % i), b'v%d' % i * 10)
        t.root_hash  # leaves intermediate roots in the buffer
    root = t.root_hash
    buffered = len(triedb.dirty)
    written, discarded, pruned = triedb.commit(root)
    assert written + discarded == buffered
    assert pruned == 0
    assert discarded > 0
    assert not triedb.dirty
    assert db.get(HEAD_KEY) == root
    reloaded = Trie(TrieDB(db), root)
    for i in range(50):
        assert reloaded.get(sha3(b'k%d' % i)) == b'v%d' % i * 10


def test_flush_follows_storage_roots(state_db):
    view = state_db.open_at()
    for i in range(5):
        addr = sha3(b'a%d' % i)[:20]
        view.set_balance(addr, 1)
        for j in range(40):
            view.set_state(addr, sha3(b's%d' % j), word(j + 1))
    root = view.commit(0)
    state_db.flush(root)
    view.release()

    # a fresh store over the same backend sees the full state
    fresh = StateDatabase(state_db.db)
    with fresh.open_at(root) as v:
        for i in range(5):
            addr = sha3(b'a%d' % i)[:20]
            for j in range(40):
                assert v.get_state(addr, sha3(b's%d' % j)) == word(j + 1)


def test_discard_drops_unflushed(state_db):
    view = state_db.open_at()
    view.set_balance(ALICE, 1)
    view.commit(0)
    assert state_db.triedb.dirty
    view.release()
    state_db.discard()
    assert not state_db.triedb.dirty
    assert not state_db.triedb.pending
    assert state_db.head() == BLANK_ROOT


def test_leveldb_state_persists(leveldb_path):
    state_db = StateDatabase(LevelDB(leveldb_path))
    view = state_db.open_at()
    view.set_balance(ALICE, 42)
    view.set_state(ALICE, sha3(b'x'), word(3))
    root = view.commit(0)
    state_db.flush(root)
    state_db.close()

    state_db = StateDatabase(LevelDB(leveldb_path))
    assert state_db.head() == root
    with state_db.open_at(root) as view:
        assert view.get_balance(ALICE) == 42
        assert view.get_state(ALICE, sha3(b'x')) == word(3)
    state_db.close()


def write_state(view, version, accounts=4, slots=30):
    for i in range(accounts):
        addr = sha3(b'a%d' % i)[:20]
        view.set_balance(addr, version)
        for j in range(slots):
            view.set_state(addr, sha3(b's%d' % j), word(version * 1000 + j + 1))


def test_flush_prunes_replaced_state(state_db):
    view = state_db.open_at()
    write_state(view, 1)
    r1 = view.commit(0)
    assert state_db.flush(r1)[2] == 0
    old = live_nodes(state_db.db, r1)
    assert stored_nodes(state_db.db) == old

    write_state(view, 2)
    r2 = view.commit(1)
    pruned = state_db.flush(r2)[2]
    view.release()
    assert pruned > 0
    assert stored_nodes(state_db.db) == live_nodes(state_db.db, r2)
    # every stored node carries a reference count, pruned ones don't
    for key in stored_nodes(state_db.db):
        assert refcount_key(key) in state_db.db
    for key in old - stored_nodes(state_db.db):
        assert refcount_key(key) not in state_db.db


def test_flush_keeps_retained_roots():
    state_db = StateDatabase(EphemDB(), retention=2)
    view = state_db.open_at()
    roots = []
    for version in range(1, 5):
        write_state(view, version, accounts=2, slots=10)
        roots.append(view.commit(version))
        state_db.flush(roots[-1])
    view.release()
    assert state_db.triedb.retained_roots() == roots[-2:]
    assert stored_nodes(state_db.db) == \
        live_nodes(state_db.db, roots[-1]) | live_nodes(state_db.db, roots[-2])
    with state_db.open_at(roots[-2]) as view:
        assert view.get_balance(sha3(b'a0')[:20]) == 3


def test_unchanged_root_is_not_pruned(state_db):
    view = state_db.open_at()
    write_state(view, 1, accounts=2, slots=5)
    root = view.commit(0)
    state_db.flush(root)
    # an empty batch commits the same root again
    assert view.commit(1) == root
    assert state_db.flush(root)[2] == 0
    view.release()
    assert stored_nodes(state_db.db) == live_nodes(state_db.db, root)


def test_pruning_survives_reopen(leveldb_path):
    state_db = StateDatabase(LevelDB(leveldb_path))
    view = state_db.open_at()
    write_state(view, 1, accounts=2, slots=10)
    r1 = view.commit(0)
    state_db.flush(r1)
    view.release()
    state_db.close()

    state_db = StateDatabase(LevelDB(leveldb_path))
    assert state_db.triedb.retained_roots() == [r1]
    view = state_db.open_at(r1)
    write_state(view, 2, accounts=2, slots=10)
    r2 = view.commit(1)
    assert state_db.flush(r2)[2] > 0
    view.release()
    with pytest.raises(KeyError):
        Trie(state_db.triedb, r1)
    with state_db.open_at(r2) as view:
        assert view.get_balance(sha3(b'a1')[:20]) == 2
    state_db.close()


def test_store_read_failure_becomes_commit_error():
    db = BrokenReadsDB()
    state_db = StateDatabase(db)
    view = state_db.open_at()
    write_state(view, 1, accounts=1, slots=10)
    root = view.commit(0)
    state_db.flush(root)
    view.release()

    view = state_db.open_at(root)
    addr = sha3(b'a0')[:20]
    view.get_balance(addr)
    db.broken = True
    # the storage trie is only read at commit time
    view.set_state(addr, sha3(b's0'), word(5))
    with pytest.raises(CommitError):
        view.commit(1)


def test_set_state_rejects_short_values(state_db):
    with state_db.open_at() as view:
        with pytest.raises(ValueError):
            view.set_state(ALICE, sha3(b'x'), b'\x01')
