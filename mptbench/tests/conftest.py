import pytest
import rlp
from _pytest.logging import caplog_handler_key

from mptbench import slogging
from mptbench.db import EphemDB, LevelDB
from mptbench.state import Account, StateDatabase
from mptbench.trie import BLANK_NODE, BLANK_ROOT, child_refs, node_values
from mptbench.exceptions import CommitError, StoreError


# Connect the caplog handler to slogging's root logger
@pytest.hookimpl(hookwrapper=True, trylast=True)
def pytest_runtest_call(item):
    catchlog_handler = item.stash.get(caplog_handler_key, None)
    if catchlog_handler and catchlog_handler not in slogging.rootLogger.handlers:
        slogging.rootLogger.addHandler(catchlog_handler)

    _ = yield

    if catchlog_handler and catchlog_handler in slogging.rootLogger.handlers:
        slogging.rootLogger.removeHandler(catchlog_handler)


class FailingStateDatabase(StateDatabase):

    """Fails the `fail_on`-th flush (1 based)."""

    def __init__(self, db, fail_on):
        super(FailingStateDatabase, self).__init__(db)
        self.fail_on = fail_on
        self.flushes = 0

    def flush(self, root):
        self.flushes += 1
        if self.flushes == self.fail_on:
            raise CommitError('disk full')
        return super(FailingStateDatabase, self).flush(root)


class BrokenReadsDB(EphemDB):

    """Reads fail once `broken` is set or `break_after` commits went through."""

    def __init__(self, break_after=None):
        super(BrokenReadsDB, self).__init__()
        self.break_after = break_after
        self.commits = 0
        self.broken = False

    def get(self, key):
        if self.broken:
            raise StoreError('read error')
        return super(BrokenReadsDB, self).get(key)

    def commit(self):
        self.commits += 1
        if self.commits == self.break_after:
            self.broken = True


def live_nodes(db, root):
    """Hashes of the stored nodes of the state at `root`, storage included."""
    seen = set()
    stack = [(root, True)]
    while stack:
        ref, accounts = stack.pop()
        if isinstance(ref, list):
            node = ref
        elif ref in (BLANK_NODE, BLANK_ROOT) or ref in seen:
            continue
        else:
            seen.add(ref)
            node = rlp.decode(db.get(ref))
        stack.extend((child, accounts) for child in child_refs(node))
        if accounts:
            stack.extend((rlp.decode(v, Account).storage, False)
                         for v in node_values(node))
    return seen


def stored_nodes(db):
    return set(k for k in db.db if len(k) == 32)


class RecordingReporter(object):

    def __init__(self):
        self.events = []

    def __getattr__(self, name):
        if not name.startswith('on_'):
            raise AttributeError(name)

        def record(*args, **kwargs):
            self.events.append((name, args, kwargs))
        return record

    def names(self):
        return [e[0] for e in self.events]


@pytest.fixture
def state_db():
    return StateDatabase(EphemDB())


@pytest.fixture
def leveldb_path(tmp_path):
    return str(tmp_path / 'chaindata')


@pytest.fixture
def leveldb(leveldb_path):
    db = LevelDB(leveldb_path)
    yield db
    db.close()


@pytest.fixture
def recorder():
    return RecordingReporter()
