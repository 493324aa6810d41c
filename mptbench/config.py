from mptbench import utils
from mptbench.exceptions import ConfigError
from mptbench.slogging import get_logger
import copy

log = get_logger('config')


default_config = dict(
    # Number of accounts created in phase 1
    NUM_ACCOUNTS=100,
    # Average storage slots per account; counts are drawn from [0, 2 * avg)
    AVG_SLOTS=1000,
    # Accounts rewritten in phase 2, clamped to NUM_ACCOUNTS
    NUM_MODIFY=10,
    # Accounts per commit/flush
    BATCH_SIZE=50,
    # Store location and whether to wipe it first
    DB_PATH='mpt_bench_db',
    CLEAR_DB=True,
    # Phase 1 seed; phase 2 is seeded from the clock unless pinned
    CREATION_SEED=42,
    MODIFICATION_SEED=None,
    # Slot writes per modified account
    SLOT_MODIFICATIONS=500,
    # Phase 2 revisions live above this offset
    MODIFICATION_REVISION_OFFSET=1000000,
    ACCOUNT_BALANCE=utils.ETHER,
    # Slot value policy: dice in [0, 100)
    ZERO_VALUE_PERCENT=20,
    SMALL_VALUE_PERCENT=10,
    # Progress line every N accounts
    PROGRESS_INTERVAL=10,
    # Flushed roots kept on disk; older state is pruned
    TRIE_RETENTION=1,
    # LevelDB tuning
    LEVELDB_COMPRESSION=None,
    LEVELDB_MAX_OPEN_FILES=1024,
    LEVELDB_BLOCK_CACHE_SIZE=256 * utils.MiB,
    LEVELDB_WRITE_BUFFER_SIZE=64 * utils.MiB,
)
assert default_config['ZERO_VALUE_PERCENT'] + \
    default_config['SMALL_VALUE_PERCENT'] <= 100


class BenchConfig(object):

    """
    A validated view over default_config plus overrides.

    Keys are the upper case names of default_config; the common ones are
    also exposed as lower case attributes (n, slots, m, k, db_path, clear).
    """

    def __init__(self, overrides=None, **kwargs):
        self.config = copy.copy(default_config)
        for k, v in list((overrides or {}).items()) + list(kwargs.items()):
            if k not in default_config:
                raise ConfigError("unknown config key: %s" % k)
            self.config[k] = v
        self.validate()

    def __getitem__(self, key):
        return self.config[key]

    def validate(self):
        c = self.config
        for key in ('NUM_ACCOUNTS', 'AVG_SLOTS', 'NUM_MODIFY', 'SLOT_MODIFICATIONS'):
            if c[key] < 0:
                raise ConfigError("%s must not be negative, got %d" % (key, c[key]))
        if c['BATCH_SIZE'] < 1:
            raise ConfigError("BATCH_SIZE must be at least 1, got %d" % c['BATCH_SIZE'])
        if c['TRIE_RETENTION'] < 1:
            raise ConfigError("TRIE_RETENTION must be at least 1")
        if c['PROGRESS_INTERVAL'] < 1:
            raise ConfigError("PROGRESS_INTERVAL must be at least 1")
        if c['ZERO_VALUE_PERCENT'] + c['SMALL_VALUE_PERCENT'] > 100:
            raise ConfigError("value policy percentages exceed 100")
        if c['NUM_MODIFY'] > c['NUM_ACCOUNTS']:
            c['NUM_MODIFY'] = c['NUM_ACCOUNTS']
        # phase 1 revisions are 0 .. creation_batches - 1
        if self.creation_batches > c['MODIFICATION_REVISION_OFFSET']:
            offset = 10 ** len(str(self.creation_batches))
            log.warning('raising modification revision offset',
                        frm=c['MODIFICATION_REVISION_OFFSET'], to=offset,
                        creation_batches=self.creation_batches)
            c['MODIFICATION_REVISION_OFFSET'] = offset

    @property
    def creation_batches(self):
        n, k = self.config['NUM_ACCOUNTS'], self.config['BATCH_SIZE']
        return (n + k - 1) // k

    n = property(lambda self: self.config['NUM_ACCOUNTS'])
    slots = property(lambda self: self.config['AVG_SLOTS'])
    m = property(lambda self: self.config['NUM_MODIFY'])
    k = property(lambda self: self.config['BATCH_SIZE'])
    db_path = property(lambda self: self.config['DB_PATH'])
    clear = property(lambda self: self.config['CLEAR_DB'])

    def leveldb_options(self):
        return dict(
            compression=self.config['LEVELDB_COMPRESSION'],
            max_open_files=self.config['LEVELDB_MAX_OPEN_FILES'],
            lru_cache_size=self.config['LEVELDB_BLOCK_CACHE_SIZE'],
            write_buffer_size=self.config['LEVELDB_WRITE_BUFFER_SIZE'],
        )
