"""
Two phase state trie benchmark.

    init -> creating -> creation_done -> modifying -> modification_done
         -> reporting -> terminated

A failed store open or commit jumps straight to terminated; the run
result then carries the error and no final report is emitted.
"""
import shutil
from mptbench import workload
from mptbench.config import BenchConfig
from mptbench.db import LevelDB
from mptbench.state import StateDatabase
from mptbench.trie import BLANK_ROOT
from mptbench.scheduler import BatchScheduler
from mptbench.metrics import MetricsCollector
from mptbench.exceptions import StoreOpenError, StoreError
from mptbench.slogging import get_logger

log = get_logger('bench')

(
    INIT,
    CREATING,
    CREATION_DONE,
    MODIFYING,
    MODIFICATION_DONE,
    REPORTING,
    TERMINATED
) = ('init', 'creating', 'creation_done', 'modifying', 'modification_done',
     'reporting', 'terminated')

CREATION = 'creation'
MODIFICATION = 'modification'


class BenchmarkResult(object):

    def __init__(self, db_path=None):
        self.db_path = db_path
        self.ok = False
        self.error = None
        self.current_root = BLANK_ROOT
        self.batches = []
        self.addresses = []
        self.creation = None
        self.modification = None
        self.disk_bytes = 0
        self.transitions = []

    @property
    def roots(self):
        return [b.root for b in self.batches if b.error is None]

    @property
    def account_count(self):
        return len(self.addresses)

    def __repr__(self):
        return '<BenchmarkResult ok=%r batches=%d root=%s>' % (
            self.ok, len(self.batches), self.current_root.hex()[:8])


class Benchmark(object):

    def __init__(self, config=None, state_db=None, reporters=None,
                 creation_rng=None, modification_rng=None, collector=None):
        self.config = config or BenchConfig()
        self.state_db = state_db
        self.reporters = list(reporters or [])
        self.creation_rng = creation_rng or \
            workload.creation_rng(self.config['CREATION_SEED'])
        self.modification_rng = modification_rng or \
            workload.modification_rng(self.config['MODIFICATION_SEED'])
        db_path = state_db.path if state_db is not None else self.config.db_path
        self.collector = collector or MetricsCollector(db_path)
        self.result = BenchmarkResult(db_path)
        self.status = None

    def _notify(self, hook, *args, **kwargs):
        for reporter in self.reporters:
            getattr(reporter, hook)(*args, **kwargs)

    def _transition(self, status):
        log.debug('transition', frm=self.status, to=status)
        self.status = status
        self.result.transitions.append(status)

    def _open_store(self):
        path = self.config.db_path
        if self.config.clear:
            self._notify('on_clear', path)
            shutil.rmtree(path, ignore_errors=True)
        self._notify('on_open', path)
        return StateDatabase(LevelDB(path, **self.config.leveldb_options()),
                             retention=self.config['TRIE_RETENTION'])

    def _run_phase(self, phase, units, total, scheduler, view, apply):
        """Apply `units` to `view`, committing at every batch boundary.

        :return: (view, processed slot writes); view is None on failure
        """
        processed = 0
        for i, unit in enumerate(units):
            try:
                apply(view, unit)
            except StoreError as e:
                view.release()
                self.state_db.discard()
                self.result.error = e
                self._notify('on_error', 'update %s state' % phase, e,
                             phase=phase, batch=scheduler.batch_number(i))
                return None, processed
            processed += len(unit.slots)
            self._notify('on_progress', phase, i + 1, total)
            if not scheduler.is_boundary(i, total):
                continue
            view, batch = scheduler.commit(view, i)
            self.result.batches.append(batch)
            if batch.error is not None:
                if batch.root is not None:
                    # flushed, but the next view could not be opened
                    self.result.current_root = batch.root
                self.result.error = batch.error
                operation = 'commit %s batch' % phase if batch.root is None \
                    else 'reopen state view'
                self._notify('on_error', operation, batch.error,
                             phase=phase, batch=batch.batch)
                return None, processed
            self.result.current_root = batch.root
            self._notify('on_batch', batch)
        return view, processed

    def _apply_creation(self, view, unit):
        view.set_balance(unit.address, unit.balance)
        view.set_nonce(unit.address, unit.nonce)
        for key, value in unit.slots:
            view.set_state(unit.address, key, value)

    def _apply_modification(self, view, unit):
        for key, value in unit.slots:
            view.set_state(unit.address, key, value)

    def _create(self, view):
        c = self.config
        self._notify('on_phase_start', CREATION, c.n, c)
        self.collector.start_phase(CREATION)
        scheduler = BatchScheduler(self.state_db, c.k, CREATION,
                                   collector=self.collector)
        units = workload.creation_workload(
            self.creation_rng, c.n, c.slots, c['ACCOUNT_BALANCE'],
            c['ZERO_VALUE_PERCENT'], c['SMALL_VALUE_PERCENT'])
        addresses = self.result.addresses

        def apply(view, unit):
            addresses.append(unit.address)
            self._apply_creation(view, unit)

        view, processed = self._run_phase(CREATION, units, c.n, scheduler,
                                          view, apply)
        if view is not None:
            self.result.creation = self.collector.finish_phase(processed)
            self._notify('on_phase_done', self.result.creation,
                         self.result.current_root)
        return view

    def _modify(self, view):
        c = self.config
        self._notify('on_phase_start', MODIFICATION, c.m, c)
        self.collector.start_phase(MODIFICATION)
        scheduler = BatchScheduler(self.state_db, c.k, MODIFICATION,
                                   revision_offset=c['MODIFICATION_REVISION_OFFSET'],
                                   collector=self.collector)
        units = workload.modification_workload(
            self.modification_rng, self.result.addresses, c.slots, c.m,
            c['SLOT_MODIFICATIONS'])
        view, processed = self._run_phase(MODIFICATION, units, c.m, scheduler,
                                          view, self._apply_modification)
        if view is not None:
            self.result.modification = self.collector.finish_phase(processed)
            self._notify('on_phase_done', self.result.modification,
                         self.result.current_root)
        return view

    def run(self):
        result = self.result
        self._transition(INIT)
        owns_store = self.state_db is None
        if owns_store:
            try:
                self.state_db = self._open_store()
            except StoreOpenError as e:
                result.error = e
                self._notify('on_error', 'open LevelDB', e)
                self._transition(TERMINATED)
                return result
        try:
            view = self.state_db.open_at(BLANK_ROOT)
            self._transition(CREATING)
            view = self._create(view)
            if view is None:
                return result
            self._transition(CREATION_DONE)

            # phase 2 continues on the view phase 1 left at current_root
            self._transition(MODIFYING)
            view = self._modify(view)
            if view is None:
                return result
            self._transition(MODIFICATION_DONE)
            view.release()

            self._transition(REPORTING)
            result.disk_bytes = self.collector.disk_size()
            result.ok = True
            self._notify('on_report', result)
            return result
        finally:
            if owns_store:
                self.state_db.close()
            self._transition(TERMINATED)


def run_benchmark(config=None, **kwargs):
    return Benchmark(config, **kwargs).run()
