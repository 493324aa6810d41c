from collections import namedtuple
from mptbench.exceptions import CommitError, StoreError
from mptbench.slogging import get_logger

log = get_logger('sched')


BatchResult = namedtuple('BatchResult',
                         ['phase', 'batch', 'revision', 'root', 'sample', 'error'])


class BatchScheduler(object):

    """
    Commits every `batch_size` units and at the end of a phase.

    Each commit hands the view back and gets a fresh one rooted at the new
    root, so the mutations buffered for a batch are dropped with the old
    view. Failures are returned in the BatchResult, never raised.
    """

    def __init__(self, state_db, batch_size, phase, revision_offset=0,
                 collector=None):
        if batch_size < 1:
            raise ValueError("batch size must be at least 1, got %r" % batch_size)
        self.state_db = state_db
        self.batch_size = batch_size
        self.phase = phase
        self.revision_offset = revision_offset
        self.collector = collector
        self.log = log.bind(phase=phase)

    def is_boundary(self, i, total):
        return (i + 1) % self.batch_size == 0 or i + 1 == total

    def revision(self, i):
        return i // self.batch_size + self.revision_offset

    def batch_number(self, i):
        return i // self.batch_size + 1

    def boundaries(self, total):
        return [i for i in range(total) if self.is_boundary(i, total)]

    def commit(self, view, i):
        """Commit and flush `view` for the batch containing unit `i`.

        :return: (view, result); view is the reopened view at the new root,
            or None when the commit or the reopen failed
        """
        batch, revision = self.batch_number(i), self.revision(i)
        try:
            root = view.commit(revision)
            self.state_db.flush(root)
        except CommitError as e:
            self.log.error('commit failed', batch=batch, revision=revision, error=e)
            view.release()
            self.state_db.discard()
            return None, BatchResult(self.phase, batch, revision, None, None, e)
        view.release()
        try:
            view = self.state_db.open_at(root)
        except StoreError as e:
            # root is durable, only the next view is missing
            self.log.error('reopen failed', batch=batch, root=root.hex()[:8], error=e)
            return None, BatchResult(self.phase, batch, revision, root, None, e)
        sample = self.collector.sample() if self.collector else None
        self.log.debug('batch committed', batch=batch, revision=revision,
                       root=root.hex()[:8])
        return view, BatchResult(self.phase, batch, revision, root, sample, None)
