import click
from mptbench.utils import to_mb
from mptbench.slogging import get_logger


PHASE_TITLES = {
    'creation': 'Creation',
    'modification': 'Modification',
}


def short_root(root):
    return '0x' + root.hex()[:8]


class Reporter(object):

    """Observer of a benchmark run; every hook is optional."""

    def on_clear(self, path):
        pass

    def on_open(self, path):
        pass

    def on_phase_start(self, phase, total, config):
        pass

    def on_progress(self, phase, done, total):
        pass

    def on_batch(self, result):
        pass

    def on_phase_done(self, stats, root):
        pass

    def on_report(self, result):
        pass

    def on_error(self, operation, error, phase=None, batch=None):
        pass


class ConsoleReporter(Reporter):

    def __init__(self, interval=10, echo=click.echo):
        self.interval = interval
        self.echo = echo
        self._progress_open = False

    def _end_progress(self):
        if self._progress_open:
            self.echo('')
            self._progress_open = False

    def on_clear(self, path):
        self.echo('Cleaning up old database at %s...' % path)

    def on_open(self, path):
        self.echo('Initializing LevelDB at %s (Compression: Off)...' % path)
        self.echo('Initializing trie database (Pruning: On).')

    def on_phase_start(self, phase, total, config):
        if phase == 'creation':
            self.echo('Phase 1: Creating %d accounts with variable slots (avg %d, k=%d)...' %
                      (total, config.slots, config.k))
        else:
            self.echo('Phase 2: Randomly modifying slots in %d accounts (k=%d)...' %
                      (total, config.k))

    def on_progress(self, phase, done, total):
        if done % self.interval and done != total:
            return
        verb = 'processed' if phase == 'creation' else 'modified'
        self.echo('...%s %d/%d accounts (%.1f%%)\r' %
                  (verb, done, total, 100.0 * done / total), nl=False)
        self._progress_open = True

    def on_batch(self, result):
        self._end_progress()
        label = 'Batch' if result.phase == 'creation' else 'Mod Batch'
        self.echo('[%s %d] Root: %s | Disk: %.2f MB | Mem: %.2f MB' % (
            label, result.batch, short_root(result.root),
            to_mb(result.sample.disk_bytes), to_mb(result.sample.rss_bytes)))

    def on_phase_done(self, stats, root):
        self._end_progress()
        unit = 'slots created' if stats.name == 'creation' else 'slots modified'
        self.echo('%s finished in %.3fs (%d %s, %.1f/s). Final Root: 0x%s' % (
            PHASE_TITLES[stats.name], stats.elapsed, stats.units, unit,
            stats.throughput, root.hex()))

    def on_report(self, result):
        self.echo('')
        self.echo('--- Final Report ---')
        self.echo('Database Path: %s' % result.db_path)
        self.echo('Final Root:    0x%s' % result.current_root.hex())
        self.echo('Disk Usage:    %.2f MB' % to_mb(result.disk_bytes))

    def on_error(self, operation, error, phase=None, batch=None):
        self._end_progress()
        context = []
        if phase:
            context.append('phase=%s' % phase)
        if batch is not None:
            context.append('batch=%d' % batch)
        self.echo('Failed to %s%s: %s' % (
            operation, ' (%s)' % ', '.join(context) if context else '', error))


class LogReporter(Reporter):

    """Emits the run as structured slogging events."""

    def __init__(self, logger=None, level='info'):
        logger = logger or get_logger('bench.report')
        self.emit = getattr(logger, level)
        self.log = logger

    def on_phase_start(self, phase, total, config):
        self.emit('phase started', phase=phase, accounts=total, batch_size=config.k)

    def on_batch(self, result):
        self.emit('batch', phase=result.phase, batch=result.batch,
                  revision=result.revision, root=result.root.hex(),
                  disk_bytes=result.sample.disk_bytes,
                  rss_bytes=result.sample.rss_bytes)

    def on_phase_done(self, stats, root):
        self.emit('phase done', phase=stats.name, elapsed=stats.elapsed,
                  units=stats.units, throughput=stats.throughput,
                  root=root.hex())

    def on_report(self, result):
        self.emit('report', db_path=result.db_path,
                  root=result.current_root.hex(),
                  disk_bytes=result.disk_bytes)

    def on_error(self, operation, error, phase=None, batch=None):
        self.log.error('failed', operation=operation, phase=phase, batch=batch,
                       error=str(error))
