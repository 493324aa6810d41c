import os
import time
from collections import namedtuple
import psutil
from mptbench.slogging import get_logger

log = get_logger('metrics')


Sample = namedtuple('Sample', ['rss_bytes', 'disk_bytes'])

PhaseStats = namedtuple('PhaseStats', ['name', 'elapsed', 'units', 'throughput'])


def _raise(err):
    raise err


def get_dir_size(path):
    """Total size of the regular files below `path`; 0 if it can't be walked."""
    if not path:
        return 0
    size = 0
    try:
        if not os.path.isdir(path):
            return os.path.getsize(path)
        for root, _, files in os.walk(path, onerror=_raise):
            for f in files:
                fp = os.path.join(root, f)
                if not os.path.islink(fp):
                    size += os.path.getsize(fp)
    except OSError as e:
        log.debug('dir size failed', path=path, error=e)
        return 0
    return size


def get_rss():
    return psutil.Process(os.getpid()).memory_info().rss


class MetricsCollector(object):

    """
    Samples process memory and store size, and times phases.
    Nothing it returns feeds back into the workload.
    """

    def __init__(self, db_path=None, clock=time.time):
        self.db_path = db_path
        self.clock = clock
        self._phase = None
        self._started = None

    def sample(self):
        return Sample(get_rss(), get_dir_size(self.db_path))

    def disk_size(self):
        return get_dir_size(self.db_path)

    def start_phase(self, name):
        self._phase = name
        self._started = self.clock()

    def finish_phase(self, units):
        elapsed = self.clock() - self._started
        throughput = units / elapsed if elapsed > 0 else 0.0
        stats = PhaseStats(self._phase, elapsed, units, throughput)
        self._phase = self._started = None
        return stats
