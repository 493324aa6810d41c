class BenchError(Exception):
    pass


class ConfigError(BenchError):
    pass


class StoreOpenError(BenchError):
    pass


class StoreError(BenchError):
    """A read from the backing store failed."""


class CommitError(BenchError):
    pass


class ViewAlreadyOpen(BenchError):
    pass


class ViewReleased(BenchError):
    pass
