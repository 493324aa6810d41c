"""
Structured logging on top of the standard library.

Loggers take an event name plus keyword context::

    log = get_logger('triedb')
    log.debug('flushed', written=12, pruned=3)

which renders as ``flushed written=12 pruned=3`` or, with JSON output, as
``{"event": "triedb.flushed", "level": "DEBUG", "written": 12, ...}``.
Levels are set with config strings such as ``':info,triedb:debug'``.

The loggers live in their own hierarchy under ``rootLogger`` so that
configuring them leaves other libraries' logging alone.
"""
import json
import logging
from logging import StreamHandler, FileHandler, Formatter

DEFAULT_LOGLEVEL = 'INFO'

PRINT_FORMAT = '%(levelname)s:%(name)s\t%(message)s'
JSON_FORMAT = '%(message)s'
FILE_PREFIX = '%(asctime)s '

TRACE = 5
logging.addLevelName(TRACE, 'TRACE')
logging.TRACE = TRACE


def _jsonable(value):
    if value is None or isinstance(value, (bool, int, float, str, list, dict)):
        return value
    if isinstance(value, bytes):
        return '0x' + value.hex()
    return repr(value)


class BoundLogger(object):

    """A logger with context that is added to every event."""

    def __init__(self, logger, context):
        self.logger = logger
        self.context = context

    def bind(self, **kwargs):
        return BoundLogger(self, kwargs)

    def _emit(self, method, msg, **kwargs):
        context = dict(self.context)
        context.update(kwargs)
        return getattr(self.logger, method)(msg, **context)

    def trace(self, msg, **kwargs):
        return self._emit('trace', msg, **kwargs)

    def debug(self, msg, **kwargs):
        return self._emit('debug', msg, **kwargs)

    def info(self, msg, **kwargs):
        return self._emit('info', msg, **kwargs)

    def warning(self, msg, **kwargs):
        return self._emit('warning', msg, **kwargs)

    def error(self, msg, **kwargs):
        return self._emit('error', msg, **kwargs)

    def critical(self, msg, **kwargs):
        return self._emit('critical', msg, **kwargs)

    warn = warning


class SLogger(logging.Logger):

    log_json = False

    def is_active(self, level_name='trace'):
        return self.isEnabledFor(logging.getLevelName(level_name.upper()))

    def bind(self, **kwargs):
        return BoundLogger(self, kwargs)

    def trace(self, msg, *args, **kwargs):
        if self.isEnabledFor(TRACE):
            self._log(TRACE, msg, args, **kwargs)

    warn = logging.Logger.warning

    def render(self, level, event, context):
        if SLogger.log_json:
            message = {'event': '%s.%s' % (self.name, event.lower().replace(' ', '_')),
                       'level': logging.getLevelName(level)}
            message.update((k, _jsonable(v)) for k, v in context.items())
            return json.dumps(message)
        return ' '.join([event] + ['%s=%s' % kv for kv in context.items()])

    def _log(self, level, msg, args, exc_info=None, extra=None, stack_info=False,
             stacklevel=1, **context):
        extra = dict(extra or {}, event=msg, context=context)
        super(SLogger, self)._log(level, self.render(level, msg, context),
                                  args, exc_info=exc_info, extra=extra,
                                  stack_info=stack_info, stacklevel=stacklevel + 1)


rootLogger = SLogger('root', DEFAULT_LOGLEVEL)
SLogger.manager = logging.Manager(rootLogger)
SLogger.manager.setLoggerClass(SLogger)
SLogger.root = rootLogger


def get_logger(name=None):
    """The named SLogger, or the root of the hierarchy."""
    if not name:
        return rootLogger
    return SLogger.manager.getLogger(name)


def configure(config_string=None, log_json=False, log_file=None):
    """
    :param config_string: comma separated ``name:level`` pairs; an empty
        name is the root, e.g. ``':info,triedb:debug'``
    :param log_json: render events as JSON objects
    :param log_file: also append records to this file
    """
    SLogger.log_json = bool(log_json)
    log_format = JSON_FORMAT if log_json else PRINT_FORMAT

    if not rootLogger.handlers:
        rootLogger.addHandler(StreamHandler())
    for handler in rootLogger.handlers:
        if isinstance(handler, FileHandler):
            handler.setFormatter(Formatter(FILE_PREFIX + log_format))
        elif type(handler) is StreamHandler:
            handler.setFormatter(Formatter(log_format))
    if log_file and not any(isinstance(h, FileHandler) for h in rootLogger.handlers):
        handler = FileHandler(log_file)
        handler.setFormatter(Formatter(FILE_PREFIX + log_format))
        rootLogger.addHandler(handler)

    for logger in SLogger.manager.loggerDict.values():
        # skip logging.PlaceHolder entries
        if isinstance(logger, logging.Logger):
            logger.setLevel(logging.NOTSET)
    for item in (config_string or ':' + DEFAULT_LOGLEVEL).split(','):
        name, _, level = item.partition(':')
        get_logger(name.strip()).setLevel(level.strip().upper() or DEFAULT_LOGLEVEL)
