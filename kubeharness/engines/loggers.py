"""
Loggers and formatters of the harness.

There is no process-wide logger that the harness writes to implicitly:
every tracker gets its logger explicitly, usually one per test session
(see `make_logger`), and the per-object messages are logged via adapters
that carry the object's identity (see `ObjectLogger`).

The identity is passed to the formatters as an ``extra`` field ``k8s_ref``:
the text formatters prefix the messages with it, the JSON formatters put it
into a separate field of the JSON record, so that the log parsers can filter
the messages of one specific object.
"""
import copy
import enum
import logging
from typing import Any, Mapping, MutableMapping, Optional, TextIO, Tuple, Type, Union

import pythonjsonlogger.core
import pythonjsonlogger.json

from kubeharness.helpers import typedefs
from kubeharness.structs import bodies, identities

DEFAULT_JSON_REFKEY = 'object'
""" A key for object references in JSON logs, as seen by the log parsers. """

# The JSON severities of the log levels, up to and including that level.
_SEVERITIES = [
    (logging.DEBUG, 'debug'),
    (logging.INFO, 'info'),
    (logging.WARNING, 'warn'),
    (logging.ERROR, 'error'),
]


class LogFormat(enum.Enum):
    """ Log formats, as specified on CLI or in the pytest options. """
    PLAIN = '%(message)s'
    FULL = '[%(asctime)s] %(name)-20.20s [%(levelname)-8.8s] %(message)s'
    JSON = enum.auto()


def _get_ref(record: logging.LogRecord) -> Optional[Mapping[str, Any]]:
    return getattr(record, 'k8s_ref', None)


def _format_ref(ref: Mapping[str, Any]) -> str:
    kind = ref.get('kind') or ''
    namespace = ref.get('namespace')
    name = ref.get('name') or ''
    return f"[{kind} {namespace}/{name}]" if namespace else f"[{kind} {name}]"


class ObjectFormatter(logging.Formatter):
    """ A base class of the harness's own formatters, to tell them apart. """


class ObjectTextFormatter(ObjectFormatter):
    pass


class ObjectJsonFormatter(ObjectFormatter, pythonjsonlogger.json.JsonFormatter):
    """
    Format the records as JSON, with the object's identity as a nested field.

    The raw ``k8s_ref`` extra is never dumped as is, only under the ref-key.
    """

    def __init__(self, *args: Any, refkey: Optional[str] = None, **kwargs: Any) -> None:
        reserved = set(kwargs.pop('reserved_attrs', pythonjsonlogger.core.RESERVED_ATTRS))
        kwargs['reserved_attrs'] = reserved | {'k8s_ref'}
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, **kwargs)
        self.refkey = refkey or DEFAULT_JSON_REFKEY

    def add_fields(
            self,
            log_record: MutableMapping[str, Any],
            record: logging.LogRecord,
            message_dict: MutableMapping[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        ref = _get_ref(record)
        if ref is not None:
            log_record[self.refkey] = ref
        log_record.setdefault('severity', next(
            (severity for levelno, severity in _SEVERITIES if record.levelno <= levelno),
            'fatal'))


class ObjectPrefixingMixin(ObjectFormatter):
    """ Prepend the object's identity to the message, e.g. ``[Pod ns/name] ...``. """

    def format(self, record: logging.LogRecord) -> str:
        ref = _get_ref(record)
        if ref is not None:
            # The record is shared by all the handlers; only this one gets the prefix.
            record = copy.copy(record)
            record.msg = f"{_format_ref(ref)} {record.msg}"
        return super().format(record)


class ObjectPrefixingTextFormatter(ObjectPrefixingMixin, ObjectTextFormatter):
    pass


class ObjectPrefixingJsonFormatter(ObjectPrefixingMixin, ObjectJsonFormatter):
    pass


class ObjectLogger(typedefs.LoggerAdapter):
    """
    A logger/adapter to carry the object identifiers for formatting.

    Constructed for every individual object when it is being operated on.
    Only the identity is carried, never the object's body: the body can
    change while the message is being formatted or sent elsewhere.
    """

    def __init__(self, logger: typedefs.Logger, *, identity: identities.Identity) -> None:
        ref = {'kind': identity.kind, 'namespace': identity.namespace, 'name': identity.name}
        super().__init__(logger, {'k8s_ref': ref})

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> Tuple[str, MutableMapping[str, Any]]:
        # The per-call extras are kept, not replaced by the adapter's ones.
        kwargs['extra'] = {**(self.extra or {}), **kwargs.get('extra', {})}
        return msg, kwargs


def make_formatter(
        log_format: Union[str, LogFormat] = LogFormat.FULL,
        log_prefix: Optional[bool] = None,
        log_refkey: Optional[str] = None,
) -> ObjectFormatter:
    """
    Build a formatter for the requested format.

    The prefixes are added by default to the text formats, but not to JSON,
    where the object's identity goes to its own field anyway.
    """
    if log_format is LogFormat.JSON:
        json_cls = ObjectPrefixingJsonFormatter if log_prefix else ObjectJsonFormatter
        return json_cls(refkey=log_refkey)

    if isinstance(log_format, LogFormat):
        fmt = str(log_format.value)
    elif isinstance(log_format, str):
        fmt = log_format
    else:
        raise ValueError(f"Unsupported log format: {log_format!r}")

    text_cls: Type[ObjectFormatter] = ObjectTextFormatter
    if log_prefix or log_prefix is None:
        text_cls = ObjectPrefixingTextFormatter
    return text_cls(fmt)


def make_logger(
        name: str = 'kubeharness',
        *,
        level: Optional[Union[int, str]] = None,
        stream: Optional[TextIO] = None,
        log_format: Union[str, LogFormat] = LogFormat.FULL,
        log_prefix: Optional[bool] = None,
        log_refkey: Optional[str] = None,
) -> logging.Logger:
    """
    Construct a logger for one test session (or for one tracker).

    The messages always propagate to the root logger, so that pytest captures
    them as usual. If a stream is given, the messages are also written there
    in the requested format: e.g. to a file with the session's JSON log.

    The level is left as configured elsewhere (by the CLI, by pytest, or by
    the logging config of the tests) unless it is explicitly requested.

    The logger must be closed with `close_logger` when the session is over.
    """
    logger = logging.getLogger(name)
    logger.propagate = True
    if level is not None:
        logger.setLevel(level)
    if stream is not None:
        handler = logging.StreamHandler(stream)
        handler.setFormatter(make_formatter(log_format, log_prefix, log_refkey))
        logger.addHandler(handler)
    return logger


def close_logger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def log_object(
        logger: typedefs.Logger,
        obj: bodies.Object,
        *,
        level: int = logging.DEBUG,
) -> None:
    """ Dump the whole object's body to the log, e.g. for the post-mortems. """
    logger.log(level, "%r\n%s", obj, obj.as_json())


def configure(
        debug: Optional[bool] = None,
        verbose: Optional[bool] = None,
        quiet: Optional[bool] = None,
        log_format: Union[str, LogFormat] = LogFormat.FULL,
        log_prefix: Optional[bool] = None,
        log_refkey: Optional[str] = None,
) -> None:
    """
    Configure the root logger for the CLI commands (not for the tests).

    The debug & verbose modes show everything, the quiet mode only
    the warnings & errors, the default mode also the informational messages.
    The asyncio's own messages are muted unless in the debug mode.
    """
    formatter = make_formatter(log_format, log_prefix, log_refkey)
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug or verbose else logging.WARNING if quiet else logging.INFO)

    asyncio_logger = logging.getLogger('asyncio')
    asyncio_logger.propagate = bool(debug)
    if not debug:
        asyncio_logger.handlers[:] = [logging.NullHandler()]
