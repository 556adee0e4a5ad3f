"""Logging helpers, allowing messages to use str.format() style placeholders.

Modules in this package fetch their logger with :py:func:`get_logger` and never add handlers.
Scripts call :py:func:`init_logging` once, to print messages to the console and optionally a
log file::

    LOGGER = get_logger(__name__)
    LOGGER.debug('Read {} strings from "{}"', count, filename)

Placeholders are only substituted when arguments are passed, so plain messages may contain
braces freely.
"""
from typing import (
    TYPE_CHECKING, Any, Iterator, Mapping, Optional, Tuple, Type, Union, cast,
)
from pathlib import Path
from types import TracebackType
import contextlib
import contextvars
import logging
import os
import sys


__all__ = [
    'ROOT_NAME', 'DEBUG_VAR', 'LogMessage', 'LoggerAdapter', 'Formatter',
    'get_logger', 'init_logging', 'context',
]
ROOT_NAME = 'dmxparser'
# Set to 1 to show debug messages on the console.
DEBUG_VAR = 'DMXPARSER_DEBUG'
# Record attribute holding the rendered context, used in format strings.
CONTEXT_ATTR = 'dmxparser_context'
# Names pushed by context(), innermost last.
_CONTEXT: 'contextvars.ContextVar[Tuple[str, ...]]' = contextvars.ContextVar(
    'dmxparser_log_context', default=(),
)

if TYPE_CHECKING:
    _AdapterBase = logging.LoggerAdapter[logging.Logger]
else:
    _AdapterBase = logging.LoggerAdapter
_ExcInfo = Union[
    None, bool, BaseException,
    Tuple[Type[BaseException], BaseException, Optional[TracebackType]],
    Tuple[None, None, None],
]


class LogMessage:
    """A deferred message, formatted with :external:py:meth:`str.format` when first displayed.

    Multi-line messages have their continuation lines indented, so they stand out in the log.
    """
    def __init__(self, fmt: object, args: Tuple[object, ...], kwargs: Mapping[str, object]) -> None:
        self.fmt = fmt
        self.args = args
        self.kwargs = kwargs
        self._text: Optional[str] = None

    def format_msg(self) -> str:
        """Substitute the arguments, caching the result."""
        if self._text is None:
            if self.args or self.kwargs:
                self._text = str(self.fmt).format(*self.args, **self.kwargs)
            else:
                self._text = str(self.fmt)
        return self._text

    def __str__(self) -> str:
        text = self.format_msg()
        if '\n' not in text:
            return text
        lines = text.rstrip('\n').split('\n')
        return '\n | '.join(lines) + '\n |___\n'


class LoggerAdapter(_AdapterBase):
    """Wraps a logger so messages use :py:class:`LogMessage`, and include the current context."""
    logger: logging.Logger

    def __init__(self, logger: logging.Logger) -> None:
        super().__init__(logger, {})

    def log(
        self,
        level: int,
        msg: Any,
        *args: Any,
        exc_info: _ExcInfo = None,
        stack_info: bool = False,
        extra: Optional[Mapping[str, object]] = None,
        stacklevel: int = 0,
        **kwargs: Any,
    ) -> None:
        """Log a message, formatting it with ``args`` and ``kwargs``."""
        if not self.isEnabledFor(level):
            return
        record_extra = dict(extra or {})
        names = _CONTEXT.get()
        record_extra[CONTEXT_ATTR] = f' ({", ".join(names)})' if names else ''
        # Skip this method and the debug()/info()/... wrapper, so the caller is reported.
        if sys.version_info >= (3, 10):
            stacklevel += 2
        # noinspection PyProtectedMember
        self.logger._log(
            level,
            LogMessage(msg, args, kwargs),
            (),
            exc_info=exc_info,
            stack_info=stack_info,
            extra=record_extra,
            stacklevel=stacklevel,
        )

    def __getattr__(self, attr: str) -> Any:
        return getattr(self.logger, attr)


class Formatter(logging.Formatter):
    """Formatter which tolerates records logged without an adapter."""
    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, CONTEXT_ATTR):
            setattr(record, CONTEXT_ATTR, '')
        return super().format(record)


def _console_level() -> int:
    """Read the environment variable to pick the console log level."""
    return logging.DEBUG if os.environ.get(DEBUG_VAR, '0').strip() == '1' else logging.INFO


def _add_handler(
    root: logging.Logger,
    handler: logging.Handler,
    level: int,
    formatter: logging.Formatter,
) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    return handler


def init_logging(
    filename: 'Union[str, os.PathLike[str], None]' = None,
    main_logger: str = '',
) -> logging.Logger:
    """Configure the root logger for a script, then return a logger for it to use.

    Info messages are printed to stdout, warnings and errors to stderr. Debug messages are only
    shown if the ``DMXPARSER_DEBUG`` environment variable is set to ``1``.

    :param filename: If set, every message is also written to this file, in more detail.
    :param main_logger: The name of the logger to return, inside the ``dmxparser`` namespace.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    detailed = Formatter(
        '[{levelname}]{%s} {module}.{funcName}(): {message}' % CONTEXT_ATTR,
        style='{',
    )
    brief = Formatter(
        '[{levelname[0]}]{%s} {module}: {message}' % CONTEXT_ATTR,
        style='{',
    )

    if filename is not None:
        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        _add_handler(
            root, logging.FileHandler(path, mode='w', encoding='utf8'),
            logging.DEBUG, detailed,
        )

    if sys.stdout is not None:
        stdout = _add_handler(root, logging.StreamHandler(sys.stdout), _console_level(), brief)
        if sys.stderr is not None:
            # Warnings are written to stderr instead.
            stdout.addFilter(lambda record: record.levelno < logging.WARNING)
    if sys.stderr is not None:
        _add_handler(root, logging.StreamHandler(sys.stderr), logging.WARNING, brief)

    return get_logger(main_logger)


def get_logger(name: str = '') -> logging.Logger:
    """Fetch a logger inside the ``dmxparser`` namespace.

    Names which already start with the namespace, like a module's ``__name__``, are used as-is.
    """
    if not name or name == ROOT_NAME:
        full_name = ROOT_NAME
    elif name.startswith(ROOT_NAME + '.'):
        full_name = name
    else:
        full_name = f'{ROOT_NAME}.{name}'
    return cast(logging.Logger, LoggerAdapter(logging.getLogger(full_name)))


@contextlib.contextmanager
def context(name: str) -> Iterator[str]:
    """Include this name in every message logged inside the block.

    Contexts nest, with the names shown outermost first.
    """
    token = _CONTEXT.set((*_CONTEXT.get(), name))
    try:
        yield name
    finally:
        _CONTEXT.reset(token)
