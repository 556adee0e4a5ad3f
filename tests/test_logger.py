"""Test the logging system."""
from logging import Logger, getLogger as stdlib_getlogger
from pathlib import Path
import logging

import pytest

from dmxparser.logger import DEBUG_VAR, LogMessage, context, get_logger, init_logging


def function(logger: Logger) -> None:
    """Test detecting different methods."""
    logger.info('Starting other function')
    logger.warning('Used wrong logic')
    logger.info('Finishing.')


@pytest.fixture
def clean_root(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent handlers leaking into other tests."""
    monkeypatch.setattr(stdlib_getlogger(), 'handlers', [])
    monkeypatch.delenv(DEBUG_VAR, raising=False)


def test_logging_output(capsys: pytest.CaptureFixture[str], clean_root: None) -> None:
    """Test the output of logging to the console."""
    root = init_logging()
    root.info('hello there')
    root.error('Root error!:\n- Something failed.')
    get_logger('another').warning('A problem: {}', 45)
    root.debug('Hidden by default')
    function(root)
    with context('First'):
        root.info('Message')
        with context('Second'):
            root.info('More messages')
        root.warning('A warning.')

    out, err = capsys.readouterr()
    out_lines = out.splitlines()
    err_lines = [line for line in err.splitlines() if line]
    assert len(out_lines) == 5
    assert out_lines[0].startswith('[I] ')
    assert out_lines[0].endswith(': hello there')
    assert out_lines[3].startswith('[I] (First) ')
    assert out_lines[4].startswith('[I] (First, Second) ')
    assert out_lines[4].endswith('More messages')
    assert 'Hidden' not in out

    assert err_lines[0].startswith('[E] ')
    assert err_lines[0].endswith('Root error!:')
    assert err_lines[1:3] == [' | - Something failed.', ' |___']
    assert err_lines[3].endswith('A problem: 45')
    assert err_lines[4].endswith('Used wrong logic')
    assert err_lines[5].startswith('[W] (First) ')


def test_debug_var(
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
    clean_root: None,
) -> None:
    """The environment variable enables debug output."""
    monkeypatch.setenv(DEBUG_VAR, '1')
    init_logging().debug('Now visible: {}', 'yes')
    out, err = capsys.readouterr()
    assert out.startswith('[D] ')
    assert out.rstrip().endswith('Now visible: yes')


def test_log_file(tmp_path: Path, capsys: pytest.CaptureFixture[str], clean_root: None) -> None:
    """Logs can be written to a file as well, including debug messages."""
    path = tmp_path / 'logs' / 'output.log'
    log = init_logging(path, 'script')
    log.debug('Detailed {thing}', thing='info')
    for handler in stdlib_getlogger().handlers:
        handler.flush()
        if isinstance(handler, logging.FileHandler):
            handler.close()
    assert '[DEBUG]' in path.read_text('utf8')
    assert 'Detailed info' in path.read_text('utf8')


def test_get_logger_names() -> None:
    """Loggers are placed under the package's namespace."""
    assert get_logger().name == 'dmxparser'
    assert get_logger('another').name == 'dmxparser.another'
    assert get_logger('dmxparser.decoder').name == 'dmxparser.decoder'
    assert get_logger('dmxparser').name == 'dmxparser'


def test_message_formatting() -> None:
    """Braces are only treated specially if arguments are provided."""
    assert str(LogMessage('Value = {}', (1, ), {})) == 'Value = 1'
    assert str(LogMessage('Literal {braces}', (), {})) == 'Literal {braces}'
    assert str(LogMessage('{a}, {b}', (), {'a': 1, 'b': 2})) == '1, 2'
    assert str(LogMessage('one\ntwo\n', (), {})) == 'one\n | two\n |___\n'
