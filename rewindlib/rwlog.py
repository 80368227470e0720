#!/usr/bin/env python3
#
# Copyright (c) Greenplum Inc 2008. All Rights Reserved.
#
"""
rwlog.py

Logging setup shared by the rewind harness.  There is a single named
logger.  Before setup_tool_logging() is called it writes to stdout only;
afterwards every record also goes to a per-day log file under the log
directory.

Typical use from a program:

    logger = rwlog.setup_tool_logging('rewindtest', hostname, username)
    if options.verbose:
        rwlog.enable_verbose_logging()

and from library modules:

    logger = rwlog.get_default_logger()
"""
import datetime
import logging
import os
import sys

_LOGGER = None
_SOUT_HANDLER = None
_FILE_HANDLER = None
_LOGGER_DIR = None
_LOGFILE = None

LOGGER_NAME = 'rewindtest'
DEFAULT_LOGGER_DIR = os.path.expanduser('~/rewindAdminLogs')

FORMAT = '%(asctime)s:%(programname)s:%(hostname)s:%(username)s-[%(levelname)s]:-%(message)s'
DATE_FORMAT = '%Y%m%d:%H:%M:%S'


class _ContextFilter(logging.Filter):
    """Stamps program, host and user onto every record."""

    def __init__(self, programname, hostname, username):
        logging.Filter.__init__(self)
        self.programname = programname
        self.hostname = hostname
        self.username = username

    def filter(self, record):
        record.programname = self.programname
        record.hostname = self.hostname
        record.username = self.username
        return True


def _make_formatter():
    return logging.Formatter(FORMAT, DATE_FORMAT)


def _install_context(logger, programname, hostname, username):
    for f in list(logger.filters):
        if isinstance(f, _ContextFilter):
            logger.removeFilter(f)
    logger.addFilter(_ContextFilter(programname, hostname, username))


def get_default_logger():
    """
    Return the harness logger, creating it with a stdout handler at INFO
    the first time round.  The logger itself passes DEBUG so the log file
    gets everything.
    """
    global _LOGGER, _SOUT_HANDLER
    if _LOGGER is None:
        _LOGGER = logging.getLogger(LOGGER_NAME)
        _LOGGER.setLevel(logging.DEBUG)
        _LOGGER.propagate = False
        _install_context(_LOGGER, LOGGER_NAME, 'localhost', os.environ.get('USER', ''))

        _SOUT_HANDLER = logging.StreamHandler(sys.stdout)
        _SOUT_HANDLER.setFormatter(_make_formatter())
        _SOUT_HANDLER.setLevel(logging.INFO)
        _LOGGER.addHandler(_SOUT_HANDLER)
    return _LOGGER


def get_logger_dir():
    return _LOGGER_DIR or DEFAULT_LOGGER_DIR


def get_logfile():
    return _LOGFILE


def setup_tool_logging(appName, hostname, userName, logdir=None):
    """
    Attach a file handler to the default logger.  The file is named
    <appName>_<YYYYMMDD>.log inside logdir (default ~/rewindAdminLogs).
    """
    global _FILE_HANDLER, _LOGGER_DIR, _LOGFILE

    logger = get_default_logger()
    _install_context(logger, appName, hostname, userName)

    _LOGGER_DIR = logdir or DEFAULT_LOGGER_DIR
    if not os.path.exists(_LOGGER_DIR):
        os.makedirs(_LOGGER_DIR)

    _LOGFILE = os.path.join(_LOGGER_DIR, '%s_%s.log' % (appName, datetime.date.today().strftime('%Y%m%d')))

    if _FILE_HANDLER is not None:
        logger.removeHandler(_FILE_HANDLER)
        _FILE_HANDLER.close()
    _FILE_HANDLER = logging.FileHandler(_LOGFILE)
    _FILE_HANDLER.setFormatter(_make_formatter())
    _FILE_HANDLER.setLevel(logging.DEBUG)
    logger.addHandler(_FILE_HANDLER)
    return logger


def enable_verbose_logging():
    get_default_logger()
    if _SOUT_HANDLER is not None:
        _SOUT_HANDLER.setLevel(logging.DEBUG)


def logging_is_verbose():
    get_default_logger()
    return _SOUT_HANDLER is not None and _SOUT_HANDLER.level == logging.DEBUG


def quiet_stdout_logging():
    """Only warnings and worse reach stdout; the log file keeps everything."""
    get_default_logger()
    if _SOUT_HANDLER is not None:
        _SOUT_HANDLER.setLevel(logging.WARNING)


def log_to_file_only(msg, level=logging.INFO):
    """
    Write msg to the log file without echoing it to stdout.  Safe to call
    before logging has been set up, in which case it is a no-op.
    """
    if _LOGGER is None or _FILE_HANDLER is None:
        return
    record = _LOGGER.makeRecord(_LOGGER.name, level, __file__, 0, msg, None, None)
    for f in _LOGGER.filters:
        f.filter(record)
    _FILE_HANDLER.handle(record)
