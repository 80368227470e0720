"""
Post-rewind checks against the rewound target: table content and the file
modes of its data directory.
"""
import os

from rewindlib import rwlog
from rewindlib.commands import unix
from rewindlib.operations.report import CheckResult

logger = rwlog.get_default_logger()

DIR_MODE = 0o700
FILE_MODE = 0o600


def check_query(node, name, sql, expected_rows):
    """
    Run sql on node and compare the rows, in order, with expected_rows (a
    list of tuples).  SQL errors are reported as a failed check.
    """
    try:
        rows = node.query_rows(sql)
    except Exception as e:
        return CheckResult.failure(name, "%s: %s" % (sql, e))

    if rows == list(expected_rows):
        return CheckResult.success(name, sql)
    return CheckResult.failure(name, "%s: expected %r, got %r" % (sql, list(expected_rows), rows))


def check_contents(cluster, fixtures):
    return [cluster.check_query("%s content after rewind" % f.table, f.check_sql, f.expected_rows)
            for f in fixtures]


def check_permissions(datadir, supported=None):
    name = "data directory permissions"
    if supported is None:
        supported = unix.supports_unix_permissions()
    if not supported:
        return CheckResult.skip(name, "unix permissions not supported on this platform")

    detail = "check_mode_recursive(%s, %04o, %04o)" % (datadir, DIR_MODE, FILE_MODE)
    if unix.check_mode_recursive(datadir, DIR_MODE, FILE_MODE):
        return CheckResult.success(name, detail)
    return CheckResult.failure(name, "%s: offending paths are in the log" % detail)


def check_standby_signal(datadir):
    path = os.path.join(datadir, 'standby.signal')
    name = "standby.signal written by --write-recovery-conf"
    if os.path.isfile(path):
        return CheckResult.success(name, path)
    return CheckResult.failure(name, "%s does not exist" % path)
