#!/usr/bin/env python3
#
# Copyright (c) Greenplum Inc 2008. All Rights Reserved.
#
"""
Set of Classes for executing unix commands, plus the file system probes
used by the harness (process liveness, permission modes, directory
snapshots).
"""
import errno
import os
import platform
import psutil
import pwd
import shlex
import socket
import stat

from rewindlib.rwlog import get_default_logger
from rewindlib.commands.base import Command

logger = get_default_logger()

# ---------------platforms--------------------
WINDOWS = "windows"

curr_platform = platform.uname()[0].lower()

# ---------------command path--------------------
CMDPATH = ['/bin', '/usr/local/bin', '/usr/bin', '/sbin', '/usr/sbin']

CMD_CACHE = {}


# ----------------------------------
class CommandNotFoundException(Exception):
    def __init__(self, cmd, paths):
        self.cmd = cmd
        self.paths = paths

    def __str__(self):
        return "Could not locate command: '%s' in this set of paths: %s" % (self.cmd, repr(self.paths))


def findCmdInPath(cmd, extra_paths=None):
    """
    Look cmd up in extra_paths, then $PATH, then the fixed CMDPATH list.
    Results are cached per command name.
    """
    global CMD_CACHE

    if cmd not in CMD_CACHE:
        search_path = list(extra_paths or [])
        search_path.extend(p for p in os.environ.get('PATH', '').split(os.pathsep) if p)
        search_path.extend(CMDPATH)
        for p in search_path:
            f = os.path.join(p, cmd)
            if os.path.exists(f):
                CMD_CACHE[cmd] = f
                return f

        logger.debug('Command %s not found' % cmd)
        raise CommandNotFoundException(cmd, search_path)
    else:
        return CMD_CACHE[cmd]


# For now we'll leave some generic functions outside of the Platform framework
def getLocalHostname():
    return socket.gethostname().split('.')[0]


def getUserName():
    return pwd.getpwuid(os.getuid()).pw_name


def supports_unix_permissions():
    return os.name == 'posix' and curr_platform != WINDOWS


def check_pid(pid):
    """ Check For the existence of a unix pid. """

    if pid is None or pid <= 0:
        return False

    return psutil.pid_exists(int(pid))


def read_postmaster_pid(datadir):
    """
    Return the postmaster pid from the first line of postmaster.pid, or
    None when the file is missing or unreadable.
    """
    pidfile = os.path.join(datadir, 'postmaster.pid')
    try:
        with open(pidfile) as f:
            return int(f.readline().strip())
    except (IOError, OSError, ValueError):
        return None


def is_postmaster_running(datadir):
    return check_pid(read_postmaster_pid(datadir))


# ------------- remove a directory recursively ------------------
class RemoveDirectory(Command):
    """
    remove a directory recursively, including the directory itself.
    A directory that does not exist is not an error.
    """
    def __init__(self, name, directory):
        target_dir = shlex.quote(directory.rstrip('/') or directory)
        cmd_str = "if [ -d {target_dir} ]; then {cmd} -rf {target_dir}; fi".format(
            cmd=findCmdInPath('rm'),
            target_dir=target_dir)
        Command.__init__(self, name, cmd_str)

    @staticmethod
    def local(name, directory):
        rm_cmd = RemoveDirectory(name, directory)
        rm_cmd.run(validateAfter=True)


# ------------- file mode checks ------------------
def check_mode_recursive(path, expected_dir_mode, expected_file_mode, ignore_list=None):
    """
    Walk path and check that every directory has expected_dir_mode and every
    regular file has expected_file_mode.  Names in ignore_list are relative
    to path.  Entries removed while walking (a running server may drop
    files under pg_stat) are skipped with a warning; any other stat failure
    or an unexpected file type raises.

    Returns True when every entry matched.
    """
    ignored = set(os.path.join(path, i) for i in (ignore_list or []))
    result = True

    def check(entry):
        try:
            st = os.stat(entry)
        except OSError as e:
            if e.errno == errno.ENOENT:
                logger.warning("unable to stat %s: %s" % (entry, e))
                return True
            raise

        mode = stat.S_IMODE(st.st_mode)
        if stat.S_ISREG(st.st_mode):
            if mode != expected_file_mode:
                logger.error("%s mode must be %04o, found %04o" % (entry, expected_file_mode, mode))
                return False
        elif stat.S_ISDIR(st.st_mode):
            if mode != expected_dir_mode:
                logger.error("%s mode must be %04o, found %04o" % (entry, expected_dir_mode, mode))
                return False
        else:
            raise Exception("unknown file type for %s" % entry)
        return True

    result = check(path) and result
    for root, dirs, files in os.walk(path, followlinks=True):
        for name in dirs + files:
            entry = os.path.join(root, name)
            if entry in ignored:
                continue
            result = check(entry) and result
    return result


# ------------- data directory snapshots ------------------
def datadir_content(path):
    """
    Map every entry under path, relative to path, to (size, mtime_ns).
    Directories are recorded with size None.
    """
    content = {}
    for root, dirs, files in os.walk(path):
        for name in dirs:
            full = os.path.join(root, name)
            content[os.path.relpath(full, path)] = (None, os.lstat(full).st_mtime_ns)
        for name in files:
            full = os.path.join(root, name)
            st = os.lstat(full)
            content[os.path.relpath(full, path)] = (st.st_size, st.st_mtime_ns)
    return content


def compare_datadir_content(before, after):
    """
    Return human readable differences between two datadir_content()
    snapshots, sorted by path.  An empty list means nothing changed.
    """
    diffs = []
    for rel in sorted(set(before) | set(after)):
        if rel not in after:
            diffs.append("removed: %s" % rel)
        elif rel not in before:
            diffs.append("added: %s" % rel)
        elif before[rel] != after[rel]:
            diffs.append("changed: %s %s -> %s" % (rel, before[rel], after[rel]))
    return diffs
