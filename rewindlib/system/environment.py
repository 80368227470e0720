#!/usr/bin/env python3
#
# Copyright (c) Greenplum Inc 2010. All Rights Reserved.
#
import os
import tempfile

from rewindlib import rwlog
from rewindlib.commands import unix

logger = rwlog.get_default_logger()

DEFAULT_BASE_PORT = 54320
DEFAULT_TIMEOUT = 180

# executables the harness needs from a PostgreSQL installation
PG_PROGRAMS = ['initdb', 'pg_ctl', 'pg_controldata', 'pg_basebackup', 'pg_rewind']


def _env_flag(name):
    return os.environ.get(name, '').lower() in ('1', 'true', 'yes', 'on')


class RewindTestEnvironment:
    """

    Encapsulates where the harness finds the PostgreSQL binaries, where it puts
    its clusters and how long it waits for them.

    Every value not given explicitly is read from the environment:

        PG_BINDIR        directory holding initdb, pg_ctl, ... (default: $PATH)
        TESTDATADIR      base directory for cluster data (default: a fresh temp dir)
        PGPORT           first port handed out to a node (default 54320)
        PG_TEST_TIMEOUT  seconds to wait for servers and replication (default 180)
        PG_TEST_NOCLEAN  keep data directories after a run when set

    """

    def __init__(self, bindir=None, basedir=None, base_port=None, timeout=None, keep=None):
        if bindir is None:
            bindir = os.environ.get('PG_BINDIR') or None
        self.bindir = bindir

        if basedir is None:
            basedir = os.environ.get('TESTDATADIR') or None
        self.created_basedir = basedir is None
        if basedir is None:
            basedir = tempfile.mkdtemp(prefix='rewindtest_')
        self.basedir = os.path.abspath(basedir)

        if base_port is None:
            base_port = int(os.environ.get('PGPORT', DEFAULT_BASE_PORT))
        self.base_port = int(base_port)
        self._next_port = self.base_port

        if timeout is None:
            timeout = int(os.environ.get('PG_TEST_TIMEOUT', DEFAULT_TIMEOUT))
        self.timeout = int(timeout)

        if keep is None:
            keep = _env_flag('PG_TEST_NOCLEAN')
        self.keep = bool(keep)

        self.username = unix.getUserName()

        logger.debug("Rewind test environment: bindir=%s basedir=%s base_port=%d timeout=%d keep=%s" %
                     (self.bindir or '$PATH', self.basedir, self.base_port, self.timeout, self.keep))

    def allocate_port(self):
        """
        Hand out the next port.  Nodes listen on their own unix socket
        directory only, so ports need to be distinct per harness run but
        never collide with TCP listeners.
        """
        port = self._next_port
        self._next_port += 1
        return port

    def program_path(self, program):
        if self.bindir:
            return os.path.join(self.bindir, program)
        return unix.findCmdInPath(program)

    def missing_programs(self):
        """Return the PostgreSQL executables that cannot be found."""
        missing = []
        for program in PG_PROGRAMS:
            try:
                path = self.program_path(program)
            except unix.CommandNotFoundException:
                missing.append(program)
                continue
            if not os.access(path, os.X_OK):
                missing.append(program)
        return missing

    def cleanup(self):
        """
        Remove the base directory if this environment created it, unless the
        data directories are to be kept.  A directory given by the caller is
        left alone.
        """
        if not self.created_basedir:
            return
        if self.keep:
            logger.info("Keeping data directories in %s" % self.basedir)
            return
        unix.RemoveDirectory.local('remove %s' % self.basedir, self.basedir)
