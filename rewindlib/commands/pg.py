#!/usr/bin/env python3
#
# Copyright (c) Greenplum Inc 2008. All Rights Reserved.
#
"""
Commands wrapping the PostgreSQL server utilities: initdb, pg_ctl,
pg_controldata, pg_basebackup and pg_rewind.

Every class takes a bindir; when it is empty the executables are looked up
through $PATH by the shell.
"""
import os
import shlex

from rewindlib.rwlog import get_default_logger
from rewindlib.commands.base import Command, CmdArgs

logger = get_default_logger()

PG_CTL_TIMEOUT_DEFAULT = 180


def pg_bin(bindir, program):
    """
    >>> pg_bin('/usr/lib/postgresql/15/bin', 'pg_ctl')
    '/usr/lib/postgresql/15/bin/pg_ctl'
    >>> pg_bin(None, 'pg_ctl')
    'pg_ctl'
    """
    if bindir:
        return os.path.join(bindir, program)
    return program


class PgCtlStartArgs(CmdArgs):
    """
    Used by PgCtlStart to format the pg_ctl command that starts a postmaster.

    >>> str(PgCtlStartArgs(None, "/data/primary/pgdata", "/data/primary/postmaster.log", True, 180))
    'pg_ctl -D /data/primary/pgdata -l /data/primary/postmaster.log -w -t 180 start'
    """

    def __init__(self, bindir, datadir, logfile, wait, timeout=None):
        CmdArgs.__init__(self, [
            pg_bin(bindir, "pg_ctl"),
            "-D", shlex.quote(str(datadir)),
            "-l", shlex.quote(str(logfile)),
        ])
        self.set_wait_timeout(wait, timeout)
        self.append("start")


class PgCtlStopArgs(CmdArgs):
    """
    Used by PgCtlStop to format the pg_ctl command that stops a postmaster.

    >>> str(PgCtlStopArgs(None, "/data/primary/pgdata", "fast", True, 180))
    'pg_ctl -D /data/primary/pgdata -m fast -w -t 180 stop'

    """

    def __init__(self, bindir, datadir, mode, wait, timeout):
        """
        @param datadir: database data directory
        @param mode: shutdown mode (smart, fast, immediate)
        @param wait: true if pg_ctl should wait for backend to stop
        @param timeout: number of seconds to wait before giving up
        """
        CmdArgs.__init__(self, [
            pg_bin(bindir, "pg_ctl"),
            "-D", shlex.quote(str(datadir)),
            "-m", str(mode),
        ])
        self.set_wait_timeout(wait, timeout)
        self.append("stop")


class InitDb(Command):
    def __init__(self, name, bindir, datadir, extra=None):
        self.datadir = datadir
        c = CmdArgs([pg_bin(bindir, "initdb"),
                     "-D", shlex.quote(datadir),
                     "-A", "trust",
                     "-N"])
        for arg in extra or []:
            c.append(shlex.quote(arg))
        self.cmdStr = str(c)
        Command.__init__(self, name, self.cmdStr)

    @staticmethod
    def local(name, bindir, datadir, extra=None):
        cmd = InitDb(name, bindir, datadir, extra)
        cmd.run(validateAfter=True)
        return cmd


class PgCtlStart(Command):
    def __init__(self, name, bindir, datadir, logfile, wait=True, timeout=PG_CTL_TIMEOUT_DEFAULT):
        self.datadir = datadir
        c = PgCtlStartArgs(bindir, datadir, logfile, wait, timeout)
        logger.debug("PgCtlStart pg_ctl cmd is %s", c)
        self.cmdStr = str(c)
        Command.__init__(self, name, self.cmdStr)

    @staticmethod
    def local(name, bindir, datadir, logfile, timeout=PG_CTL_TIMEOUT_DEFAULT):
        cmd = PgCtlStart(name, bindir, datadir, logfile, timeout=timeout)
        cmd.run(validateAfter=True)
        return cmd


class PgCtlStop(Command):
    def __init__(self, name, bindir, datadir, mode='fast', timeout=PG_CTL_TIMEOUT_DEFAULT):
        self.datadir = datadir
        self.cmdStr = str(PgCtlStopArgs(bindir, datadir, mode, True, timeout))
        Command.__init__(self, name, self.cmdStr)

    @staticmethod
    def local(name, bindir, datadir, mode='fast', timeout=PG_CTL_TIMEOUT_DEFAULT):
        cmd = PgCtlStop(name, bindir, datadir, mode, timeout)
        cmd.run(validateAfter=True)
        return cmd


class PgCtlPromote(Command):
    def __init__(self, name, bindir, datadir, timeout=PG_CTL_TIMEOUT_DEFAULT):
        self.datadir = datadir
        c = CmdArgs([pg_bin(bindir, "pg_ctl"), "-D", shlex.quote(datadir)])
        c.set_wait_timeout(True, timeout)
        c.append("promote")
        self.cmdStr = str(c)
        Command.__init__(self, name, self.cmdStr)

    @staticmethod
    def local(name, bindir, datadir, timeout=PG_CTL_TIMEOUT_DEFAULT):
        cmd = PgCtlPromote(name, bindir, datadir, timeout)
        cmd.run(validateAfter=True)
        return cmd


class PgControlData(Command):
    def __init__(self, name, bindir, datadir):
        self.datadir = datadir
        self.data = None
        Command.__init__(self, name, "%s %s" % (pg_bin(bindir, "pg_controldata"), shlex.quote(datadir)))

    def get_value(self, name):
        if not self.results:
            raise Exception('Command not yet executed')
        if not self.data:
            self.data = {}
            for n, v in self.results.split_stdout():
                self.data[n.strip()] = v.strip()
        return self.data[name]

    def get_cluster_state(self):
        return self.get_value('Database cluster state')

    @staticmethod
    def local(name, bindir, datadir):
        cmd = PgControlData(name, bindir, datadir)
        cmd.run(validateAfter=True)
        return cmd


class PgBaseBackup(Command):
    def __init__(self, bindir, target_datadir, source_host, source_port):
        cmd_tokens = [pg_bin(bindir, 'pg_basebackup')]
        cmd_tokens.append('-D')
        cmd_tokens.append(shlex.quote(target_datadir))
        cmd_tokens.append('-h')
        cmd_tokens.append(shlex.quote(source_host))
        cmd_tokens.append('-p')
        cmd_tokens.append(str(source_port))
        cmd_tokens.extend(['--checkpoint', 'fast'])
        cmd_tokens.extend(['--wal-method', 'stream'])
        cmd_tokens.append('--no-sync')

        self.command_tokens = cmd_tokens

        Command.__init__(self, 'pg_basebackup', ' '.join(cmd_tokens))


class PgRewindArgs(CmdArgs):
    """
    Builds a pg_rewind command line.  Exactly one of source_pgdata and
    source_server must be given.

    >>> str(PgRewindArgs(None, '/n/primary', source_pgdata='/n/standby', debug=True, no_sync=True))
    'pg_rewind --debug --source-pgdata=/n/standby --target-pgdata=/n/primary --no-sync'
    >>> str(PgRewindArgs(None, '/n/primary', source_pgdata='/n/standby', no_sync=True, dry_run=True))
    'pg_rewind --source-pgdata=/n/standby --target-pgdata=/n/primary --no-sync --dry-run'
    """

    def __init__(self, bindir, target_pgdata, source_pgdata=None, source_server=None,
                 debug=False, no_sync=False, no_ensure_shutdown=False, dry_run=False,
                 write_recovery_conf=False, restore_target_wal=False, config_file=None):
        if (source_pgdata is None) == (source_server is None):
            raise ValueError('exactly one of source_pgdata and source_server is required')

        CmdArgs.__init__(self, [pg_bin(bindir, 'pg_rewind')])
        if debug:
            self.append('--debug')
        if source_pgdata is not None:
            self.append('--source-pgdata=%s' % shlex.quote(source_pgdata))
        else:
            self.append('--source-server=%s' % shlex.quote(source_server))
        self.append('--target-pgdata=%s' % shlex.quote(target_pgdata))
        if no_sync:
            self.append('--no-sync')
        if no_ensure_shutdown:
            self.append('--no-ensure-shutdown')
        if dry_run:
            self.append('--dry-run')
        if write_recovery_conf:
            self.append('--write-recovery-conf')
        if restore_target_wal:
            self.append('--restore-target-wal')
        if config_file:
            self.append('--config-file=%s' % shlex.quote(config_file))


class PgRewind(Command):
    """
    PgRewind runs pg_rewind against a target data directory.  Options are
    passed straight through to PgRewindArgs.  The caller decides whether a
    non-zero exit is an error (run(validateAfter=True)) or an expected
    outcome.
    """
    def __init__(self, name, bindir, target_pgdata, **options):
        self.target_pgdata = target_pgdata
        self.options = options
        self.cmdStr = str(PgRewindArgs(bindir, target_pgdata, **options))
        Command.__init__(self, name, self.cmdStr)
