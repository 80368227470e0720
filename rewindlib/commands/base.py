#!/usr/bin/env python3
#
# Copyright (c) Greenplum Inc 2008. All Rights Reserved.
#
"""
base.py

common base for the commands execution framework.  A Command wraps a shell
command string, runs it through a LocalExecutionContext and keeps the
CommandResult around for inspection.  Subclasses in pg.py and unix.py build
the command strings for the PostgreSQL and unix tools the harness drives.

Everything here is synchronous: run() returns once the process has exited.
"""
import os
import subprocess

from rewindlib import rwlog

logger = rwlog.get_default_logger()


class CmdArgs(list):
    """
    Conceptually this is a list of an executable path and executable options
    built in a structured manner with a canonical string representation suitable
    for execution via a shell.

    Examples
    --------

    >>> str(CmdArgs(['foo']).set_wait_timeout(True,600))
    'foo -w -t 600'
    >>> str(CmdArgs(['foo']).set_wait_timeout(False,None))
    'foo'

    """

    def __init__(self, l):
        list.__init__(self, l)

    def __str__(self):
        return " ".join(self)

    def set_wait_timeout(self, wait, timeout):
        """
        @param wait: true if should wait until operation completes
        @param timeout: number of seconds to wait before giving up
        """
        if wait:
            self.append("-w")
        if timeout:
            self.append("-t")
            self.append(str(timeout))
        return self


class CommandResult():
    """ Used as a way to package up the results from a Command

    """

    # rc,stdout,stderr,completed,halt

    def __init__(self, rc, stdout, stderr, completed, halt):
        self.rc = rc
        self.stdout = stdout
        self.stderr = stderr
        self.completed = completed
        self.halt = halt

    def printResult(self):
        res = "cmd had rc=%d completed=%s halted=%s\n  stdout='%s'\n  " \
              "stderr='%s'" % (self.rc, str(self.completed), str(self.halt), self.stdout, self.stderr)
        return res

    def wasSuccessful(self):
        if self.halt:
            return False
        if not self.completed:
            return False
        if self.rc != 0:
            return False
        return True

    def __str__(self):
        return self.printResult()

    def split_stdout(self, how=':'):
        """
        Yield (key, value) pairs for every stdout line containing the
        separator, as printed by pg_controldata.
        """
        for line in self.stdout.split('\n'):
            ret = line.split(how, 1)
            if len(ret) == 2:
                yield ret


class ExecutionError(Exception):
    def __init__(self, summary, cmd):
        Exception.__init__(self, summary)
        self.summary = summary
        self.cmd = cmd

    def __str__(self):
        results = self.cmd.get_results()
        details = results.printResult() if results else 'not run'
        return "ExecutionError: '%s' occurred.  Details: '%s'  %s" % \
               (self.summary, self.cmd.cmdStr, details)


class LocalExecutionContext():
    """ Runs a Command in a local bash shell and stores its CommandResult on
    the command once the process has exited.

    """
    proc = None
    halt = False
    completed = False

    def __init__(self, stdin):
        self.stdin = stdin

    def execute(self, cmd):
        # executable='/bin/bash' is to ensure the shell is bash.  bash isn't the
        # actual command executed, but the shell that command string runs under.
        self.proc = subprocess.Popen(cmd.cmdStr, env=None, shell=True,
                                     executable='/bin/bash',
                                     stdin=subprocess.PIPE,
                                     stderr=subprocess.PIPE,
                                     stdout=subprocess.PIPE, close_fds=True,
                                     universal_newlines=True)
        cmd.pid = self.proc.pid
        stdout_value, stderr_value = self.proc.communicate(input=self.stdin)
        self.completed = True
        cmd.set_results(CommandResult(
            self.proc.returncode, stdout_value, stderr_value, self.completed, self.halt))


class Command(object):
    """
    A named shell command.  run() executes it and stores a CommandResult;
    run(validateAfter=True) additionally raises ExecutionError on a non-zero
    return code.
    """
    name = None
    cmdStr = None
    results = None
    exec_context = None

    def __init__(self, name, cmdStr, stdin=None):
        self.name = name
        self.cmdStr = cmdStr
        self.exec_context = LocalExecutionContext(stdin)
        self.logger = rwlog.get_default_logger()

    def __str__(self):
        if self.results:
            return "%s cmdStr='%s'  had result: %s" % (self.name, self.cmdStr, self.results)
        else:
            return "%s cmdStr='%s'" % (self.name, self.cmdStr)

    def run(self, validateAfter=False):
        self.logger.debug("Running Command: %s" % self.cmdStr)
        faultPoint = os.getenv('RW_COMMAND_FAULT_POINT')
        if not faultPoint or (self.name and not self.name.startswith(faultPoint)):
            self.exec_context.execute(self)
        else:
            # simulate error
            self.results = CommandResult(1, 'Fault Injection', 'Fault Injection', False, True)

        if validateAfter:
            self.validate()

    def set_results(self, results):
        self.results = results

    def get_results(self):
        return self.results

    def get_stdout(self, strip=True):
        if self.results is None:
            raise Exception("command not run yet")
        return self.results.stdout if not strip else self.results.stdout.strip()

    def get_return_code(self):
        if self.results is None:
            raise Exception("command not run yet")
        return self.results.rc

    def get_stderr(self):
        if self.results is None:
            raise Exception("command not run yet")
        return self.results.stderr

    def was_successful(self):
        if self.results is None:
            return False
        else:
            return self.results.wasSuccessful()

    def validate(self, expected_rc=0):
        """Plain vanilla validation which expects a 0 return code."""
        if self.results.rc != expected_rc:
            self.logger.debug(self.results)
            raise ExecutionError("non-zero rc: %d" % self.results.rc, self)

