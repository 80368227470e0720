"""
Runs pg_rewind in situations where it has to refuse to work, then once in
dry-run mode, and checks the outcome of every invocation.  The data
directory of the target is compared before and after the dry run.

Must be called after the divergence has been created, while both nodes are
running.  Both nodes are running again when it returns.
"""
from rewindlib import rwlog
from rewindlib.commands import pg, unix
from rewindlib.operations.report import CheckResult

logger = rwlog.get_default_logger()

SUCCEEDS = 'succeeds'
FAILS = 'fails'


class GuardInvocation:
    def __init__(self, label, expected, options=None, stderr_pattern=None):
        if expected not in (SUCCEEDS, FAILS):
            raise ValueError("expected outcome must be %s or %s, not %s" % (SUCCEEDS, FAILS, expected))
        self.label = label
        self.expected = expected
        self.options = dict(options or {})
        self.stderr_pattern = stderr_pattern

    def command(self, bindir, source_pgdata, target_pgdata):
        return pg.PgRewind(self.label, bindir, target_pgdata,
                           source_pgdata=source_pgdata, debug=True, no_sync=True,
                           **self.options)

    def evaluate(self, cmd):
        """Turn the finished command into a CheckResult."""
        rc = cmd.get_return_code()
        stderr = cmd.get_stderr() or ''
        detail = "%s: rc=%d" % (cmd.cmdStr, rc)

        if self.expected == SUCCEEDS:
            if rc == 0:
                return CheckResult.success(self.label, detail)
            return CheckResult.failure(self.label, "%s, expected success, stderr: %s" % (detail, stderr.strip()))

        if rc == 0:
            return CheckResult.failure(self.label, "%s, expected failure" % detail)
        if self.stderr_pattern and self.stderr_pattern not in stderr:
            return CheckResult.failure(self.label, "%s, stderr does not contain '%s': %s" %
                                       (detail, self.stderr_pattern, stderr.strip()))
        return CheckResult.success(self.label, detail)


RUNNING_TARGET = GuardInvocation('pg_rewind with running target', FAILS)
RUNNING_TARGET_NO_ENSURE_SHUTDOWN = GuardInvocation(
    'pg_rewind --no-ensure-shutdown with running target', FAILS,
    {'no_ensure_shutdown': True},
    'target server must be shut down cleanly')
RUNNING_SOURCE = GuardInvocation(
    'pg_rewind with running source', FAILS,
    {'no_ensure_shutdown': True},
    'source data directory must be shut down cleanly')
DRY_RUN = GuardInvocation('pg_rewind --dry-run', SUCCEEDS, {'dry_run': True})

DRY_RUN_RESIDUE_CHECK = 'pg_rewind --dry-run leaves target data directory unchanged'


def _invoke(invocation, cluster, bindir):
    cmd = invocation.command(bindir, cluster.standby.datadir, cluster.primary.datadir)
    logger.info("Running %s, expected outcome: %s" % (cmd.cmdStr, invocation.expected))
    cmd.run(validateAfter=False)
    return invocation.evaluate(cmd)


def probe_guards(cluster, bindir):
    """
    Returns the list of CheckResults.  A failure to stop or restart a node
    raises, because the scenario cannot continue from there.
    """
    primary = cluster.primary
    standby = cluster.standby
    results = []

    results.append(_invoke(RUNNING_TARGET, cluster, bindir))
    results.append(_invoke(RUNNING_TARGET_NO_ENSURE_SHUTDOWN, cluster, bindir))

    primary.stop()
    results.append(_invoke(RUNNING_SOURCE, cluster, bindir))

    standby.stop()
    before = unix.datadir_content(primary.datadir)
    results.append(_invoke(DRY_RUN, cluster, bindir))
    diffs = unix.compare_datadir_content(before, unix.datadir_content(primary.datadir))
    if diffs:
        results.append(CheckResult.failure(DRY_RUN_RESIDUE_CHECK, "; ".join(diffs)))
    else:
        results.append(CheckResult.success(DRY_RUN_RESIDUE_CHECK, primary.datadir))

    standby.start()
    primary.start()
    return results
