"""
scenario.py

Runs the complete rewind scenario once per transport mode:

    create the divergence between primary and standby
    sample WAL segment timestamps          (modes that support it)
    run the pg_rewind guard checks         (modes that support it)
    run pg_rewind
    check table contents, WAL timestamps and data directory permissions

Every mode gets its own clusters, which are torn down whatever happens.
A mode that fails never stops the next one from running.
"""
import logging
import traceback

from rewindlib import rwlog
from rewindlib.operations import guard_probe, verify, wal_oracle, workload
from rewindlib.operations.report import ScenarioReport
from rewindlib.operations.rewind_cluster import (RewindCluster, RewindTestException,
                                                 LOCAL_MODE, REMOTE_MODE, ARCHIVE_MODE)

logger = rwlog.get_default_logger()


class ModeCapabilities:
    def __init__(self, supports_timestamp_oracle, supports_guard_probe, writes_recovery_conf):
        self.supports_timestamp_oracle = supports_timestamp_oracle
        self.supports_guard_probe = supports_guard_probe
        self.writes_recovery_conf = writes_recovery_conf

    def __repr__(self):
        return "ModeCapabilities(timestamp_oracle=%s, guard_probe=%s, recovery_conf=%s)" % \
               (self.supports_timestamp_oracle, self.supports_guard_probe, self.writes_recovery_conf)


# guard checks are independent of the source transport; archive mode
# restores WAL segments itself, so their timestamps prove nothing there
MODE_CAPABILITIES = {
    LOCAL_MODE: ModeCapabilities(supports_timestamp_oracle=True, supports_guard_probe=True,
                                 writes_recovery_conf=False),
    REMOTE_MODE: ModeCapabilities(supports_timestamp_oracle=True, supports_guard_probe=False,
                                  writes_recovery_conf=True),
    ARCHIVE_MODE: ModeCapabilities(supports_timestamp_oracle=False, supports_guard_probe=False,
                                   writes_recovery_conf=False),
}


def capabilities_for(mode):
    if mode not in MODE_CAPABILITIES:
        raise RewindTestException("Incorrect test mode specified: %s" % mode)
    return MODE_CAPABILITIES[mode]


class ScenarioContext:
    """
    Everything one run of the scenario works on.  Built fresh by run_test()
    for every mode and dropped when the run is over.
    """

    def __init__(self, mode, env, cluster=None):
        self.mode = mode
        self.env = env
        self.capabilities = capabilities_for(mode)
        self.cluster = cluster if cluster is not None else RewindCluster(env)
        self.fixtures = workload.FIXTURES
        self.wal_samples = wal_oracle.default_samples()
        self.report = ScenarioReport(mode)


# ---------------------- phases ----------------------

def create_divergence(ctx):
    """
    Seed the primary, clone the standby from it, replicate more rows,
    promote the standby and write on both sides.  Both checkpoints run to
    completion before the next step starts.
    """
    cluster = ctx.cluster

    cluster.setup_cluster(ctx.mode)
    cluster.start_primary()

    workload.run_phase(cluster, workload.SEED, ctx.fixtures)
    cluster.primary_psql("CHECKPOINT")

    cluster.create_standby(ctx.mode)

    workload.run_phase(cluster, workload.REPLICATED, ctx.fixtures)
    cluster.primary_psql("CHECKPOINT")

    cluster.promote_standby()

    workload.run_phase(cluster, workload.PRIMARY_DIVERGENCE, ctx.fixtures)
    workload.run_phase(cluster, workload.STANDBY_DIVERGENCE, ctx.fixtures)


def sample_wal_before(ctx):
    if ctx.capabilities.supports_timestamp_oracle:
        wal_oracle.sample_before(ctx.wal_samples, ctx.cluster.primary_scalar)


def probe_guards(ctx):
    if not ctx.capabilities.supports_guard_probe:
        logger.info("[%s] pg_rewind guard checks not run in this mode" % ctx.mode)
        return
    ctx.report.extend(guard_probe.probe_guards(ctx.cluster, ctx.env.bindir))


def rewind(ctx):
    ctx.cluster.run_pg_rewind(ctx.mode)
    if ctx.capabilities.writes_recovery_conf:
        ctx.report.add(verify.check_standby_signal(ctx.cluster.primary.datadir))


def verify_convergence(ctx):
    ctx.report.extend(verify.check_contents(ctx.cluster, ctx.fixtures))

    if ctx.capabilities.supports_timestamp_oracle:
        wal_oracle.sample_after(ctx.wal_samples, ctx.cluster.primary_scalar)
        ctx.report.extend(wal_oracle.verify(ctx.wal_samples))

    ctx.report.add(verify.check_permissions(ctx.cluster.primary.datadir))


PHASES = [create_divergence, sample_wal_before, probe_guards, rewind, verify_convergence]


# ---------------------- driver ----------------------

def run_test(mode, env, cluster=None):
    """
    Run the scenario for one mode and return its ScenarioReport.  A fatal
    error ends the scenario and is recorded in the report; the clusters are
    cleaned up in every case.
    """
    logger.info("Running rewind scenario in %s mode" % mode)
    try:
        ctx = ScenarioContext(mode, env, cluster)
    except RewindTestException as e:
        report = ScenarioReport(mode)
        report.set_error(e)
        return report

    try:
        for phase in PHASES:
            logger.debug("[%s] phase %s" % (mode, phase.__name__))
            phase(ctx)
    except Exception as e:
        rwlog.log_to_file_only("[%s] scenario failed in phase %s\n%s" % (mode, phase.__name__, traceback.format_exc()),
                               logging.DEBUG)
        ctx.report.set_error(e)
    finally:
        try:
            ctx.cluster.clean_rewind_test()
        except Exception as e:
            logger.error("[%s] cleanup failed: %s" % (mode, e))
            if ctx.report.error is None:
                ctx.report.set_error(e)

    return ctx.report


def run_all(modes, env):
    """Run every mode in turn and return the reports in the same order."""
    reports = []
    for mode in modes:
        reports.append(run_test(mode, env))
    return reports


def all_passed(reports):
    return all(r.passed() for r in reports)
