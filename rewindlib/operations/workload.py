"""
The statements that make the primary and the standby diverge, one
TableFixture per table.  Every table exercises one file level behaviour of
pg_rewind:

    tbl1       rows appended on both sides; the target ends up with the
               source's rows only
    trunc_tbl  the old primary extends the relation; it must be truncated
               back to its size on the source
    tail_tbl   the old primary shrinks the relation without a new
               relfilenode; the tail must be copied back from the source
    drop_tbl   the old primary drops the table; it must be copied back

Row values name the node and the moment they were written, so every row
left after the rewind can be traced to its origin.
"""
from rewindlib import rwlog

logger = rwlog.get_default_logger()

SEED = 'seed'
REPLICATED = 'replicated'
PRIMARY_DIVERGENCE = 'primary_divergence'
STANDBY_DIVERGENCE = 'standby_divergence'

PHASES = [SEED, REPLICATED, PRIMARY_DIVERGENCE, STANDBY_DIVERGENCE]

# which side of the cluster each phase writes to
PRIMARY = 'primary'
STANDBY = 'standby'
PHASE_TARGETS = {
    SEED: PRIMARY,
    REPLICATED: PRIMARY,
    PRIMARY_DIVERGENCE: PRIMARY,
    STANDBY_DIVERGENCE: STANDBY,
}


class TableFixture:
    def __init__(self, table, check_sql, expected_rows, **phases):
        for phase in phases:
            if phase not in PHASES:
                raise ValueError("unknown workload phase %s for table %s" % (phase, table))
        self.table = table
        self.check_sql = check_sql
        self.expected_rows = expected_rows
        self.__phases = phases

    def statements(self, phase):
        return list(self.__phases.get(phase, []))

    def __repr__(self):
        return "TableFixture(%s)" % self.table


FIXTURES = [
    TableFixture(
        'tbl1',
        "SELECT d FROM tbl1 ORDER BY d",
        [('in primary',),
         ('in primary, before promotion',),
         ('in standby, after promotion',)],
        seed=["CREATE TABLE tbl1 (d text)",
              "INSERT INTO tbl1 VALUES ('in primary')"],
        replicated=["INSERT INTO tbl1 VALUES ('in primary, before promotion')"],
        primary_divergence=["INSERT INTO tbl1 VALUES ('in primary, after promotion')"],
        standby_divergence=["INSERT INTO tbl1 VALUES ('in standby, after promotion')"]),

    TableFixture(
        'trunc_tbl',
        "SELECT d FROM trunc_tbl ORDER BY d",
        [('in primary',),
         ('in primary, before promotion',)],
        seed=["CREATE TABLE trunc_tbl (d text)",
              "INSERT INTO trunc_tbl VALUES ('in primary')"],
        replicated=["INSERT INTO trunc_tbl VALUES ('in primary, before promotion')"],
        primary_divergence=["INSERT INTO trunc_tbl SELECT 'in primary, after promotion: ' || g "
                            "FROM generate_series(1, 10000) g"]),

    # DELETE + VACUUM rather than TRUNCATE, which would create a new relfilenode
    TableFixture(
        'tail_tbl',
        "SELECT count(*) FROM tail_tbl",
        [(10001,)],
        seed=["CREATE TABLE tail_tbl (id integer, d text)",
              "INSERT INTO tail_tbl VALUES (0, 'in primary')"],
        replicated=["INSERT INTO tail_tbl SELECT g, 'in primary, before promotion: ' || g "
                    "FROM generate_series(1, 10000) g"],
        primary_divergence=["DELETE FROM tail_tbl WHERE id > 10",
                            "VACUUM tail_tbl"]),

    TableFixture(
        'drop_tbl',
        "SELECT d FROM drop_tbl ORDER BY d",
        [('in primary',)],
        seed=["CREATE TABLE drop_tbl (d text)",
              "INSERT INTO drop_tbl VALUES ('in primary')"],
        primary_divergence=["INSERT INTO drop_tbl VALUES ('in primary, after promotion')",
                            "DROP TABLE drop_tbl"]),
]


def run_phase(cluster, phase, fixtures=None):
    """
    Run every statement of phase, table by table, on the node the phase
    writes to.  The first failing statement raises and aborts the phase.
    """
    if phase not in PHASES:
        raise ValueError("unknown workload phase %s" % phase)

    if PHASE_TARGETS[phase] == PRIMARY:
        run_sql = cluster.primary_psql
    else:
        run_sql = cluster.standby_psql

    logger.info("Running workload phase %s on %s" % (phase, PHASE_TARGETS[phase]))
    for fixture in (FIXTURES if fixtures is None else fixtures):
        for sql in fixture.statements(phase):
            run_sql(sql)
