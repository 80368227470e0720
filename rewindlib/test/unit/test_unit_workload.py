from mock import Mock, call

from rewindlib.operations import workload
from rewindlib.test.unit.rw_unittest import RwTestCase, run_tests


class WorkloadTestCase(RwTestCase):
    def setUp(self):
        self.cluster = Mock()

    def test_fixture_tables(self):
        self.assertEqual(['tbl1', 'trunc_tbl', 'tail_tbl', 'drop_tbl'], [f.table for f in workload.FIXTURES])

    def test_seed_runs_on_primary_in_table_order(self):
        workload.run_phase(self.cluster, workload.SEED)
        self.assertEqual([
            call("CREATE TABLE tbl1 (d text)"),
            call("INSERT INTO tbl1 VALUES ('in primary')"),
            call("CREATE TABLE trunc_tbl (d text)"),
            call("INSERT INTO trunc_tbl VALUES ('in primary')"),
            call("CREATE TABLE tail_tbl (id integer, d text)"),
            call("INSERT INTO tail_tbl VALUES (0, 'in primary')"),
            call("CREATE TABLE drop_tbl (d text)"),
            call("INSERT INTO drop_tbl VALUES ('in primary')"),
        ], self.cluster.primary_psql.call_args_list)
        self.assertFalse(self.cluster.standby_psql.called)

    def test_standby_divergence_runs_on_standby(self):
        workload.run_phase(self.cluster, workload.STANDBY_DIVERGENCE)
        self.cluster.standby_psql.assert_called_once_with("INSERT INTO tbl1 VALUES ('in standby, after promotion')")
        self.assertFalse(self.cluster.primary_psql.called)

    def test_primary_divergence_shrinks_tail_without_truncate(self):
        workload.run_phase(self.cluster, workload.PRIMARY_DIVERGENCE)
        statements = [c[0][0] for c in self.cluster.primary_psql.call_args_list]
        self.assertIn("DELETE FROM tail_tbl WHERE id > 10", statements)
        self.assertIn("VACUUM tail_tbl", statements)
        self.assertFalse([s for s in statements if s.startswith('TRUNCATE')])
        self.assertEqual("DROP TABLE drop_tbl", statements[-1])

    def test_sql_failure_aborts_phase(self):
        self.cluster.primary_psql.side_effect = [None, Exception('relation "tbl1" already exists')]
        with self.assertRaises(Exception):
            workload.run_phase(self.cluster, workload.SEED)
        self.assertEqual(2, self.cluster.primary_psql.call_count)

    def test_unknown_phase(self):
        with self.assertRaises(ValueError):
            workload.run_phase(self.cluster, 'after_rewind')

    def test_unknown_phase_in_fixture(self):
        with self.assertRaises(ValueError):
            workload.TableFixture('t', 'SELECT 1', [(1,)], after_rewind=['SELECT 1'])

    def test_rows_written_after_promotion_on_primary_are_not_expected(self):
        for fixture in workload.FIXTURES:
            for row in fixture.expected_rows:
                self.assertNotIn('in primary, after promotion', str(row[0]))

    def test_expected_rows_are_ordered_like_the_check_query(self):
        for fixture in workload.FIXTURES:
            if 'ORDER BY' in fixture.check_sql:
                self.assertEqual(sorted(fixture.expected_rows), fixture.expected_rows)

    def test_statements_returns_a_copy(self):
        fixture = workload.FIXTURES[0]
        fixture.statements(workload.SEED).append('DROP TABLE tbl1')
        self.assertEqual(2, len(fixture.statements(workload.SEED)))


if __name__ == '__main__':
    run_tests()
