from rewindlib.operations.report import CheckResult, ScenarioReport
from rewindlib.test.unit.rw_unittest import RwTestCase, run_tests


class CheckResultTestCase(RwTestCase):

    def test_status(self):
        self.assertEqual('PASS', CheckResult.success('a').status())
        self.assertEqual('FAIL', CheckResult.failure('b', 'mismatch').status())
        skipped = CheckResult.skip('c', 'unsupported')
        self.assertEqual('SKIP', skipped.status())
        self.assertFalse(skipped.passed)

    def test_str_includes_detail(self):
        self.assertEqual('FAIL tbl1: expected x', str(CheckResult.failure('tbl1', 'expected x')))
        self.assertEqual('PASS tbl1', str(CheckResult.success('tbl1')))


class ScenarioReportTestCase(RwTestCase):

    def test_passes_with_only_passes_and_skips(self):
        report = ScenarioReport('local')
        report.add(CheckResult.success('a'))
        report.add(CheckResult.skip('b', 'no unix permissions'))
        self.assertTrue(report.passed())
        self.assertEqual(1, len(report.getSkipped()))

    def test_one_failure_fails_the_scenario(self):
        report = ScenarioReport('remote')
        report.extend([CheckResult.success('a'), CheckResult.failure('b', 'wrong rows')])
        self.assertFalse(report.passed())
        self.assertEqual(['b'], [r.name for r in report.getFailures()])

    def test_error_fails_the_scenario_and_keeps_earlier_checks(self):
        report = ScenarioReport('archive')
        report.add(CheckResult.success('a'))
        report.set_error(Exception('pg_ctl start failed'))
        self.assertFalse(report.passed())
        self.assertEqual(1, len(report.getResults()))
        self.assertEqual(['mode archive: FAIL', '  PASS a', '  ERROR pg_ctl start failed'],
                         report.summary_lines())

    def test_get_result(self):
        report = ScenarioReport('local')
        report.add(CheckResult.success('a'))
        self.assertEqual('a', report.get_result('a').name)
        self.assertIsNone(report.get_result('b'))

    def test_getResults_returns_a_copy(self):
        report = ScenarioReport('local')
        report.getResults().append(CheckResult.failure('x', 'y'))
        self.assertTrue(report.passed())


if __name__ == '__main__':
    run_tests()
