from mock import Mock, patch

from rewindlib.mainUtils import ExceptionNoStackTraceNeeded, ProgramArgumentValidationException
from rewindlib.programs import clsRewindTest
from rewindlib.programs.clsRewindTest import RewindTestProgram
from rewindlib.test.unit.rw_unittest import RwTestCase, run_tests


def make_report(mode, passed):
    report = Mock(mode=mode)
    report.passed.return_value = passed
    report.summary_lines.return_value = ["mode %s: %s" % (mode, 'PASS' if passed else 'FAIL')]
    return report


class ParserTestCase(RwTestCase):
    def setUp(self):
        self.parser = RewindTestProgram.createParser()

    def test_defaults_run_every_mode(self):
        options, args = self.parser.parse_args([])
        program = RewindTestProgram.createProgram(options, args)
        self.assertIsInstance(program, RewindTestProgram)
        self.assertEqual(['local', 'remote', 'archive'], options.modes)
        self.assertFalse(options.keep)
        self.assertIsNone(options.bindir)

    def test_modes_accumulate(self):
        options, _ = self.parser.parse_args(['-m', 'remote', '--mode', 'archive', '-k',
                                             '-b', '/pg/bin', '-p', '6000', '-t', '30'])
        self.assertEqual(['remote', 'archive'], options.modes)
        self.assertTrue(options.keep)
        self.assertEqual('/pg/bin', options.bindir)
        self.assertEqual(6000, options.port)
        self.assertEqual(30, options.timeout)

    def test_unknown_mode_is_rejected_by_parser(self):
        with self.assertRaises(SystemExit):
            self.parser.parse_args(['-m', 'ftp'])

    def test_positional_arguments_rejected(self):
        options, args = self.parser.parse_args(['extra'])
        with self.assertRaises(ProgramArgumentValidationException) as ctx:
            RewindTestProgram.createProgram(options, args)
        self.assertTrue(ctx.exception.shouldPrintHelp())

    def test_bad_timeout_and_port(self):
        options, args = self.parser.parse_args(['-t', '0'])
        with self.assertRaisesRegex(ProgramArgumentValidationException, 'timeout'):
            RewindTestProgram.createProgram(options, args)
        options, args = self.parser.parse_args(['-p', '70000'])
        with self.assertRaisesRegex(ProgramArgumentValidationException, 'out of range'):
            RewindTestProgram.createProgram(options, args)


class RunTestCase(RwTestCase):
    def setUp(self):
        self.options, _ = RewindTestProgram.createParser().parse_args(['-m', 'local', '-m', 'archive',
                                                                       '-b', '/pg/bin', '-d', '/tmp/rw'])
        self.apply_patches([
            patch('rewindlib.programs.clsRewindTest.RewindTestEnvironment'),
            patch('rewindlib.programs.clsRewindTest.scenario.run_all'),
        ])
        self.mock_env_class = self.get_mock_from_apply_patch('RewindTestEnvironment')
        self.env = self.mock_env_class.return_value
        self.env.missing_programs.return_value = []
        self.env.basedir = '/tmp/rw'
        self.mock_run_all = self.get_mock_from_apply_patch('run_all')

    def test_all_modes_pass(self):
        self.mock_run_all.return_value = [make_report('local', True), make_report('archive', True)]
        program = RewindTestProgram(self.options)
        self.assertEqual(0, program.run())
        self.mock_env_class.assert_called_once_with(bindir='/pg/bin', basedir='/tmp/rw', base_port=None,
                                                    timeout=None, keep=None)
        self.mock_run_all.assert_called_once_with(['local', 'archive'], self.env)

    def test_one_failed_mode_fails_the_run(self):
        self.mock_run_all.return_value = [make_report('local', False), make_report('archive', True)]
        program = RewindTestProgram(self.options)
        with patch.object(program.logger, 'error') as mock_error:
            self.assertEqual(1, program.run())
        mock_error.assert_called_once_with("rewind scenario failed in mode(s): local")

    def test_missing_programs(self):
        self.env.missing_programs.return_value = ['pg_rewind']
        program = RewindTestProgram(self.options)
        with self.assertRaisesRegex(ExceptionNoStackTraceNeeded, 'pg_rewind'):
            program.run()
        self.assertFalse(self.mock_run_all.called)

    def test_cleanup_removes_environment(self):
        program = RewindTestProgram(self.options)
        program.cleanup()
        self.assertFalse(self.env.cleanup.called)
        self.mock_run_all.return_value = [make_report('local', True)]
        program.run()
        program.cleanup()
        self.env.cleanup.assert_called_once_with()


class MainTestCase(RwTestCase):
    def setUp(self):
        self.apply_patches([
            patch('rewindlib.mainUtils.rwlog.setup_tool_logging'),
            patch('rewindlib.programs.clsRewindTest.RewindTestProgram.run'),
        ])
        self.mock_run = self.get_mock_from_apply_patch('run')

    def test_exit_code_from_run(self):
        self.mock_run.return_value = 1
        with self.assertRaises(SystemExit) as ctx:
            clsRewindTest.main(['-m', 'local'])
        self.assertEqual(1, ctx.exception.code)

    def test_argument_error_exits_2(self):
        with self.assertRaises(SystemExit) as ctx:
            clsRewindTest.main(['-t', '-5'])
        self.assertEqual(2, ctx.exception.code)
        self.assertFalse(self.mock_run.called)

    def test_missing_programs_exit_2(self):
        self.mock_run.side_effect = ExceptionNoStackTraceNeeded("PostgreSQL programs not found")
        with self.assertRaises(SystemExit) as ctx:
            clsRewindTest.main([])
        self.assertEqual(2, ctx.exception.code)


if __name__ == '__main__':
    run_tests()
