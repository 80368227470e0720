import os

from behave import given, when, then

from rewindlib import scenario
from rewindlib.commands.base import Command, ExecutionError
from rewindlib.system.environment import RewindTestEnvironment


def run_command(context, command):
    context.exception = None
    cmd = Command(name='run %s' % command, cmdStr='%s' % command)
    try:
        cmd.run(validateAfter=True)
    except ExecutionError as e:
        context.exception = e

    result = cmd.get_results()
    context.ret_code = result.rc
    context.stdout_message = result.stdout
    context.error_message = result.stderr


@given('the PostgreSQL programs are available')
def impl(context):
    missing = RewindTestEnvironment(basedir=context.basedir).missing_programs()
    if missing:
        context.scenario.skip("PostgreSQL programs not found: %s" % ", ".join(missing))


@when('the user runs rewindtest in "{mode}" mode')
def impl(context, mode):
    run_command(context, 'rewindtest -m %s -d %s -l %s' % (mode, context.basedir, context.logdir))


@then('rewindtest should return a return code of {ret_code}')
def impl(context, ret_code):
    if context.ret_code != int(ret_code):
        raise Exception("expected return code %s, got %d\nstdout: %s\nstderr: %s" %
                        (ret_code, context.ret_code, context.stdout_message, context.error_message))


@then('rewindtest should print "{msg}" to stdout')
def impl(context, msg):
    if msg not in context.stdout_message:
        raise Exception("'%s' not found in rewindtest output:\n%s" % (msg, context.stdout_message))


@then('the rewindtest data directories should be removed')
def impl(context):
    leftover = [d for d in os.listdir(context.basedir) if d.startswith(('primary', 'standby', 'rewind_'))]
    if leftover:
        raise Exception("data directories left behind in %s: %s" % (context.basedir, leftover))


@when('the rewind scenario is run in "{mode}" mode')
def impl(context, mode):
    env = RewindTestEnvironment(basedir=context.basedir)
    context.report = scenario.run_test(mode, env)


@then('every check of the scenario should pass')
def impl(context):
    report = context.report
    if not report.passed():
        raise Exception("\n".join(report.summary_lines()))


@then('the scenario should have checked "{name}"')
def impl(context, name):
    if context.report.get_result(name) is None:
        raise Exception("no check named '%s' in\n%s" % (name, "\n".join(context.report.summary_lines())))


@then('the scenario should not have checked "{name}"')
def impl(context, name):
    if context.report.get_result(name) is not None:
        raise Exception("unexpected check '%s' in mode %s" % (name, context.report.mode))
