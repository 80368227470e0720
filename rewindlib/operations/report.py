from rewindlib import rwlog

logger = rwlog.get_default_logger()

PASS = 'PASS'
FAIL = 'FAIL'
SKIP = 'SKIP'


class CheckResult:
    """
    Outcome of one named assertion.  detail carries the literal command or
    query that was checked and, on failure, the mismatch.
    """

    def __init__(self, name, passed, detail='', skipped=False):
        self.name = name
        self.passed = bool(passed) and not skipped
        self.skipped = skipped
        self.detail = detail

    @staticmethod
    def success(name, detail=''):
        return CheckResult(name, True, detail)

    @staticmethod
    def failure(name, detail):
        return CheckResult(name, False, detail)

    @staticmethod
    def skip(name, detail):
        return CheckResult(name, False, detail, skipped=True)

    def status(self):
        if self.skipped:
            return SKIP
        return PASS if self.passed else FAIL

    def __str__(self):
        if self.detail:
            return "%s %s: %s" % (self.status(), self.name, self.detail)
        return "%s %s" % (self.status(), self.name)

    def __repr__(self):
        return "CheckResult(%r, %s)" % (self.name, self.status())


#
# A scenario that hit a fatal error keeps the checks it completed before
# the error; it never counts as passed.
#
class ScenarioReport:
    def __init__(self, mode):
        self.mode = mode
        self.__results = []
        self.error = None

    def add(self, result):
        self.__results.append(result)
        if result.passed or result.skipped:
            logger.info("[%s] %s" % (self.mode, result))
        else:
            logger.error("[%s] %s" % (self.mode, result))
        return result

    def extend(self, results):
        for r in results:
            self.add(r)

    def set_error(self, error):
        self.error = error
        logger.error("[%s] scenario aborted: %s" % (self.mode, error))

    def getResults(self):
        return self.__results[:]

    def getFailures(self):
        return [r for r in self.__results if not r.passed and not r.skipped]

    def getSkipped(self):
        return [r for r in self.__results if r.skipped]

    def get_result(self, name):
        for r in self.__results:
            if r.name == name:
                return r
        return None

    def passed(self):
        return self.error is None and not self.getFailures()

    def summary_lines(self):
        status = PASS if self.passed() else FAIL
        lines = ["mode %s: %s" % (self.mode, status)]
        for r in self.__results:
            lines.append("  %s" % r)
        if self.error is not None:
            lines.append("  ERROR %s" % self.error)
        return lines
