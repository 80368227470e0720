import unittest

from rewindlib.system.environment import RewindTestEnvironment


def skipIfProgramsMissing():
    """Skip regress tests unless a PostgreSQL installation with pg_rewind is reachable."""
    missing = RewindTestEnvironment(basedir='.').missing_programs()
    if missing:
        return unittest.skip("PostgreSQL programs not found: %s" % ", ".join(missing))
    return lambda o: o
