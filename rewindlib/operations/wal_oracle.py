"""
Checks which WAL segments pg_rewind rewrote on the target by comparing
their modification times before and after the rewind.

A segment that lies wholly before the point where the timelines split is
identical on both nodes and must be skipped.  The last segment of the
shared history may be copied, and the first segment of the source's new
timeline must be.
"""
from rewindlib import rwlog
from rewindlib.operations.report import CheckResult

logger = rwlog.get_default_logger()

COMMON = 'common'
BOUNDARY = 'boundary'
DIVERGED = 'diverged'

EQUAL = 'equal'
GREATER_OR_EQUAL = 'greater or equal'
GREATER = 'greater'

EXPECTED_RELATION = {
    COMMON: EQUAL,
    BOUNDARY: GREATER_OR_EQUAL,
    DIVERGED: GREATER,
}

MTIME_SQL = "SELECT extract(epoch from modification) FROM pg_stat_file('pg_wal/%s', true)"


def wal_segment_name(timeline, log, seg):
    """
    >>> wal_segment_name(1, 0, 2)
    '000000010000000000000002'
    >>> wal_segment_name(2, 0, 3)
    '000000020000000000000003'
    """
    return "%08X%08X%08X" % (timeline, log, seg)


class WalSegmentSample:
    def __init__(self, segment, role):
        if role not in EXPECTED_RELATION:
            raise ValueError("unknown segment role %s" % role)
        self.segment = segment
        self.role = role
        self.before = None
        self.after = None

    @property
    def relation(self):
        return EXPECTED_RELATION[self.role]

    def check_name(self):
        return "WAL segment %s %s after rewind" % (self.segment, self.relation)

    def holds(self):
        """
        Return True if the two samples satisfy the relation of this role.
        A segment missing before the rewind only satisfies the ordering
        relations, and only if it exists afterwards.
        """
        if self.after is None:
            return False
        if self.relation == EQUAL:
            return self.before is not None and self.after == self.before
        if self.before is None:
            return True
        if self.relation == GREATER:
            return self.after > self.before
        return self.after >= self.before

    def __repr__(self):
        return "WalSegmentSample(%s, %s, before=%r, after=%r)" % (self.segment, self.role,
                                                                   self.before, self.after)


def default_samples():
    return [
        WalSegmentSample(wal_segment_name(1, 0, 2), COMMON),
        WalSegmentSample(wal_segment_name(1, 0, 3), BOUNDARY),
        WalSegmentSample(wal_segment_name(2, 0, 3), DIVERGED),
    ]


def sample_mtime(query_scalar, segment):
    """
    Modification time of pg_wal/<segment> in epoch seconds as reported by
    the server, or None when the file does not exist.
    """
    value = query_scalar(MTIME_SQL % segment)
    if value is None:
        return None
    return float(value)


def sample_before(samples, query_scalar):
    for s in samples:
        s.before = sample_mtime(query_scalar, s.segment)
        logger.debug("WAL segment %s modified at %r before rewind" % (s.segment, s.before))


def sample_after(samples, query_scalar):
    for s in samples:
        s.after = sample_mtime(query_scalar, s.segment)
        logger.debug("WAL segment %s modified at %r after rewind" % (s.segment, s.after))


def verify(samples):
    results = []
    for s in samples:
        detail = "%s: before=%r after=%r" % (MTIME_SQL % s.segment, s.before, s.after)
        if s.holds():
            results.append(CheckResult.success(s.check_name(), detail))
        else:
            results.append(CheckResult.failure(s.check_name(), detail))
    return results
