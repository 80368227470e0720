import os

import pgdb
from mock import patch

from rewindlib.db import dbconn
from rewindlib.test.unit.rw_unittest import FakeCursor, RwTestCase, run_tests


class FakeNotice:
    def __init__(self, severity, message):
        self.severity = severity
        self.message = message


class FakeConnection:
    def __init__(self, rows):
        self.autocommit = False
        self.fake_cursor = FakeCursor(rows)

    def cursor(self):
        return self.fake_cursor


class DbURLTestCase(RwTestCase):

    def test_explicit_values(self):
        url = dbconn.DbURL(hostname='/tmp/sock', port=54321, dbname='postgres', username='me')
        self.assertEqual('/tmp/sock:54321:postgres:me', str(url))

    @patch.dict(os.environ, {'PGHOST': 'dbhost', 'PGPORT': '6000', 'PGDATABASE': 'testdb',
                             'PGUSER': 'tester'})
    def test_defaults_come_from_environment(self):
        url = dbconn.DbURL()
        self.assertEqual(('dbhost', 6000, 'testdb', 'tester'),
                         (url.pghost, url.pgport, url.pgdb, url.pguser))


class ConnectTestCase(RwTestCase):
    def setUp(self):
        self.apply_patches([patch('rewindlib.db.dbconn.pgdb.connect')])
        self.mock_connect = self.get_mock_from_apply_patch('connect')
        self.url = dbconn.DbURL(hostname='/tmp/sock', port=54321, dbname='postgres', username='me')

    def test_conninfo(self):
        conn = dbconn.connect(self.url, unsetSearchPath=False)
        self.mock_connect.assert_called_once_with(user='me', host='/tmp/sock',
                                                  port=54321, database='postgres',
                                                  options='-c CLIENT_MIN_MESSAGES=ERROR')
        self.assertIsInstance(conn, dbconn.Connection)

    def test_search_path_option(self):
        dbconn.connect(self.url, verbose=True)
        options = self.mock_connect.call_args[1]['options']
        self.assertEqual('-c search_path=', options)

    def test_connection_failure(self):
        self.mock_connect.side_effect = pgdb.OperationalError('could not connect to server')
        with self.assertRaisesRegex(dbconn.ConnectionError, '/tmp/sock:54321:postgres:me: could not connect'):
            dbconn.connect(self.url)
        self.assertEqual(1, self.mock_connect.call_count)

    def test_autocommit_and_close_delegate(self):
        impl = self.mock_connect.return_value
        impl.closed = False
        conn = dbconn.connect(self.url)
        conn.autocommit = True
        self.assertTrue(impl.autocommit)
        conn.close()
        impl.closed = True
        conn.close()
        impl.close.assert_called_once_with()

    def test_notices_are_collected(self):
        impl = self.mock_connect.return_value
        conn = dbconn.connect(self.url, verbose=True)
        handler = impl._cnx.set_notice_receiver.call_args[0][0]

        handler(FakeNotice('WARNING', 'WARNING:  something happened'))

        notices = conn.notices()
        self.assertEqual(1, len(notices))
        self.assertEqual('WARNING:  something happened', notices[0].message)
        self.assertEqual([], conn.notices())


class QueryTestCase(RwTestCase):

    def test_execSQL_sets_autocommit(self):
        conn = FakeConnection([])
        dbconn.execSQL(conn, 'CHECKPOINT')
        self.assertTrue(conn.autocommit)
        self.assertEqual(['CHECKPOINT'], conn.fake_cursor.executed)

    def test_queryRows_returns_tuples(self):
        conn = FakeConnection([['in primary'], ['in standby, after promotion']])
        self.assertEqual([('in primary',), ('in standby, after promotion',)],
                         dbconn.queryRows(conn, 'SELECT d FROM tbl1 ORDER BY d'))

    def test_querySingleton(self):
        conn = FakeConnection([(10001,)])
        self.assertEqual(10001, dbconn.querySingleton(conn, 'SELECT count(*) FROM tail_tbl'))

    def test_queryRow_rejects_multiple_rows(self):
        conn = FakeConnection([(1,), (2,)])
        with self.assertRaises(dbconn.UnexpectedRowsError) as cm:
            dbconn.queryRow(conn, 'SELECT 1 UNION SELECT 2')
        self.assertEqual((1, 2), (cm.exception.expected, cm.exception.actual))

    def test_querySingleton_rejects_multiple_columns(self):
        conn = FakeConnection([(1, 2)])
        with self.assertRaises(Exception):
            dbconn.querySingleton(conn, 'SELECT 1, 2')


if __name__ == '__main__':
    run_tests()
