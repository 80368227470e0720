#!/usr/bin/env python3
#
# Copyright (c) Greenplum Inc 2008. All Rights Reserved.
#
"""
Thin layer over PyGreSQL's DB-API module for the harness' SQL needs:
statements that return nothing (execSQL), result sets (queryRows) and
single values (querySingleton).
"""
import collections
import os

import pgdb

from rewindlib import rwlog
from rewindlib.commands.unix import getUserName

logger = rwlog.get_default_logger()


class ConnectionError(Exception): pass


class DbURL:
    """ DbURL is used to store all of the data required to get at a PG
        database.  hostname may be a unix socket directory.

    """
    pghost='localhost'
    pgport=5432
    pgdb='postgres'
    pguser='username'

    def __init__(self,hostname=None,port=0,dbname=None,username=None):

        if hostname is None:
            self.pghost = os.environ.get('PGHOST', 'localhost')
        else:
            self.pghost = hostname

        if port == 0:
            self.pgport = int(os.environ.get('PGPORT', '5432'))
        else:
            self.pgport = int(port)

        if dbname is None:
            self.pgdb = os.environ.get('PGDATABASE', 'postgres')
        else:
            self.pgdb = dbname

        if username is None:
            self.pguser = os.environ.get('PGUSER', os.environ.get('USER', None))
            if self.pguser is None:
                self.pguser = getUserName()
            if self.pguser is None or self.pguser == '':
                raise Exception('Both $PGUSER and $USER env variables are not set!')
        else:
            self.pguser = username

    def __str__(self):
        return "%s:%d:%s:%s" % (self.pghost, self.pgport, self.pgdb, self.pguser)


# This wrapper of pgdb provides two useful additions:
# 1. pg notice is accessible to a user of connection returned by dbconn.connect(),
# lifted from the underlying _pg connection
# 2. multiple calls to dbconn.close() should not return an error
class Connection(pgdb.Connection):
    def __init__(self, connection):
        self._notices = collections.deque(maxlen=100)
        # we must do an attribute by attribute copy of the notices here
        # due to limitations in pg implementation. Wrap with with a
        # namedtuple for ease of use.
        def handle_notice(notice):
            received = {}
            for attr in dir(notice):
                if attr.startswith('__'):
                    continue
                value = getattr(notice, attr)
                if callable(value):
                    continue
                received[attr] = value
            Notice = collections.namedtuple('Notice', sorted(received))
            self._notices.append(Notice(**received))

        self._impl = connection
        self._impl._cnx.set_notice_receiver(handle_notice)

    def __getattr__(self, name):
        return getattr(self._impl, name)

    @property
    def autocommit(self):
        return self._impl.autocommit

    @autocommit.setter
    def autocommit(self, value):
        self._impl.autocommit = value

    def notices(self):
        notice_list = list(self._notices)
        self._notices.clear()
        return notice_list

    # don't return operational error if connection is already closed
    def close(self):
        if not self._impl.closed:
            self._impl.close()


def connect(dburl, verbose=False, unsetSearchPath=True):

    conninfo = {
        'user': dburl.pguser,
        'host': dburl.pghost,
        'port': dburl.pgport,
        'database': dburl.pgdb,
    }

    # building options
    options = []

    # unset search path due to CVE-2018-1058
    if unsetSearchPath:
        options.append("-c search_path=")

    #by default, libpq will print WARNINGS to stdout
    if not verbose:
        options.append("-c CLIENT_MIN_MESSAGES=ERROR")

    if options:
        conninfo['options'] = " ".join(options)

    logger.debug("Connecting to db {} on host {} port {}".format(dburl.pgdb, dburl.pghost, dburl.pgport))
    try:
        connection = pgdb.connect(**conninfo)
    except pgdb.OperationalError as e:
        raise ConnectionError('Failed to connect to %s: %s' % (dburl, str(e).strip()))

    return Connection(connection)

def execSQL(conn, sql, autocommit=True):
    """
    Execute a sql command that is NOT expected to return any rows and expects to commit
    immediately.
    This function does not return a cursor object, and sets connection.autocommit = autocommit,
    which is necessary for statements like CHECKPOINT and VACUUM that cannot be run inside a
    transaction.
    For SQL that captures some expected output, use "queryRows()"
    """
    conn.autocommit = autocommit
    with conn.cursor() as cursor:
        cursor.execute(sql)

def queryRows(conn, sql):
    """
    Run SQL and return every row as a plain tuple, in the order the server
    sent them.
    """
    with conn.cursor() as cursor:
        cursor.execute(sql)
        return [tuple(row) for row in cursor.fetchall()]

def queryRow(conn, sql):
    """
    Run SQL that returns exactly one row, and return that one row
    """
    with conn.cursor() as cursor:
        cursor.execute(sql)

        if cursor.rowcount != 1 :
            raise UnexpectedRowsError(1, cursor.rowcount, sql)
        res = cursor.fetchone()

    return res

class UnexpectedRowsError(Exception):
    def __init__(self, expected, actual, sql):
        self.expected, self.actual, self.sql = expected, actual, sql
        Exception.__init__(self, "SQL retrieved %d rows but %d was expected:\n%s" % \
                                 (self.actual, self.expected, self.sql))

def querySingleton(conn, sql):
    """
    Run SQL that returns exactly one row and one column, and return that cell
    """
    row = queryRow(conn, sql)
    if len(row) > 1:
        raise Exception("SQL retrieved %d columns but 1 was expected:\n%s" % \
                         (len(row), sql))
    return row[0]
