"""
Cluster lifecycle for the rewind scenarios: a Node is one PostgreSQL
instance built with initdb / pg_basebackup and driven through pg_ctl, a
RewindCluster is the primary/standby pair that pg_rewind works on.
"""
import os
import shutil
import tempfile
import time
from contextlib import closing

from rewindlib import rwlog
from rewindlib.commands import pg, unix
from rewindlib.db import dbconn
from rewindlib.operations import verify

logger = rwlog.get_default_logger()

LOCAL_MODE = 'local'
REMOTE_MODE = 'remote'
ARCHIVE_MODE = 'archive'
MODES = [LOCAL_MODE, REMOTE_MODE, ARCHIVE_MODE]

REWIND_USER = 'rewind_user'


class RewindTestException(Exception): pass


def polling(max_try, interval):
    """
    This function is convenient when creating wait-poll loop.
    e.g.
        for i in polling(10, 0.5):
            res = try_something()
            if res:
                break
    """

    retry = 0
    while True:
        yield retry
        if retry > max_try:
            break
        time.sleep(interval)
        retry += 1


class Node(object):
    """
    A single PostgreSQL instance living under <basedir>/<name>:

        pgdata/           data directory
        sock/             unix socket directory, the only listen address
        archives/         WAL archive used by restore_command
        backup/           base backups taken from this node
        postmaster.log    server log
    """

    POLL_INTERVAL = 0.1

    def __init__(self, name, env):
        self.name = name
        self.env = env
        self.port = env.allocate_port()
        self.basedir = os.path.join(env.basedir, name)
        self.datadir = os.path.join(self.basedir, 'pgdata')
        self.socket_dir = os.path.join(self.basedir, 'sock')
        self.archive_dir = os.path.join(self.basedir, 'archives')
        self.backup_dir = os.path.join(self.basedir, 'backup')
        self.logfile = os.path.join(self.basedir, 'postmaster.log')

        for d in (self.basedir, self.socket_dir, self.archive_dir, self.backup_dir):
            if not os.path.exists(d):
                os.makedirs(d)

    def __str__(self):
        return "node %s (port %d, %s)" % (self.name, self.port, self.datadir)

    # ---------------------- configuration ----------------------

    def append_conf(self, filename, text):
        """
        Append text to a file in the data directory, creating it if needed.
        The file is left owner read/write only, matching what initdb creates.
        """
        path = os.path.join(self.datadir, filename)
        with open(path, 'a') as f:
            f.write(text)
        os.chmod(path, 0o600)

    def _base_conf(self):
        return ("\n# Added by rewindtest\n"
                "port = %d\n"
                "listen_addresses = ''\n"
                "unix_socket_directories = '%s'\n" % (self.port, self.socket_dir))

    def init(self, allows_streaming=False, extra=None):
        """Create the data directory with initdb and write the test settings."""
        logger.info("Initializing %s" % self)
        pg.InitDb.local('initdb %s' % self.name, self.env.bindir, self.datadir, extra)

        conf = self._base_conf()
        conf += ("fsync = off\n"
                 "restart_after_crash = off\n"
                 "log_line_prefix = '%m [%p] %q%a '\n"
                 "log_statement = all\n"
                 "wal_retrieve_retry_interval = '500ms'\n")
        if allows_streaming:
            conf += ("wal_level = replica\n"
                     "max_wal_senders = 10\n"
                     "max_replication_slots = 10\n"
                     "wal_log_hints = on\n"
                     "hot_standby = on\n"
                     "shared_buffers = 1MB\n"
                     "max_connections = 10\n"
                     "max_wal_size = 128MB\n")
        else:
            conf += "wal_level = minimal\nmax_wal_senders = 0\n"
        self.append_conf('postgresql.conf', conf)

    def init_from_backup(self, root_node, backup_name, has_streaming=False):
        """Build this node's data directory from a base backup of root_node."""
        backup_path = os.path.join(root_node.backup_dir, backup_name)
        logger.info("Initializing %s from backup %s of node %s" % (self, backup_name, root_node.name))
        if not os.path.isdir(backup_path):
            raise RewindTestException("backup %s does not exist" % backup_path)

        shutil.copytree(backup_path, self.datadir)
        os.chmod(self.datadir, 0o700)

        self.append_conf('postgresql.conf', self._base_conf())
        if has_streaming:
            self.enable_streaming(root_node)

    def enable_streaming(self, root_node):
        self.append_conf('postgresql.conf',
                         "primary_conninfo = '%s application_name=%s'\n" % (root_node.connstr(), self.name))
        self.set_standby_mode()

    def enable_restoring(self, root_node):
        """Let this node fetch WAL from root_node's archive during recovery."""
        restore_command = 'cp "%s/%%f" "%%p"' % root_node.archive_dir
        self.append_conf('postgresql.conf', "restore_command = '%s'\n" % restore_command)

    def set_standby_mode(self):
        self.append_conf('standby.signal', '')

    def connstr(self, dbname=None):
        connstr = "port=%d host=%s" % (self.port, self.socket_dir)
        if dbname is not None:
            connstr += " dbname=%s" % dbname
        return connstr

    # ---------------------- lifecycle ----------------------

    def start(self):
        logger.info("Starting %s" % self)
        pg.PgCtlStart.local('start %s' % self.name, self.env.bindir, self.datadir,
                            self.logfile, timeout=self.env.timeout)

    def stop(self, mode='fast'):
        logger.info("Stopping %s (%s)" % (self, mode))
        pg.PgCtlStop.local('stop %s' % self.name, self.env.bindir, self.datadir,
                           mode=mode, timeout=self.env.timeout)

    def promote(self):
        logger.info("Promoting %s" % self)
        pg.PgCtlPromote.local('promote %s' % self.name, self.env.bindir, self.datadir,
                              timeout=self.env.timeout)

    def is_running(self):
        return unix.is_postmaster_running(self.datadir)

    def cluster_state(self):
        cmd = pg.PgControlData.local('controldata %s' % self.name, self.env.bindir, self.datadir)
        return cmd.get_cluster_state()

    def backup(self, backup_name):
        backup_path = os.path.join(self.backup_dir, backup_name)
        logger.info("Taking backup %s of %s" % (backup_name, self))
        cmd = pg.PgBaseBackup(self.env.bindir, backup_path, self.socket_dir, self.port)
        cmd.run(validateAfter=True)
        return backup_path

    def teardown_node(self):
        """
        Stop the server if it is still running and remove its files, unless
        the environment asks to keep them.
        """
        if self.is_running():
            try:
                self.stop('immediate')
            except Exception as e:
                logger.warning("Unable to stop %s during teardown: %s" % (self, e))
        if self.env.keep:
            logger.info("Keeping files of %s in %s" % (self.name, self.basedir))
            return
        unix.RemoveDirectory.local('remove %s' % self.name, self.basedir)

    # ---------------------- SQL ----------------------

    def _connect(self, dbname):
        url = dbconn.DbURL(hostname=self.socket_dir, port=self.port, dbname=dbname,
                           username=self.env.username)
        return dbconn.connect(url, verbose=True, unsetSearchPath=False)

    def safe_psql(self, sql, dbname='postgres'):
        """Run a statement in autocommit mode.  Errors propagate."""
        logger.debug("[%s] %s" % (self.name, sql))
        with closing(self._connect(dbname)) as conn:
            dbconn.execSQL(conn, sql)
            for notice in conn.notices():
                logger.debug("[%s] %s" % (self.name, notice.message))

    def query_rows(self, sql, dbname='postgres'):
        logger.debug("[%s] %s" % (self.name, sql))
        with closing(self._connect(dbname)) as conn:
            conn.autocommit = True
            return dbconn.queryRows(conn, sql)

    def query_scalar(self, sql, dbname='postgres'):
        logger.debug("[%s] %s" % (self.name, sql))
        with closing(self._connect(dbname)) as conn:
            conn.autocommit = True
            return dbconn.querySingleton(conn, sql)

    def poll_query_until(self, sql, expected=True, dbname='postgres'):
        """
        Re-run sql until the first column of its first row equals expected
        or the environment timeout expires, in which case
        RewindTestException is raised.  An empty result counts as not yet.
        """
        max_try = int(self.env.timeout / self.POLL_INTERVAL)
        result = None
        for _ in polling(max_try, self.POLL_INTERVAL):
            rows = self.query_rows(sql, dbname)
            result = rows[0][0] if rows else None
            if rows and result == expected:
                return
        raise RewindTestException("timed out waiting on %s for query %r, last result %r, expected %r" %
                                  (self.name, sql, result, expected))

    def lsn(self, mode):
        queries = {
            'insert': 'pg_current_wal_insert_lsn()',
            'flush': 'pg_current_wal_flush_lsn()',
            'write': 'pg_current_wal_lsn()',
            'receive': 'pg_last_wal_receive_lsn()',
            'replay': 'pg_last_wal_replay_lsn()',
        }
        if mode not in queries:
            raise RewindTestException("unknown lsn mode %s, expected one of %s" % (mode, ', '.join(sorted(queries))))
        return self.query_scalar('SELECT %s' % queries[mode])

    def wait_for_catchup(self, standby, mode='write'):
        """
        Wait until the standby's walreceiver has reached this node's current
        WAL write position for the given mode (sent, write, flush, replay).
        """
        target_lsn = self.lsn('write')
        logger.info("Waiting for %s to catch up to %s in %s mode" % (standby.name, target_lsn, mode))
        self.poll_query_until(
            "SELECT '%s' <= %s_lsn AND state = 'streaming' "
            "FROM pg_catalog.pg_stat_replication "
            "WHERE application_name IN ('%s', 'walreceiver')" % (target_lsn, mode, standby.name))


class RewindCluster(object):
    """
    The primary and standby pair used by a rewind scenario.  The primary is
    the rewind target, the promoted standby is the source.
    """

    def __init__(self, env):
        self.env = env
        self.node_primary = None
        self.node_standby = None

    def _require(self, node, what):
        if node is None:
            raise RewindTestException("%s has not been set up" % what)
        return node

    @property
    def primary(self):
        return self._require(self.node_primary, 'primary')

    @property
    def standby(self):
        return self._require(self.node_standby, 'standby')

    def setup_cluster(self, extra_name=None, extra=None):
        name = 'primary' + ('_%s' % extra_name if extra_name else '')
        self.node_primary = Node(name, self.env)
        self.node_primary.init(allows_streaming=True, extra=extra)
        # segments the rewind reads must survive the scenario checkpoints
        self.node_primary.append_conf('postgresql.conf', "wal_keep_size = 320MB\n")

    def start_primary(self):
        self.primary.start()
        # pg_rewind connects as this role in remote mode
        self.primary.safe_psql(
            "CREATE ROLE %(user)s LOGIN;"
            "GRANT EXECUTE ON function pg_catalog.pg_ls_dir(text, boolean, boolean) TO %(user)s;"
            "GRANT EXECUTE ON function pg_catalog.pg_stat_file(text, boolean) TO %(user)s;"
            "GRANT EXECUTE ON function pg_catalog.pg_read_binary_file(text) TO %(user)s;"
            "GRANT EXECUTE ON function pg_catalog.pg_read_binary_file(text, bigint, bigint, boolean) TO %(user)s;"
            % {'user': REWIND_USER})

    def create_standby(self, extra_name=None):
        name = 'standby' + ('_%s' % extra_name if extra_name else '')
        self.node_standby = Node(name, self.env)
        self.primary.backup('my_backup')
        self.node_standby.init_from_backup(self.primary, 'my_backup', has_streaming=True)
        self.node_standby.start()

    def promote_standby(self):
        self.primary.wait_for_catchup(self.standby, 'write')
        self.standby.promote()
        # the control file records the new timeline at the first checkpoint
        self.standby.safe_psql('CHECKPOINT')

    def primary_psql(self, sql):
        self.primary.safe_psql(sql)

    def standby_psql(self, sql):
        self.standby.safe_psql(sql)

    def primary_scalar(self, sql):
        return self.primary.query_scalar(sql)

    def check_query(self, name, sql, expected_rows):
        """Compare the rows sql returns on the primary with expected_rows."""
        return verify.check_query(self.primary, name, sql, expected_rows)

    def run_pg_rewind(self, mode):
        """
        Stop the old primary, rewind it onto the promoted standby using the
        given transport mode, then restart it following the new primary.
        Returns the PgRewind command that ran.
        """
        if mode not in MODES:
            raise RewindTestException("Incorrect test mode specified: %s" % mode)

        primary = self.primary
        standby = self.standby

        if mode == ARCHIVE_MODE:
            # WAL is moved to the archive below; the target must be shut down cleanly
            primary.stop()
        else:
            primary.stop('immediate')

        tmp_folder = tempfile.mkdtemp(dir=self.env.basedir, prefix='rewind_')
        try:
            saved_conf = os.path.join(tmp_folder, 'primary-postgresql.conf.tmp')
            primary_conf = os.path.join(primary.datadir, 'postgresql.conf')
            shutil.copy(primary_conf, saved_conf)
            logger.info("%s cluster state before rewind: %s" % (primary.name, primary.cluster_state()))

            if mode == LOCAL_MODE:
                standby.stop()
                cmd = pg.PgRewind('pg_rewind local', self.env.bindir, primary.datadir,
                                  source_pgdata=standby.datadir, debug=True, no_sync=True,
                                  config_file=saved_conf)
            elif mode == REMOTE_MODE:
                source_server = '%s user=%s' % (standby.connstr('postgres'), REWIND_USER)
                cmd = pg.PgRewind('pg_rewind remote', self.env.bindir, primary.datadir,
                                  source_server=source_server, debug=True, no_sync=True,
                                  write_recovery_conf=True, config_file=saved_conf)
            else:
                self._move_wal_to_archive(primary)
                primary.enable_restoring(primary)
                standby.stop()
                cmd = pg.PgRewind('pg_rewind archive', self.env.bindir, primary.datadir,
                                  source_pgdata=standby.datadir, debug=True, no_sync=True,
                                  no_ensure_shutdown=True, restore_target_wal=True,
                                  config_file=primary_conf)

            logger.info("Running %s" % cmd.cmdStr)
            cmd.run(validateAfter=True)

            if mode == REMOTE_MODE:
                # the written primary_conninfo streams as this role
                standby.safe_psql("ALTER ROLE %s WITH REPLICATION;" % REWIND_USER)

            shutil.move(saved_conf, primary_conf)
            os.chmod(primary_conf, 0o600)
        finally:
            shutil.rmtree(tmp_folder, ignore_errors=True)

        if mode != REMOTE_MODE:
            primary.append_conf('postgresql.conf', "primary_conninfo='%s'\n" % standby.connstr())
            primary.set_standby_mode()
            standby.start()

        primary.start()
        return cmd

    def _move_wal_to_archive(self, node):
        """Move every WAL file of node into its archive directory."""
        wal_dir = os.path.join(node.datadir, 'pg_wal')
        shutil.rmtree(node.archive_dir)
        shutil.copytree(wal_dir, node.archive_dir)
        shutil.rmtree(wal_dir)
        os.mkdir(wal_dir)
        os.chmod(node.archive_dir, 0o700)
        os.chmod(wal_dir, 0o700)

    def clean_rewind_test(self):
        for node in (self.node_primary, self.node_standby):
            if node is not None:
                node.teardown_node()
        self.node_primary = None
        self.node_standby = None
