"""
Unit Tests for Hostname Resolution

Test Coverage:
    - Short hostname extraction
    - RUNTIMECFG_HOSTNAME_PATH override (trailing newline, unreadable file)
    - OS hostname path and its failure mode (recoverable HostnameError)
    - etcd short hostname mapping and the empty-string contract
"""

import os
import tempfile
import unittest
from unittest.mock import patch

from .hostname import (
    get_short_hostname,
    short_hostname,
    etcd_hostname_for,
    etcd_short_hostname,
    HOSTNAME_PATH_ENV,
)
from .errors import HostnameError


class TestGetShortHostname(unittest.TestCase):

    def test_fqdn(self):
        self.assertEqual(get_short_hostname("master-0.ostest.example.com"), "master-0")

    def test_already_short(self):
        self.assertEqual(get_short_hostname("worker-1"), "worker-1")

    def test_empty(self):
        self.assertEqual(get_short_hostname(""), "")


class TestShortHostname(unittest.TestCase):

    def setUp(self):
        self.original_env = os.environ.copy()
        os.environ.pop(HOSTNAME_PATH_ENV, None)
        self.tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        os.environ.clear()
        os.environ.update(self.original_env)
        self.tmpdir.cleanup()

    def _hostname_file(self, content):
        path = os.path.join(self.tmpdir.name, "hostname")
        with open(path, "w") as f:
            f.write(content)
        return path

    def test_override_file_trims_newline(self):
        os.environ[HOSTNAME_PATH_ENV] = self._hostname_file("master-1.cluster.example.com\n")
        self.assertEqual(short_hostname(), "master-1")

    @patch('runtimecfg.hostname.socket.gethostname', return_value="os-host.example.com")
    def test_override_file_wins_over_os(self, mock_gethostname):
        os.environ[HOSTNAME_PATH_ENV] = self._hostname_file("file-host\n")
        self.assertEqual(short_hostname(), "file-host")
        mock_gethostname.assert_not_called()

    def test_unreadable_override_file_raises(self):
        os.environ[HOSTNAME_PATH_ENV] = os.path.join(self.tmpdir.name, "missing")
        with self.assertRaises(HostnameError):
            short_hostname()

    @patch('runtimecfg.hostname.socket.gethostname', return_value="worker-2.example.com")
    def test_os_hostname(self, mock_gethostname):
        self.assertEqual(short_hostname(), "worker-2")

    @patch('runtimecfg.hostname.socket.gethostname', side_effect=OSError("no hostname"))
    def test_os_failure_is_recoverable_error(self, mock_gethostname):
        with self.assertRaises(HostnameError):
            short_hostname()


class TestEtcdShortHostname(unittest.TestCase):

    def test_master_replaced_once(self):
        self.assertEqual(etcd_hostname_for("master-0"), "etcd-0")
        self.assertEqual(etcd_hostname_for("master-master"), "etcd-master")

    def test_non_master_is_empty(self):
        self.assertEqual(etcd_hostname_for("worker-0"), "")
        self.assertEqual(etcd_hostname_for(""), "")

    @patch('runtimecfg.hostname.short_hostname', return_value="ctl-master-2")
    def test_etcd_short_hostname_uses_short_hostname(self, mock_short):
        self.assertEqual(etcd_short_hostname(), "ctl-etcd-2")


if __name__ == '__main__':
    unittest.main()
