"""
Unit Tests for Name Service Lookups

Test Coverage:
    - etcd SRV query name, trailing-dot stripping and ordering
    - SRV failures (NXDOMAIN, empty answer, timeout) as DNSLookupError
    - First forward and reverse lookup results
"""

import socket
import unittest
from types import SimpleNamespace
from unittest.mock import patch

import dns.exception
import dns.resolver

from .lookup import get_etcd_srv_members, get_first_addr, get_first_host, SRVMember
from .errors import DNSLookupError


def srv(target, port=2380, priority=0, weight=10):
    return SimpleNamespace(target=target, port=port, priority=priority, weight=weight)


class TestEtcdSrvMembers(unittest.TestCase):

    @patch('runtimecfg.lookup.dns.resolver.resolve')
    def test_members_sorted_and_stripped(self, mock_resolve):
        mock_resolve.return_value = [
            srv("etcd-2.ostest.example.com.", priority=10),
            srv("etcd-1.ostest.example.com.", weight=5),
            srv("etcd-0.ostest.example.com.", weight=20),
        ]
        members = get_etcd_srv_members("ostest.example.com", timeout=2)
        self.assertEqual(members, [
            SRVMember("etcd-0.ostest.example.com", 2380, 0, 20),
            SRVMember("etcd-1.ostest.example.com", 2380, 0, 5),
            SRVMember("etcd-2.ostest.example.com", 2380, 10, 10),
        ])
        mock_resolve.assert_called_once_with("_etcd-server-ssl._tcp.ostest.example.com", "SRV",
                                             lifetime=2)

    @patch('runtimecfg.lookup.dns.resolver.resolve')
    def test_trailing_dot_on_domain(self, mock_resolve):
        mock_resolve.return_value = []
        self.assertEqual(get_etcd_srv_members("ostest.example.com."), [])
        self.assertEqual(mock_resolve.call_args[0][0], "_etcd-server-ssl._tcp.ostest.example.com")

    def test_lookup_failures(self):
        for error in [dns.resolver.NXDOMAIN(), dns.resolver.NoAnswer(), dns.exception.Timeout(),
                      dns.resolver.NoNameservers()]:
            with self.subTest(error=type(error).__name__):
                with patch('runtimecfg.lookup.dns.resolver.resolve', side_effect=error):
                    with self.assertRaises(DNSLookupError):
                        get_etcd_srv_members("ostest.example.com")


class TestFirstAddrAndHost(unittest.TestCase):

    @patch('runtimecfg.lookup.socket.getaddrinfo')
    def test_first_addr(self, mock_getaddrinfo):
        mock_getaddrinfo.return_value = [
            (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("10.0.0.10", 0)),
            (socket.AF_INET6, socket.SOCK_STREAM, 6, "", ("fd00::10", 0, 0, 0)),
        ]
        self.assertEqual(get_first_addr("master-0.ostest.example.com"), "10.0.0.10")

    @patch('runtimecfg.lookup.socket.getaddrinfo', side_effect=socket.gaierror(-2, "Name or service not known"))
    def test_first_addr_unknown_host(self, mock_getaddrinfo):
        with self.assertRaises(DNSLookupError):
            get_first_addr("nowhere.invalid")

    @patch('runtimecfg.lookup.socket.getaddrinfo', return_value=[])
    def test_first_addr_empty(self, mock_getaddrinfo):
        with self.assertRaises(DNSLookupError):
            get_first_addr("master-0")

    @patch('runtimecfg.lookup.socket.gethostbyaddr',
           return_value=("master-0.ostest.example.com.", ["m0"], ["10.0.0.10"]))
    def test_first_host(self, mock_gethostbyaddr):
        self.assertEqual(get_first_host("10.0.0.10"), "master-0.ostest.example.com")

    @patch('runtimecfg.lookup.socket.gethostbyaddr', side_effect=socket.herror(1, "Unknown host"))
    def test_first_host_unknown(self, mock_gethostbyaddr):
        with self.assertRaises(DNSLookupError):
            get_first_host("10.0.0.99")


if __name__ == '__main__':
    unittest.main()
