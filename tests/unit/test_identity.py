"""
Unit tests for host identity resolution (custom_backup/utils/identity.py).
"""

import socket
from types import SimpleNamespace
from unittest.mock import patch

import psutil
import pytest

from custom_backup.utils.identity import resolve_host_ip, IdentityError


def _inet(address):
    return SimpleNamespace(family=socket.AF_INET, address=address)


def _inet6(address):
    return SimpleNamespace(family=socket.AF_INET6, address=address)


def _link(address):
    return SimpleNamespace(family=psutil.AF_LINK, address=address)


@pytest.fixture
def mock_interfaces():
    with patch('custom_backup.utils.identity.psutil.net_if_addrs') as mock_net_if_addrs:
        yield mock_net_if_addrs


class TestResolveHostIp:
    """Test interface-based address detection."""

    def test_first_physical_interface(self, mock_interfaces):
        mock_interfaces.return_value = {
            'lo': [_inet('127.0.0.1')],
            'eth0': [_link('52:54:00:12:34:56'), _inet6('fe80::1'), _inet('192.168.1.20')],
            'eth1': [_inet('10.1.1.1')],
        }

        assert resolve_host_ip() == '192.168.1.20'

    def test_skips_container_bridges(self, mock_interfaces):
        mock_interfaces.return_value = {
            'docker0': [_inet('172.17.0.1')],
            'br-3f2a1b': [_inet('172.18.0.1')],
            'veth12ab': [_inet('172.17.0.5')],
            'enp3s0': [_inet('10.20.0.7')],
        }

        assert resolve_host_ip() == '10.20.0.7'

    def test_custom_ignore_patterns(self, mock_interfaces):
        mock_interfaces.return_value = {
            'eth0': [_inet('192.168.1.20')],
            'wg0': [_inet('10.99.0.1')],
        }

        assert resolve_host_ip(ignored_patterns=['eth*']) == '10.99.0.1'

    def test_skips_loopback_and_link_local_on_any_interface(self, mock_interfaces):
        mock_interfaces.return_value = {
            'eth0': [_inet('169.254.10.10')],
            'eth1': [_inet('127.0.1.1'), _inet('0.0.0.0')],
            'eth2': [_inet('192.168.50.2')],
        }

        assert resolve_host_ip() == '192.168.50.2'

    def test_no_usable_address(self, mock_interfaces):
        mock_interfaces.return_value = {
            'lo': [_inet('127.0.0.1')],
            'docker0': [_inet('172.17.0.1')],
            'eth0': [_inet6('2001:db8::1')],
        }

        with pytest.raises(IdentityError, match="No non-loopback IPv4 address"):
            resolve_host_ip()

    def test_enumeration_failure(self, mock_interfaces):
        mock_interfaces.side_effect = OSError('permission denied')

        with pytest.raises(IdentityError, match="Failed to enumerate"):
            resolve_host_ip()


class TestOverride:
    """Test the configured HOST_IP override."""

    def test_override_skips_detection(self, mock_interfaces):
        assert resolve_host_ip(override='10.0.0.5') == '10.0.0.5'
        mock_interfaces.assert_not_called()

    @pytest.mark.parametrize('value', ['not-an-ip', '10.0.0', '2001:db8::1', '256.1.1.1'])
    def test_invalid_override(self, mock_interfaces, value):
        with pytest.raises(IdentityError, match="not an IPv4 address"):
            resolve_host_ip(override=value)
