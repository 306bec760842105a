import ipaddress
import socket
from types import SimpleNamespace
from unittest import mock

from actlocal.outbound_ip import get_outbound_ip


def _addr(family, address):
    return SimpleNamespace(family=family, address=address, netmask=None, broadcast=None, ptp=None)


def _offline_socket():
    fake = mock.MagicMock()
    fake.return_value.__enter__.return_value.connect.side_effect = OSError("unreachable")
    return fake


def test_uses_connected_socket_address():
    fake = mock.MagicMock()
    fake.return_value.__enter__.return_value.getsockname.return_value = ("10.1.2.3", 5555)
    with mock.patch("socket.socket", fake):
        assert get_outbound_ip() == ipaddress.ip_address("10.1.2.3")


def test_prefers_ethernet_interface_when_offline():
    interfaces = {
        "wlan0": [_addr(socket.AF_INET, "10.0.0.5")],
        "eth0": [_addr(socket.AF_INET, "192.168.1.7")],
        "lo": [_addr(socket.AF_INET, "127.0.0.1")],
    }
    with mock.patch("socket.socket", _offline_socket()), mock.patch(
        "psutil.net_if_addrs", return_value=interfaces
    ):
        assert get_outbound_ip() == ipaddress.ip_address("192.168.1.7")


def test_prefers_ipv4_on_same_interface():
    interfaces = {
        "eth0": [_addr(socket.AF_INET6, "2001:db8::1"), _addr(socket.AF_INET, "192.168.1.7")],
    }
    with mock.patch("socket.socket", _offline_socket()), mock.patch(
        "psutil.net_if_addrs", return_value=interfaces
    ):
        assert get_outbound_ip() == ipaddress.ip_address("192.168.1.7")


def test_skips_loopback_and_link_local():
    interfaces = {
        "eth0": [_addr(socket.AF_INET, "127.0.0.1"), _addr(socket.AF_INET6, "fe80::1%eth0")],
        "eth1": [_addr(socket.AF_INET, "169.254.1.1")],
    }
    with mock.patch("socket.socket", _offline_socket()), mock.patch(
        "psutil.net_if_addrs", return_value=interfaces
    ):
        assert get_outbound_ip() is None


def test_single_candidate_is_not_chosen():
    interfaces = {"eth0": [_addr(socket.AF_INET, "192.168.1.7")]}
    with mock.patch("socket.socket", _offline_socket()), mock.patch(
        "psutil.net_if_addrs", return_value=interfaces
    ):
        assert get_outbound_ip() is None