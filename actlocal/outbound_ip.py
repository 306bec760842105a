"""Find an outbound IP address of this machine."""

from __future__ import annotations

import ipaddress
import socket

import psutil

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address


def _is_global_unicast(ip: IPAddress) -> bool:
    if ip.is_unspecified or ip.is_loopback or ip.is_multicast or ip.is_link_local:
        return False
    if isinstance(ip, ipaddress.IPv4Address) and ip == ipaddress.IPv4Address("255.255.255.255"):
        return False
    return True


def _interface_candidates() -> list[tuple[str, IPAddress]]:
    candidates = []
    for name, addresses in psutil.net_if_addrs().items():
        for addr in addresses:
            if addr.family not in (socket.AF_INET, socket.AF_INET6):
                continue
            try:
                ip = ipaddress.ip_address(addr.address.split("%", 1)[0])
            except ValueError:
                continue
            if _is_global_unicast(ip):
                candidates.append((name, ip))
    return candidates


def _preference(candidate: tuple[str, IPAddress]) -> tuple:
    name, ip = candidate
    return (not name.startswith("e"), ip.version != 4, name, str(ip))


def get_outbound_ip() -> IPAddress | None:
    """Return the local address used to reach the internet.

    Without internet access, an address is picked from the network
    interfaces, preferring ethernet, then IPv4, then interface name.
    Returns None when nothing suitable is found.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            return ipaddress.ip_address(sock.getsockname()[0])
    except OSError:
        pass

    try:
        candidates = _interface_candidates()
    except OSError:
        return None
    if len(candidates) > 1:
        return min(candidates, key=_preference)[1]
    return None