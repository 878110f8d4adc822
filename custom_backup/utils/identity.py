"""
Host identity resolution.

Every metric and archive name is labelled with the host's own IPv4 address.
The address is taken from the first physical-looking interface, skipping
loopback and the bridge/virtual interfaces created by container and VM
runtimes.
"""

import socket
import logging
import ipaddress
from fnmatch import fnmatch
from typing import Iterable, Optional

import psutil

from custom_backup.config import DEFAULT_IGNORED_INTERFACES


logger = logging.getLogger(__name__)


class IdentityError(Exception):
    """Raised when no usable host address can be determined."""
    pass


def _is_ignored(interface: str, ignored_patterns: Iterable[str]) -> bool:
    return any(fnmatch(interface, pattern) for pattern in ignored_patterns)


def _is_usable(address: str) -> bool:
    try:
        ip = ipaddress.IPv4Address(address)
    except ValueError:
        return False
    return not (ip.is_loopback or ip.is_link_local or ip.is_unspecified)


def resolve_host_ip(ignored_patterns: Optional[Iterable[str]] = None, override: Optional[str] = None) -> str:
    """
    Determine the host's IPv4 address.

    Args:
        ignored_patterns: Interface name globs to skip
        override: Explicit address from configuration, bypasses detection

    Returns:
        IPv4 address as a string

    Raises:
        IdentityError: If the override is invalid or no address is found
    """
    if override:
        try:
            return str(ipaddress.IPv4Address(override))
        except ValueError:
            raise IdentityError(f"Configured HOST_IP is not an IPv4 address: {override}")

    if ignored_patterns is None:
        ignored_patterns = DEFAULT_IGNORED_INTERFACES
    ignored_patterns = list(ignored_patterns)

    try:
        interfaces = psutil.net_if_addrs()
    except (OSError, psutil.Error) as e:
        raise IdentityError(f"Failed to enumerate network interfaces: {e}")

    for interface, addresses in interfaces.items():
        if _is_ignored(interface, ignored_patterns):
            logger.debug(f"Skipping interface {interface}")
            continue

        for address in addresses:
            if address.family == socket.AF_INET and _is_usable(address.address):
                logger.debug(f"Using {address.address} from interface {interface}")
                return address.address

    raise IdentityError("No non-loopback IPv4 address found on a physical interface")
