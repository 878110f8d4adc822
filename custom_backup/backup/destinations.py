"""
Destination descriptors.

A destination is configured as ``user@host:port:/base/path``. The path is
everything after the second colon and may itself contain ``:`` or ``/``.
"""

import posixpath
from dataclasses import dataclass
from typing import List, Iterable


class DestinationError(Exception):
    """Raised when a destination string cannot be parsed."""
    pass


@dataclass(frozen=True)
class DestinationDescriptor:
    """Parsed, immutable remote target"""
    user: str
    host: str
    port: int
    base_path: str

    @property
    def label(self) -> str:
        """Canonical form, used as the ``destination`` metric label."""
        return f"{self.user}@{self.host}:{self.port}:{self.base_path}"

    def remote_directory(self, host_ip: str) -> str:
        """Directory holding this host's archives on the destination."""
        return posixpath.join(self.base_path, f"{host_ip}_backup")

    def __str__(self):
        return self.label


def parse_destination(raw: str) -> DestinationDescriptor:
    """
    Parse a ``user@host:port:/base/path`` connection string.

    Args:
        raw: Connection string from configuration

    Returns:
        DestinationDescriptor

    Raises:
        DestinationError: If any positional field is missing or invalid
    """
    if not isinstance(raw, str) or not raw.strip():
        raise DestinationError("Empty destination string")

    raw = raw.strip()

    if '@' not in raw:
        raise DestinationError(f"Missing '@' in destination: {raw}")
    user, remainder = raw.split('@', 1)

    parts = remainder.split(':', 2)
    if len(parts) != 3:
        raise DestinationError(f"Expected user@host:port:/path, got: {raw}")
    host, port_str, path = parts

    if not user:
        raise DestinationError(f"Empty user in destination: {raw}")
    if not host:
        raise DestinationError(f"Empty host in destination: {raw}")
    if not path:
        raise DestinationError(f"Empty path in destination: {raw}")

    try:
        port = int(port_str)
    except ValueError:
        raise DestinationError(f"Invalid port '{port_str}' in destination: {raw}")
    if not 1 <= port <= 65535:
        raise DestinationError(f"Port out of range in destination: {raw}")

    # Re-anchor to an absolute path
    base_path = posixpath.normpath('/' + path.lstrip('/'))

    return DestinationDescriptor(user=user, host=host, port=port, base_path=base_path)


def parse_destinations(raws: Iterable[str]) -> List[DestinationDescriptor]:
    """
    Parse every configured destination before any transfer starts.

    Raises:
        DestinationError: If the list is empty, any entry is malformed,
            or two entries resolve to the same destination
    """
    descriptors = [parse_destination(raw) for raw in raws]

    if not descriptors:
        raise DestinationError("No destinations configured")

    seen = set()
    for descriptor in descriptors:
        if descriptor.label in seen:
            raise DestinationError(f"Duplicate destination: {descriptor.label}")
        seen.add(descriptor.label)

    return descriptors
