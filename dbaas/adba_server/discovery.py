"""
LAN service announcement descriptor.

Describes how the server presents itself to DNS-SD browsers on the local
network: service type, instance name and TXT properties. Publishing the
record is left to the platform's announcer.

Invariants:
    - pairing_prefix carries the first 2 characters of the pairing code.
      This leaks part of the secret to anyone on the LAN and is accepted
      so clients can pick the right server before the user types the code.
    - The instance name carries the first 4 characters for the same reason.
"""

from __future__ import annotations

import socket
from dataclasses import dataclass, field

from ._version import __version__
from .config import DiscoveryConfig

PAIRING_PREFIX_LENGTH = 2
INSTANCE_SUFFIX_LENGTH = 4


@dataclass(frozen=True)
class ServiceAnnouncement:
    """A DNS-SD record describing this server.

    Attributes:
        service_type: DNS-SD service type
        instance_name: Unique instance label
        hostname: mDNS host name (ends with ".local.")
        port: Bound HTTP port
        properties: TXT record key/values
    """

    service_type: str
    instance_name: str
    hostname: str
    port: int
    properties: dict[str, str] = field(default_factory=dict)


def local_hostname() -> str:
    try:
        return socket.gethostname() or "adba-host"
    except OSError:
        return "adba-host"


def build_announcement(
    port: int,
    pairing_code: str,
    config: DiscoveryConfig | None = None,
    hostname: str | None = None,
) -> ServiceAnnouncement:
    """Build the announcement for the current port and pairing code."""
    config = config or DiscoveryConfig()
    host = hostname or local_hostname()
    return ServiceAnnouncement(
        service_type=config.service_type,
        instance_name=f"{config.service_name}-{pairing_code[:INSTANCE_SUFFIX_LENGTH]}",
        hostname=f"{host}.local.",
        port=port,
        properties={
            "version": __version__,
            "protocol": config.protocol,
            "pairing_prefix": pairing_code[:PAIRING_PREFIX_LENGTH],
        },
    )
