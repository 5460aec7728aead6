#!/usr/bin/env python3
"""Discovery of local network interfaces usable for multicast.

An interface qualifies when it is up *and* advertises the multicast flag.
Where psutil reports no flags at all (Windows), being up is enough.
Flags and addresses come from :mod:`psutil`, the kernel index from
:func:`socket.if_nametoindex`.
"""

from __future__ import annotations

import socket                            # AF_INET + if_nametoindex
from dataclasses import dataclass
from typing import Dict, List, Optional

import psutil                            # 3rd‑party: portable NIC flags/addresses

from .errors import InterfaceLookupFailed
from .util import LOG

__all__ = ["Interface", "list_multicast_interfaces", "lookup_interface"]


@dataclass(frozen=True, slots=True)
class Interface:
    """Immutable handle on one multicast-capable adapter."""

    name: str                  # e.g. "eth0", "en0"
    index: int                 # Kernel ifindex (0 = let the kernel choose)
    address: Optional[str]     # Primary IPv4 address, None if unnumbered


def _flags(stats) -> set[str]:
    # psutil exposes flags as a comma separated string ("up,broadcast,multicast")
    return {f.strip() for f in getattr(stats, "flags", "").split(",") if f.strip()}


def _is_multicast_capable(stats) -> bool:
    flags = _flags(stats)
    # psutil has no flags on Windows; there an up adapter is assumed capable.
    return stats.isup and (not flags or "multicast" in flags)


def _ipv4_address(addrs: List) -> Optional[str]:
    for addr in addrs:
        if addr.family == socket.AF_INET:
            return addr.address
    return None


def _build(name: str, addrs: Dict[str, List]) -> Interface:
    try:
        index = socket.if_nametoindex(name)
    except OSError as exc:
        raise InterfaceLookupFailed(f"No kernel index for interface {name!r}: {exc}") from exc
    return Interface(name=name, index=index, address=_ipv4_address(addrs.get(name, [])))


def list_multicast_interfaces() -> List[Interface]:
    """Every interface that is up and multicast-capable, sorted by name."""
    stats = psutil.net_if_stats()
    addrs = psutil.net_if_addrs()
    found = []
    for name in sorted(stats):
        if not _is_multicast_capable(stats[name]):
            continue
        try:
            found.append(_build(name, addrs))
        except InterfaceLookupFailed as exc:    # Vanished between the two calls
            LOG.debug("Skipping interface: %s", exc)
    return found


def lookup_interface(name: str) -> Interface:
    """Resolve *name* to an :class:`Interface` or raise InterfaceLookupFailed."""
    stats = psutil.net_if_stats()
    if name not in stats:
        raise InterfaceLookupFailed(f"Unknown interface {name!r}")
    if not stats[name].isup:
        raise InterfaceLookupFailed(f"Interface {name!r} is down")
    if not _is_multicast_capable(stats[name]):
        raise InterfaceLookupFailed(f"Interface {name!r} is not multicast-capable")

    iface = _build(name, psutil.net_if_addrs())
    if iface.address is None:
        raise InterfaceLookupFailed(f"Interface {name!r} has no IPv4 address")
    LOG.info("Using interface %s (index %d, %s)", iface.name, iface.index, iface.address)
    return iface
