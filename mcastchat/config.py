#!/usr/bin/env python3
"""Transport configuration and its command-line flags.

Interface and group are plain values chosen before the transport starts;
both front-ends (``chat`` and ``generate``) share the flags defined here.
"""

from __future__ import annotations

import argparse                          # For CLI parsing
import ipaddress                         # Group validation
from dataclasses import dataclass
from typing import Optional

from .protocol import (
    DEFAULT_GROUP, GROUP_ID_MAX, GROUP_ID_MIN, MULTICAST_TTL, READ_TIMEOUT, SERVICE_PORT,
)

__all__ = ["TransportConfig", "add_transport_arguments", "group_from_id"]


def group_from_id(group_id: int) -> str:
    """Build ``224.0.0.<group_id>``; only ids in [151, 250] are accepted."""
    if not GROUP_ID_MIN <= group_id <= GROUP_ID_MAX:
        raise ValueError(
            f"Group id must be in the range [{GROUP_ID_MIN}-{GROUP_ID_MAX}], got {group_id}"
        )
    return f"224.0.0.{group_id}"


@dataclass
class TransportConfig:
    interface: Optional[str] = None          # None ⇒ kernel picks via routing table
    group: str = DEFAULT_GROUP
    port: int = SERVICE_PORT
    ttl: int = MULTICAST_TTL
    read_timeout: Optional[float] = READ_TIMEOUT
    filter_destination: bool = True
    queue_size: int = 0                      # 0 ⇒ unbounded

    def validate(self) -> None:
        """Raise ValueError on any value the transport cannot work with."""
        try:
            addr = ipaddress.ip_address(self.group)
        except ValueError:
            raise ValueError(f"Invalid group address {self.group!r}") from None
        if addr.version != 4 or not addr.is_multicast:
            raise ValueError(f"{self.group} is not an IPv4 multicast address")
        if not 0 < self.port < 65536:
            raise ValueError(f"Port out of range: {self.port}")
        if not 0 <= self.ttl <= 255:
            raise ValueError(f"TTL out of range: {self.ttl}")
        if self.read_timeout is not None and self.read_timeout <= 0:
            raise ValueError("Read timeout must be positive (or None to block)")
        if self.queue_size < 0:
            raise ValueError("Queue size cannot be negative")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "TransportConfig":
        group = group_from_id(args.group_id) if args.group_id is not None else args.group
        cfg = cls(
            interface=args.interface,
            group=group,
            port=args.port,
            ttl=args.ttl,
            read_timeout=args.read_timeout or None,   # 0 ⇒ block
            filter_destination=not args.no_dst_filter,
            queue_size=args.queue_size,
        )
        cfg.validate()
        return cfg


def add_transport_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-i", "--interface", help="Network interface to join on (default: routing table)")
    grp = parser.add_mutually_exclusive_group()
    grp.add_argument("--group", default=DEFAULT_GROUP, help="IPv4 multicast group address")
    grp.add_argument(
        "--group-id", type=int, metavar="N",
        help=f"Shortcut for group 224.0.0.N, N in [{GROUP_ID_MIN}-{GROUP_ID_MAX}]",
    )
    parser.add_argument("--port", type=int, default=SERVICE_PORT, help="UDP service port")
    parser.add_argument("--ttl", type=int, default=MULTICAST_TTL, help="Multicast time-to-live")
    parser.add_argument(
        "--read-timeout", type=float, default=READ_TIMEOUT,
        help="Receive deadline in seconds, 0 blocks indefinitely",
    )
    parser.add_argument(
        "--no-dst-filter", action="store_true",
        help="Accept datagrams without checking their destination address",
    )
    parser.add_argument("--queue-size", type=int, default=0, help="Bound both queues (0 = unbounded)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--log-file", help="Also log to this file (rotated at 1 MiB)")
