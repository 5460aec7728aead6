#!/usr/bin/env python3
"""Wire constants, the :class:`Message` record and address helpers.

There is no framing: one datagram carries exactly one UTF‑8 text message.
Both the transport loops and the consumers (console client, generator) go
through the helpers here so they agree on how bytes become text.
"""

from __future__ import annotations       # Postponed annotation evaluation (PEP 563)
import ipaddress                         # Address normalisation for comparisons
import time                              # Arrival timestamps
from dataclasses import dataclass, field
from typing import Tuple                 # Standard typing aliases

Address = Tuple[str, int]                # (host, port) as returned by recvfrom()

# --- Network configuration -------------------------------------------------
MAX_PAYLOAD: int = 65507         # Largest IPv4 UDP payload; also the read buffer size
SERVICE_PORT: int = 1024          # Fixed port every instance binds & sends to
DEFAULT_GROUP: str = "224.0.0.250"
MULTICAST_TTL: int = 2            # Allows one router hop
READ_TIMEOUT: float = 10.0        # Receive deadline, only used for liveness logging

# Range accepted by ``--group-id`` (last octet of 224.0.0.N)
GROUP_ID_MIN: int = 151
GROUP_ID_MAX: int = 250


# --- Payload helpers -------------------------------------------------------

def encode_text(text: str) -> bytes:
    """str ⟶ UTF‑8 bytes, ready for a single send().

    Raises ValueError when the encoded text cannot fit in one datagram.
    """
    data = text.encode("utf-8")
    if len(data) > MAX_PAYLOAD:
        raise ValueError(f"Message is {len(data)} bytes, limit is {MAX_PAYLOAD}")
    return data


def decode_text(data: bytes) -> str:
    """Inverse of :func:`encode_text`; undecodable bytes become U+FFFD."""
    return data.decode("utf-8", errors="replace")


def same_address(a: Address, b: Address) -> bool:
    """True when both IP and port match.

    IPs are compared as addresses, not strings, so ``"127.0.0.1"`` and
    ``"127.000.000.001"`` style spellings cannot cause a false negative.
    """
    try:
        same_ip = ipaddress.ip_address(a[0]) == ipaddress.ip_address(b[0])
    except ValueError:                     # Hostname rather than literal IP
        same_ip = a[0] == b[0]
    return same_ip and a[1] == b[1]


def format_address(addr: Address) -> str:
    return f"{addr[0]}:{addr[1]}"


# --- Metadata container ----------------------------------------------------

@dataclass(frozen=True, slots=True)
class Message:
    """One received datagram as handed to the consumer."""

    sender: Address         # Source (ip, port) of the datagram
    text: str               # Decoded payload
    received_at: float = field(default_factory=time.time)

    def is_from(self, addr: Address) -> bool:
        return same_address(self.sender, addr)
