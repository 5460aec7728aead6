#!/usr/bin/env python3
"""The one socket connection a transport talks through.

A :class:`MulticastConnection` owns two kernel sockets:

* the *receive* socket, bound to the wildcard address on the service port
  with group membership on the chosen interface;
* the *transmit* socket, connected to ``(group, port)``.  Its OS-assigned
  ``ip:port`` is the instance's :attr:`~MulticastConnection.local_address`
  and is what peers (and our own multicast echo) see as the sender.

Several instances may share a host because the receive sockets use
``SO_REUSEADDR``/``SO_REUSEPORT`` while every transmit socket gets its own
ephemeral port.
"""

from __future__ import annotations

import platform                          # ip_mreqn is Linux only
import socket                            # Low‑level UDP API
import struct                            # Membership request packing
import threading                         # Close guard
from typing import Optional, Tuple

from .errors import ControlConfigFailed, GroupJoinFailed, SocketBindFailed
from .interfaces import Interface
from .protocol import MAX_PAYLOAD, MULTICAST_TTL, SERVICE_PORT, Address
from .util import LOG

__all__ = ["MulticastConnection", "IP_PKTINFO"]

# Not every Python build exports the constant; 8 is the Linux value.
IP_PKTINFO: Optional[int] = getattr(
    socket, "IP_PKTINFO", 8 if platform.system() == "Linux" else None
)
_PKTINFO_LEN = 12          # struct in_pktinfo { int ifindex; in_addr spec_dst; in_addr addr; }


def _membership_request(group: str, iface: Optional[Interface]) -> bytes:
    group_bin = socket.inet_aton(group)
    local_bin = socket.inet_aton(iface.address if iface and iface.address else "0.0.0.0")
    if platform.system() == "Linux":
        # struct ip_mreqn: pinning the ifindex avoids ambiguity between
        # interfaces that share an address.
        return struct.pack("4s4si", group_bin, local_bin, iface.index if iface else 0)
    return struct.pack("4s4s", group_bin, local_bin)


class MulticastConnection:
    """Bound, joined and configured UDP endpoint pair.  Use :meth:`open`."""

    def __init__(
        self,
        recv_sock: socket.socket,
        send_sock: socket.socket,
        group: str,
        port: int,
        interface: Optional[Interface] = None,
        filter_destination: bool = False,
    ) -> None:
        self._recv_sock = recv_sock
        self._send_sock = send_sock
        self.group = group
        self.port = port
        self.interface = interface
        self.filter_destination = filter_destination

        host, sport = send_sock.getsockname()[:2]
        self._local: Address = (host, sport)

        self._close_lock = threading.Lock()
        self._closed = False

    # ---------------------------------------------------------------- factory
    @classmethod
    def open(
        cls,
        interface: Optional[Interface],
        group: str,
        port: int = SERVICE_PORT,
        ttl: int = MULTICAST_TTL,
        filter_destination: bool = True,
    ) -> "MulticastConnection":
        """Create both sockets and join *group* on *interface*.

        ``interface=None`` leaves the choice of adapter to the kernel's
        routing table.  Raises :class:`SocketBindFailed`,
        :class:`GroupJoinFailed` or :class:`ControlConfigFailed`; nothing is
        left open when it does.
        """
        opened: list[socket.socket] = []
        try:
            recv_sock = cls._open_receiver(opened, interface, group, port, filter_destination)
            send_sock = cls._open_sender(opened, interface, group, port, ttl)
            conn = cls(recv_sock, send_sock, group, port, interface, filter_destination)
        except BaseException:
            for sock in opened:
                sock.close()
            raise

        LOG.info(
            "Joined %s:%d on %s, sending from %s:%d",
            group, port, interface.name if interface else "default interface", *conn.local_address,
        )
        return conn

    @staticmethod
    def _open_receiver(
        opened: list, interface: Optional[Interface], group: str, port: int, filter_destination: bool,
    ) -> socket.socket:
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
            opened.append(sock)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)  # Rebind ok
            if hasattr(socket, "SO_REUSEPORT"):
                try:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
                except OSError:
                    LOG.debug("SO_REUSEPORT not supported on this kernel")
            sock.bind(("", port))
        except OSError as exc:
            raise SocketBindFailed(f"Cannot bind UDP port {port}: {exc}") from exc

        try:
            sock.setsockopt(
                socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, _membership_request(group, interface)
            )
        except OSError as exc:
            raise GroupJoinFailed(f"Cannot join group {group}: {exc}") from exc

        if filter_destination:
            if IP_PKTINFO is None or not hasattr(sock, "recvmsg"):
                raise ControlConfigFailed("Destination metadata (IP_PKTINFO) unsupported on this platform")
            try:
                sock.setsockopt(socket.IPPROTO_IP, IP_PKTINFO, 1)
            except OSError as exc:
                raise ControlConfigFailed(f"Cannot enable IP_PKTINFO: {exc}") from exc
        return sock

    @staticmethod
    def _open_sender(
        opened: list, interface: Optional[Interface], group: str, port: int, ttl: int,
    ) -> socket.socket:
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
            opened.append(sock)
            if interface and interface.address:
                sock.setsockopt(
                    socket.IPPROTO_IP, socket.IP_MULTICAST_IF, socket.inet_aton(interface.address)
                )
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, ttl)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 1)
        except OSError as exc:
            raise ControlConfigFailed(f"Cannot configure multicast sender: {exc}") from exc

        # connect() makes the kernel pick our source ip:port now, so it can
        # be exposed as local_address before anything is sent.
        try:
            sock.connect((group, port))
        except OSError as exc:
            raise SocketBindFailed(f"Cannot route to {group}:{port}: {exc}") from exc
        return sock

    # ---------------------------------------------------------------- I/O
    @property
    def local_address(self) -> Address:
        return self._local

    @property
    def closed(self) -> bool:
        return self._closed

    def receive(self, timeout: Optional[float]) -> Tuple[bytes, Address, Optional[str]]:
        """Read one datagram.

        Returns ``(payload, sender, destination)``; *destination* is only
        known when destination filtering is on, otherwise ``None``.
        ``timeout=None`` blocks indefinitely.  Raises :class:`socket.timeout`
        when the deadline passes and :class:`OSError` on anything else.
        """
        self._recv_sock.settimeout(timeout)
        if not self.filter_destination:
            data, sender = self._recv_sock.recvfrom(MAX_PAYLOAD)
            return data, sender[:2], None

        data, ancdata, _flags, sender = self._recv_sock.recvmsg(
            MAX_PAYLOAD, socket.CMSG_SPACE(_PKTINFO_LEN)
        )
        destination = None
        for level, ctype, cdata in ancdata:
            if level == socket.IPPROTO_IP and ctype == IP_PKTINFO and len(cdata) >= _PKTINFO_LEN:
                destination = socket.inet_ntoa(cdata[8:12])   # ipi_addr: header destination
        return data, sender[:2], destination

    def send(self, payload: bytes) -> None:
        """Write *payload* as exactly one datagram to the group."""
        self._send_sock.send(payload)

    def close(self) -> None:
        """Release both sockets.  Only the first call has any effect."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        # shutdown() wakes a thread blocked in recv on Linux; close alone may not.
        try:
            self._recv_sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass                            # Not connected: expected for UDP on some kernels
        self._recv_sock.close()
        self._send_sock.close()
        LOG.info("Left %s:%d", self.group, self.port)
