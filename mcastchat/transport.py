#!/usr/bin/env python3
"""Receive/transmit loops and the queues that decouple them from consumers.

:class:`MulticastTransport` runs one background thread per direction against
a single :class:`~mcastchat.connection.MulticastConnection`:

* the **receive loop** reads datagrams (with a periodic deadline), drops
  packets not addressed to our group and puts :class:`Message` objects on
  :attr:`~MulticastTransport.inbound`;
* the **transmit loop** takes strings from :attr:`~MulticastTransport.outbound`
  and writes each as one datagram.

Each loop reports its outcome on its own :class:`concurrent.futures.Future`
(:attr:`receiver`, :attr:`transmitter`).  A fatal error in either loop stops
the whole transport: the run flag is cleared and the connection closed, so
the sibling loop exits cleanly instead of running against a dead socket.
"""

from __future__ import annotations

import queue                             # Thread‑safe FIFOs between loops & consumers
import socket                            # socket.timeout
import threading                         # Background loops + run flag
from concurrent.futures import FIRST_EXCEPTION, Future, wait
from typing import Callable, Optional

from .config import TransportConfig
from .connection import MulticastConnection
from .errors import LoopError, ReadFailed, TransportClosed, WriteFailed
from .interfaces import lookup_interface
from .protocol import READ_TIMEOUT, Address, Message, decode_text, encode_text
from .util import LOG

__all__ = ["MulticastTransport"]


class MulticastTransport:
    """Bidirectional queue bridge over one multicast connection."""

    def __init__(
        self,
        connection: MulticastConnection,
        read_timeout: Optional[float] = READ_TIMEOUT,
        queue_size: int = 0,
        poll_interval: float = 0.5,
    ) -> None:
        self.connection = connection
        self.read_timeout = read_timeout        # None = block until data
        self.poll_interval = poll_interval      # How often blocked loops re-check the run flag

        # queue_size 0 ⇒ unbounded; otherwise producers block when full.
        self.inbound: "queue.Queue[Message]" = queue.Queue(maxsize=queue_size)
        self.outbound: "queue.Queue[str]" = queue.Queue(maxsize=queue_size)

        self.running = threading.Event()        # Cleared on stop() or fatal error
        self.receiver: "Future[None]" = Future()
        self.transmitter: "Future[None]" = Future()
        self._threads: list[threading.Thread] = []

    @classmethod
    def open(cls, config: TransportConfig) -> "MulticastTransport":
        """Resolve the interface, open the connection and wrap it (not started)."""
        config.validate()
        iface = lookup_interface(config.interface) if config.interface else None
        conn = MulticastConnection.open(
            iface,
            config.group,
            port=config.port,
            ttl=config.ttl,
            filter_destination=config.filter_destination,
        )
        return cls(conn, read_timeout=config.read_timeout, queue_size=config.queue_size)

    # ================================================================= API ===
    @property
    def local_address(self) -> Address:
        """Source ip:port of our datagrams, for telling own echoes from peers."""
        return self.connection.local_address

    def start(self) -> "MulticastTransport":
        if self._threads:
            raise RuntimeError("transport already started")
        self.running.set()
        for name, target, future, crash_error in (
            ("mcast-recv", self._receive_loop, self.receiver, ReadFailed),
            ("mcast-send", self._transmit_loop, self.transmitter, WriteFailed),
        ):
            t = threading.Thread(
                target=self._run, args=(target, future, crash_error), name=name, daemon=True
            )
            self._threads.append(t)
            t.start()
        return self

    def send(self, text: str) -> None:
        """Queue *text* for transmission.

        Blocks while a bounded queue is full.  Raises ValueError when *text*
        does not fit in one datagram and TransportClosed once the transport
        has stopped.
        """
        encode_text(text)                         # Size check before queueing
        while True:
            if self._threads and not self.running.is_set():
                raise TransportClosed("Transport is stopped, message not sent")
            try:
                self.outbound.put(text, timeout=self.poll_interval)
                return
            except queue.Full:
                continue

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop both loops, release the connection and join the threads."""
        self.running.clear()
        self.connection.close()
        for t in self._threads:
            if t is not threading.current_thread():
                t.join(timeout)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until a loop fails or both end.

        Re-raises the loop's :class:`~mcastchat.errors.LoopError` if one
        failed.  Returns ``True`` once both loops are done, ``False`` on
        timeout.
        """
        done, _ = wait([self.receiver, self.transmitter], timeout, return_when=FIRST_EXCEPTION)
        for future in done:
            exc = future.exception()
            if exc is not None:
                raise exc
        return len(done) == 2

    def __enter__(self) -> "MulticastTransport":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.stop()

    # ---------------------------------------------------------------- internals
    def _run(
        self, target: Callable[[], None], future: "Future[None]", crash_error: type[LoopError],
    ) -> None:
        """Thread body: run *target* and publish exactly one outcome on *future*.

        Unexpected exceptions are wrapped in *crash_error* so callers only
        ever see a LoopError.
        """
        try:
            target()
        except LoopError as exc:
            LOG.error("%s", exc)
            future.set_exception(exc)
            self._abort()
        except Exception as exc:
            LOG.exception("Loop crashed")
            err = crash_error(f"Loop crashed: {exc!r}")
            err.__cause__ = exc
            future.set_exception(err)
            self._abort()
        else:
            future.set_result(None)

    def _abort(self) -> None:
        # A failing loop takes the transport down with it.
        self.running.clear()
        self.connection.close()

    def _receive_loop(self) -> None:
        conn = self.connection
        while self.running.is_set():
            try:
                payload, sender, destination = conn.receive(self.read_timeout)
            except socket.timeout:
                LOG.debug("Read timed out after %.1fs, still listening", self.read_timeout)
                continue
            except OSError as exc:
                if not self.running.is_set():     # Socket closed by stop()
                    return
                raise ReadFailed(f"Receive failed: {exc}") from exc

            if conn.filter_destination and destination != conn.group:
                LOG.debug("Dropped datagram from %s:%d addressed to %s", *sender, destination)
                continue

            msg = Message(sender=sender, text=decode_text(payload))
            LOG.debug("Received from %s:%d: %s", *sender, msg.text)
            self._put_inbound(msg)

    def _put_inbound(self, msg: Message) -> None:
        while self.running.is_set():
            try:
                self.inbound.put(msg, timeout=self.poll_interval)
                return
            except queue.Full:                    # Bounded queue, slow consumer
                continue

    def _transmit_loop(self) -> None:
        while self.running.is_set():
            try:
                text = self.outbound.get(timeout=self.poll_interval)
            except queue.Empty:
                continue                          # Allow shutdown check

            try:
                self.connection.send(encode_text(text))
            except OSError as exc:
                if not self.running.is_set():
                    return
                raise WriteFailed(f"Send of {text!r} failed: {exc}") from exc
            LOG.debug("Sent: %s", text)
