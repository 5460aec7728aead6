#!/usr/bin/env python3
"""Synthetic traffic driver for exercising a transport without a human.

Enqueues ``"0"``, ``"1"``, ``"2"``... at a fixed interval while a second
thread logs everything that comes back from the group.
"""

from __future__ import annotations

import argparse
import itertools
import logging
import queue
import sys
import threading
from typing import List, Optional

from .config import TransportConfig, add_transport_arguments
from .errors import LoopError, SetupError, TransportClosed
from .protocol import Message, format_address
from .transport import MulticastTransport
from .util import LOG, configure_logging


class TrafficGenerator:
    """Drives both queues of a started transport."""

    def __init__(self, transport: MulticastTransport, interval: float = 0.1) -> None:
        self.transport = transport
        self.interval = interval
        self.received: List[Message] = []
        self._stop = threading.Event()

    def produce(self, count: Optional[int] = None) -> int:
        """Enqueue counter values until *count* is reached, stop() or transport death."""
        sent = 0
        for i in itertools.count() if count is None else range(count):
            if self._stop.is_set() or not self.transport.running.is_set():
                break
            text = str(i)
            LOG.info("Enqueueing to send: %s", text)
            try:
                self.transport.send(text)
            except TransportClosed:
                break
            sent += 1
            if self._stop.wait(self.interval):
                break
        return sent

    def consume(self) -> None:
        """Log and record inbound messages until stop() or transport death."""
        while not self._stop.is_set() and self.transport.running.is_set():
            try:
                msg = self.transport.inbound.get(timeout=0.5)
            except queue.Empty:
                continue
            self.received.append(msg)
            own = " (own)" if msg.is_from(self.transport.local_address) else ""
            LOG.info("Received from queue: %s <%s>%s", msg.text, format_address(msg.sender), own)

    def stop(self) -> None:
        self._stop.set()


# ======================================================================
#  Command‑line entry point
# ======================================================================

def build_parser(parser: argparse.ArgumentParser | None = None) -> argparse.ArgumentParser:
    parser = parser or argparse.ArgumentParser("Multicast traffic generator")
    add_transport_arguments(parser)
    parser.add_argument("--interval", type=float, default=0.1, help="Seconds between messages")
    parser.add_argument("--count", type=int, help="Stop after this many messages (default: forever)")
    return parser


def run(args: argparse.Namespace) -> int:
    configure_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)
    try:
        transport = MulticastTransport.open(TransportConfig.from_args(args))
    except ValueError as exc:
        LOG.error("Invalid configuration: %s", exc)
        return 2
    except SetupError as exc:
        LOG.error("Startup failed: %s", exc)
        return 1

    gen = TrafficGenerator(transport, args.interval)
    with transport:
        listener = threading.Thread(target=gen.consume, name="gen-listener", daemon=True)
        listener.start()
        try:
            gen.produce(args.count)
            transport.wait(timeout=1.0)           # Let the last echoes arrive
        except LoopError:
            return 1
        except KeyboardInterrupt:
            LOG.info("Shutdown requested")
        finally:
            gen.stop()
    try:
        transport.wait(timeout=0)
    except LoopError:
        return 1
    return 0


def main() -> None:
    sys.exit(run(build_parser().parse_args()))


if __name__ == "__main__":
    main()
