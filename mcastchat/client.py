#!/usr/bin/env python3
"""Line-based console chat on top of :class:`~mcastchat.transport.MulticastTransport`.

* Every stdin line is multicast to the group (empty lines are ignored).
* Every datagram from the group is printed as ``[HH:MM] <ip:port> text``;
  our own echoes are highlighted.
* ``/quit``, ``qqq``, Ctrl‑D or Ctrl‑C leave the chat.

Usage (after installing package locally):

    mcastchat-client --interface eth0 --group-id 200
"""

from __future__ import annotations                # ↩ type hints forward refs OK

import argparse                                    # For CLI parsing
import logging
import queue                                       # queue.Empty from inbound
import sys                                         # Needed for prompt redraw
import threading                                   # Background printer thread
import time                                        # HH:MM timestamps

from .config import TransportConfig, add_transport_arguments
from .errors import LoopError, SetupError, TransportClosed
from .protocol import Message, format_address
from .transport import MulticastTransport
from .util import LOG, configure_logging

# 3rd‑party: coloured terminal output
from colorama import Fore, Style, init
init(autoreset=True)                               # Reset colour after each print

QUIT_WORDS = {"/quit", "qqq"}
PROMPT = "> "


class MulticastChatClient:
    """Consumer side of the queues: stdin → outbound, inbound → stdout."""

    def __init__(self, transport: MulticastTransport) -> None:
        self.transport = transport

    def render(self, msg: Message) -> str:
        """Format one inbound message; own echoes get a bright style."""
        stamp = time.strftime("%H:%M", time.localtime(msg.received_at))
        src = format_address(msg.sender)
        if msg.is_from(self.transport.local_address):
            return f"[{stamp}] {Style.BRIGHT}{Fore.YELLOW}<{src}>{Style.RESET_ALL} {msg.text}"
        return f"[{stamp}] {Fore.GREEN}<{src}>{Style.RESET_ALL} {msg.text}"

    # ================================================================== main ===
    def run(self) -> None:
        """Blocking input loop; a daemon thread prints inbound messages."""
        threading.Thread(target=self._print_loop, name="chat-printer", daemon=True).start()
        try:
            while self.transport.running.is_set():
                try:
                    line = input(PROMPT)
                except EOFError:                          # Ctrl‑D on *nix
                    break
                if line.strip().lower() in QUIT_WORDS:
                    break
                if not line.strip():                      # Don't send empty input
                    continue
                try:
                    self.transport.send(line)
                except ValueError as exc:                 # Too long for one datagram
                    print(f"{Fore.RED}[SYSTEM]{Style.RESET_ALL} Not sent: {exc}")
                except TransportClosed:
                    break
        except KeyboardInterrupt:                         # Graceful Ctrl‑C
            pass

    def _print_loop(self) -> None:
        while self.transport.running.is_set():
            try:
                msg = self.transport.inbound.get(timeout=0.5)
            except queue.Empty:
                continue
            print(f"\r{self.render(msg)}")
            # Prompt re‑paint so the user's current input line isn't lost
            sys.stdout.write(PROMPT)
            sys.stdout.flush()


# ======================================================================
#  Command‑line entry point
# ======================================================================

def build_parser(parser: argparse.ArgumentParser | None = None) -> argparse.ArgumentParser:
    parser = parser or argparse.ArgumentParser("Multicast chat client")
    add_transport_arguments(parser)
    return parser


def run(args: argparse.Namespace) -> int:
    configure_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)
    try:
        config = TransportConfig.from_args(args)
        transport = MulticastTransport.open(config)
    except ValueError as exc:
        LOG.error("Invalid configuration: %s", exc)
        return 2
    except SetupError as exc:
        LOG.error("Startup failed: %s", exc)
        return 1

    print(f"{Fore.CYAN}[SYSTEM]{Style.RESET_ALL} Chatting on {config.group}:{config.port} "
          f"as {format_address(transport.local_address)}. Type /quit to leave.")
    with transport:
        MulticastChatClient(transport).run()
    try:
        transport.wait(timeout=0)
    except LoopError:
        return 1                                   # Already logged by the transport
    LOG.info("Disconnected")
    return 0


def main() -> None:
    """Parse CLI args then instantiate & run the chat client."""
    sys.exit(run(build_parser().parse_args()))


if __name__ == "__main__":
    main()
